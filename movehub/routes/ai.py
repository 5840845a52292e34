import structlog
from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool
from starlette.datastructures import UploadFile

from ..auth.security import get_current_user
from ..config import settings
from ..errors import ValidationError
from ..services.item_identifier import GeminiClient, ImageInput, ItemIdentifier


router = APIRouter(prefix="/ai", tags=["ai"])
logger = structlog.get_logger(__name__)

MB = 1024 * 1024


def get_identifier() -> ItemIdentifier:
    if not settings.google_ai_api_key:
        raise HTTPException(status_code=500, detail="Google AI API key not configured")
    return ItemIdentifier(GeminiClient().generate)


async def _read_images(request: Request) -> tuple:
    form = await request.form()
    uploads = [v for k, v in form.multi_items() if k.startswith("image") and isinstance(v, UploadFile)]
    room_type = form.get("roomType") or form.get("room_type") or "general"
    if not uploads:
        raise ValidationError("No image file(s) provided")

    images = []
    total = 0
    for index, upload in enumerate(uploads):
        data = await upload.read()
        if len(data) > settings.ai_max_file_bytes:
            raise ValidationError(
                f"Image {index + 1} is too large (max {settings.ai_max_file_bytes // MB}MB per file)"
            )
        total += len(data)
        images.append(ImageInput(filename=upload.filename or f"image{index}", content_type=upload.content_type, data=data))
    if total > settings.ai_max_total_bytes:
        raise ValidationError(f"Total image size too large (max {settings.ai_max_total_bytes // MB}MB total)")
    return images, str(room_type)


@router.post("/identify-item")
async def identify_item(
    request: Request,
    _=Depends(get_current_user),
    identifier: ItemIdentifier = Depends(get_identifier),
):
    images, room_type = await _read_images(request)
    logger.info("ai_identify_started", images=len(images), room_type=room_type, size_bytes=sum(len(i.data) for i in images))
    result = await run_in_threadpool(identifier.identify, images, room_type)
    guesses = [g.model_dump(by_alias=True) for g in result.results]

    if result.timed_out:
        return JSONResponse(
            status_code=408,
            content={
                "error": f"Processing timeout. Completed {result.processed_count} of {result.total} images.",
                "partialResults": guesses,
                "processedCount": result.processed_count,
            },
        )
    return {
        "success": True,
        "data": guesses[0] if len(guesses) == 1 else guesses,
        "metadata": {
            "processedCount": result.processed_count,
            "totalFiles": result.total,
            "processingTimeMs": result.elapsed_ms,
        },
        "count": result.processed_count,
    }
