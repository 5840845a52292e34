import structlog
from fastapi import APIRouter, Depends
from fastapi.responses import Response

from ..auth.security import get_current_user
from ..errors import InvalidReportData, ValidationError
from ..reports.pdf_report import ReportGenerator
from ..schemas.reports import (
    EmailReportRequest,
    EmailReportResponse,
    GenerateReportRequest,
    ReportType,
)
from ..services.mailer import ReportMailer, validate_recipients


router = APIRouter(prefix="/reports", tags=["reports"])
logger = structlog.get_logger(__name__)


def get_mailer() -> ReportMailer:
    return ReportMailer()


@router.get("")
def describe_reports():
    return {
        "message": "PDF Report Generator API",
        "endpoints": {
            "POST /reports/generate": "Generate PDF report from job data",
            "POST /reports/email": "Email PDF report to recipients",
            "GET /jobs/{job_id}/report": "Generate PDF report for a stored job",
        },
        "supportedReportTypes": [t.value for t in ReportType],
    }


@router.post("/generate")
def generate_report(req: GenerateReportRequest, _=Depends(get_current_user)):
    if req.report_data is None:
        raise InvalidReportData("Invalid report data provided")
    rendered = ReportGenerator().render(req.report_data)
    return Response(
        content=rendered.content,
        media_type="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="{rendered.filename}"'},
    )


@router.post("/email", response_model=EmailReportResponse)
def email_report(
    req: EmailReportRequest,
    mailer: ReportMailer = Depends(get_mailer),
    _=Depends(get_current_user),
):
    if req.report_data is None or req.email_config is None or not req.email_config.recipients:
        raise ValidationError("Invalid request data. Missing report data or email configuration.")
    # Checked before rendering so a bad address costs nothing
    recipients = validate_recipients(req.email_config.recipients)
    rendered = ReportGenerator().render(req.report_data)
    sent = mailer.send_report(
        recipients,
        req.email_config.subject,
        req.email_config.message,
        rendered.filename,
        rendered.content,
    )
    return EmailReportResponse(
        success=True,
        message="Email sent successfully",
        emails_sent=sent,
        filename=rendered.filename,
    )
