import os

from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware
from prometheus_fastapi_instrumentator import Instrumentator
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from slowapi.util import get_remote_address
from sqlalchemy import text
from sqlalchemy.orm import Session

from .config import settings
from .db import Base, engine, get_db
from .errors import DomainError, domain_error_handler
from .logging import RequestIdMiddleware, setup_logging
from .auth.router import router as auth_router
from .routes.ai import router as ai_router
from .routes.items import router as items_router
from .routes.jobs import router as jobs_router
from .routes.reports import router as reports_router
from .routes.rooms import router as rooms_router
from .routes.users import router as users_router
from .routes.warehouses import router as warehouses_router


def create_app() -> FastAPI:
    setup_logging()
    app = FastAPI(title=settings.app_name)

    # Middlewares
    app.add_middleware(RequestIdMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    limiter = Limiter(key_func=get_remote_address, default_limits=[settings.rate_limit])
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
    app.add_middleware(SlowAPIMiddleware)

    app.add_exception_handler(DomainError, domain_error_handler)

    # Routers
    app.include_router(auth_router)
    app.include_router(jobs_router)
    app.include_router(items_router)
    app.include_router(rooms_router)
    app.include_router(reports_router)
    app.include_router(users_router)
    app.include_router(warehouses_router)
    app.include_router(ai_router)

    # Metrics
    Instrumentator().instrument(app).expose(app)

    @app.get("/health")
    def health(db: Session = Depends(get_db)):
        db.execute(text("SELECT 1"))
        return {"status": "ok", "environment": settings.environment}

    @app.on_event("startup")
    def _create_tables():
        if not settings.auto_create_db:
            return
        if settings.database_url.startswith("sqlite:///./"):
            os.makedirs(os.path.dirname(settings.database_url.replace("sqlite:///", "")) or ".", exist_ok=True)
        Base.metadata.create_all(bind=engine)

    return app


app = create_app()
