# ==============================================================================
# main.py - Application entry point
# ==============================================================================

import logging

from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.orm import Session

from coursetrack.config.settings import Settings
from coursetrack.exceptions import CourseTrackBaseException, log_exception
from coursetrack.routes import create_router
from coursetrack.utils.database import get_db, init_database
from coursetrack.utils.exceptions import error_detail, status_code_for
from coursetrack.utils.logging import auto_configure_logging

logger = logging.getLogger(__name__)


def create_app(init_db: bool = True) -> FastAPI:
    """Create and configure the FastAPI application"""
    settings = Settings()

    # Setup logging
    auto_configure_logging(settings.ENVIRONMENT, settings.LOG_DIR, settings.LOG_LEVEL, settings.LOG_FILE)

    # Create FastAPI app
    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        description="Course attendance, enrollment and grading backend"
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(CourseTrackBaseException)
    async def coursetrack_exception_handler(request: Request, exc: CourseTrackBaseException):
        log_exception(exc, context=f"{request.method} {request.url.path}")
        return JSONResponse(status_code=status_code_for(exc), content={"detail": error_detail(exc)})

    # Initialize database
    if init_db:
        init_database()

    # Include routers
    app.include_router(create_router())

    @app.get("/health", tags=["health"])
    def health_check(db: Session = Depends(get_db)):
        """Liveness plus a round trip to the database"""
        try:
            db.execute(text("SELECT 1"))
            return {"status": "ok", "app": settings.APP_NAME, "version": settings.APP_VERSION}
        except Exception as e:
            logger.error(f"Health check failed: {e}")
            return JSONResponse(status_code=503, content={"status": "unavailable", "error": str(e)})

    logger.info(f"{settings.APP_NAME} {settings.APP_VERSION} started ({settings.ENVIRONMENT})")
    return app


# For development server
if __name__ == "__main__":
    import uvicorn

    settings = Settings()
    uvicorn.run(
        "coursetrack.main:create_app",
        factory=True,
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG
    )
