"""
SkillBridge Session Integrity - FastAPI Application

Main entry point for the session integrity backend.

Architecture:
- Jitsi webhook -> Presence normalizer -> Participation ledger -> Class completion
- Member report -> Intake gate -> Evidence custody -> Adjudication -> Violation ledger
"""
import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .database import init_db
from .errors import SessionIntegrityError
from .routers import (
    admin_reports_router, session_reports_router, violations_router, webhooks_router,
)

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize database on startup."""
    init_db()
    yield

# Create FastAPI app
app = FastAPI(
    lifespan=lifespan,
    title="SkillBridge Session Integrity",
    description="""
    SkillBridge Session Integrity - attendance and dispute backend

    ## Presence
    Jitsi webhooks are normalized into join / leave / recording events that
    maintain per-session participation and drive session and class completion.

    ## Session reports
    Students and tutors report problems with a session inside the reporting
    window; admins review, resolve, and annotate; resolved reports feed the
    per-user violation ledger.
    """,
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc"
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(SessionIntegrityError)
async def session_integrity_error_handler(request: Request, exc: SessionIntegrityError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


# Include routers
app.include_router(webhooks_router)
app.include_router(session_reports_router)
app.include_router(admin_reports_router)
app.include_router(violations_router)


@app.get("/")
async def root():
    """Root endpoint - API information."""
    return {
        "name": "SkillBridge Session Integrity",
        "version": "1.0.0",
        "docs": "/docs",
    }


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "version": "1.0.0"}


# For running with: python -m app.main
if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8001)
