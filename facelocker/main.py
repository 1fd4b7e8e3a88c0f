import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Depends, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from .core.database import engine, create_tables
from .core.config import settings
from .core.errors import FaceLockerError
from .dependencies import get_audit_log
from .routers.auth import router as auth_router
from .routers.enrollment import router as enrollment_router
from .services.audit import AuditLog

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    create_tables(engine)
    logger.info("%s started", settings.APP_NAME)
    yield


app = FastAPI(title=settings.APP_NAME, lifespan=lifespan)

# Configure CORS
raw_origins = settings.CORS_ORIGINS or "*"
origins = [o.strip() for o in raw_origins.split(",") if o.strip()] if isinstance(raw_origins, str) else raw_origins
allow_credentials = False if "*" in origins else True
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=allow_credentials,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(FaceLockerError)
async def facelocker_error_handler(request: Request, exc: FaceLockerError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message, **exc.extra()})


# Routers
app.include_router(auth_router)
app.include_router(enrollment_router)

@app.get("/")
def root():
    return {"status": "ok"}

@app.get("/health")
def health(audit: AuditLog = Depends(get_audit_log)):
    return {"status": "healthy", "audit_failures": audit.failures}
