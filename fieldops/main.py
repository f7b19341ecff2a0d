import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from . import models  # noqa: F401
from .config import ALLOWED_ORIGINS
from .database import Base, engine
from .domain.attendance import admin_router as attendance_admin_router
from .domain.attendance import router as attendance_router
from .domain.clients import admin_router as client_portal_admin_router
from .domain.clients import router as client_portal_router
from .domain.people import router as people_router
from .domain.technicians import router as technicians_router
from .domain.working_hours import router as working_hours_router
from .errors import register_error_handlers

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# Reduce verbosity of third-party libraries
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Application starting up...")
    try:
        Base.metadata.create_all(bind=engine, checkfirst=True)
        logger.info("Database tables created successfully")
    except Exception as e:
        # Another worker may have created them first
        error_msg = str(e)
        if "already exists" in error_msg or "duplicate key" in error_msg:
            logger.info("Database tables already exist (created by another worker)")
        else:
            logger.error(f"Failed to create database tables: {e}")

    yield
    logger.info("Application shutting down...")


app = FastAPI(title="Field Ops API", version="1.0.0", lifespan=lifespan)

register_error_handlers(app)

logger.info(f"CORS allowed origins: {ALLOWED_ORIGINS}")

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["*"],
)

app.include_router(working_hours_router)
app.include_router(attendance_router)
app.include_router(attendance_admin_router)
app.include_router(people_router)
app.include_router(technicians_router)
app.include_router(client_portal_admin_router)
app.include_router(client_portal_router)


@app.get("/")
def root():
    return {"message": "Field Ops API is running"}


@app.get("/health")
def health():
    return {"status": "healthy"}
