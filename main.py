"""FastAPI application for the shift SMS assistant"""
import logging
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

load_dotenv()

from config import settings
from api.routes.sms_webhook import router as sms_router

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Prepare the storage backend on startup and release it on shutdown"""
    logger.info(f"📱 Starting shift SMS assistant (storage={settings.STORAGE_BACKEND}, "
                f"signature check={'on' if settings.TWILIO_VALIDATE_SIGNATURE else 'off'})")
    if settings.use_postgres:
        from core.storage import ensure_schema
        ensure_schema()
    yield
    if settings.use_postgres:
        from core.database import close_db
        close_db()
    logger.info("Shift SMS assistant stopped")


app = FastAPI(
    title="Shift SMS Assistant API",
    version="1.0.0",
    description="German SMS conversations for shift invitations, registration and emergencies",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/health")
async def health_check():
    return {"status": "healthy", "storage": settings.STORAGE_BACKEND}


app.include_router(sms_router, tags=["sms"])


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8080)
