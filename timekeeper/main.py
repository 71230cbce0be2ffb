import logging

from fastapi import FastAPI

from timekeeper.api.admin_logs import router as admin_logs_router
from timekeeper.api.history import router as history_router
from timekeeper.api.records import routers as record_routers
from timekeeper.core.config import settings
from timekeeper.core.firestore import close_http_client
from timekeeper.core.rabbitmq import close_rabbitmq, init_rabbitmq

logging.basicConfig(level=settings.LOG_LEVEL)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Timekeeper Record Service",
    version="0.1.0",
    description="Attendance / leave / OT / swap / time-correction records (REST + Firestore + RabbitMQ producer)",
)

# REST 라우터 등록
for record_router in record_routers:
    app.include_router(record_router)
app.include_router(history_router)
app.include_router(admin_logs_router)


@app.get("/health")
async def health_check():
    return {
        "status": "ok",
        "service": "timekeeper-record-service",
    }


@app.get("/")
async def root():
    return {
        "message": "Timekeeper Record Service is running",
        "docs": "/docs",
    }


@app.on_event("startup")
async def on_startup():
    logger.info("Starting Timekeeper Record Service (project=%s)", settings.FIRESTORE_PROJECT_ID)
    await init_rabbitmq(app)


@app.on_event("shutdown")
async def on_shutdown():
    logger.info("Shutting down Timekeeper Record Service")
    await close_rabbitmq(app)
    await close_http_client()
