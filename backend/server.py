"""
Real Estate CRM - Reminder notification API

Start with:
    uvicorn server:app --host 0.0.0.0 --port 8001 --reload
"""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
import logging

# Logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger("realestate_crm")

from config import CORS_ORIGINS, client, db
from scheduler_service import task_scheduler
from services.stores import ensure_indexes

app = FastAPI(
    title="Real Estate CRM",
    description="Lead reminders, notifications and presence",
    version="1.0.0"
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ==================== ROUTES ====================

from routes import notifications, realtime, reminders, system_health

# Routes with the /api prefix
app.include_router(reminders.router, prefix="/api")
app.include_router(notifications.router, prefix="/api")
app.include_router(realtime.router, prefix="/api")
app.include_router(system_health.router, prefix="/api")


@app.get("/")
async def root():
    return {
        "name": "Real Estate CRM API",
        "version": "1.0.0",
        "status": "running",
        "docs": "/docs"
    }


# ==================== STARTUP / SHUTDOWN ====================

@app.on_event("startup")
async def startup():
    logger.info("🚀 Real Estate CRM started")

    await ensure_indexes(db)
    logger.info("✅ MongoDB indexes created")

    task_scheduler.start()


@app.on_event("shutdown")
async def shutdown():
    await task_scheduler.stop()
    client.close()
    logger.info("Real Estate CRM stopped")


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8001)
