from dotenv import load_dotenv
load_dotenv()

import asyncio
import logging
from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware

from database import get_db, get_store

# ENV
from config.env import (
    CORS_ALLOWED_ORIGINS,
    ENV,
    LOG_LEVEL,
    WORKERS_ENABLED,
    validate_production_env,
)

# ROUTES
from routes.orders import router as orders_router
from routes.disputes import router as disputes_router
from routes.seller import router as seller_router
from routes.admin import router as admin_router
from routes.webhooks import router as webhook_router

# WORKERS
from utils.indexes import ensure_indexes
from workers.link_expiry_worker import link_expiry_worker
from workers.auto_complete_worker import auto_complete_worker
from workers.audit_cleanup_worker import audit_cleanup_worker

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
)
validate_production_env()

print("ENV:", ENV)

app = FastAPI(
    title="Escrow Payments API",
    version="1.0.0",
    docs_url=None if ENV == "production" else "/docs",
    redoc_url=None if ENV == "production" else "/redoc",
    openapi_url=None if ENV == "production" else "/openapi.json",
)

# -----------------------------
# CORS
# -----------------------------

allowed_origins = [origin.strip() for origin in CORS_ALLOWED_ORIGINS if origin.strip()]
if not allowed_origins:
    allowed_origins = [
        "http://localhost:3000",
        "http://localhost:5173",
        "http://127.0.0.1:5173",
    ]

app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# -----------------------------
# ROUTES
# -----------------------------

app.include_router(orders_router)
app.include_router(disputes_router)
app.include_router(seller_router)
app.include_router(admin_router)
app.include_router(webhook_router)

# -----------------------------
# HEALTH CHECKS
# -----------------------------

@app.get("/api/health")
async def health():

    return {"status": "ok"}

@app.get("/api/health/db")
async def health_db(store=Depends(get_store)):
    await store.ping()
    return {"status": f"{store.backend} connected"}

# -----------------------------
# STARTUP (ONE PLACE ONLY)
# -----------------------------

@app.on_event("startup")
async def start_background_workers():
    store = get_store()
    if store.backend == "mongo":
        await ensure_indexes(get_db())

    if not WORKERS_ENABLED:
        return

    asyncio.create_task(link_expiry_worker())
    asyncio.create_task(auto_complete_worker())
    asyncio.create_task(audit_cleanup_worker())
