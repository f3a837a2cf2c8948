"""
Facebook Ads Connector — FastAPI Backend
Connects local accounts to Facebook via OAuth, keeps their long-lived tokens
fresh, and creates and manages ads through the Graph API.
All data persisted to PostgreSQL.
"""

import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from adsconnect.config import get_settings
from adsconnect.database import init_db, check_db_connection
from adsconnect.routers import cron, facebook, oauth

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Starting Facebook Ads Connector...")
    try:
        await init_db()
        logger.info("Database initialized — all tables ready.")
    except Exception as e:
        logger.error(f"Startup failed (DB/init): {e}", exc_info=True)
        # Still yield so app can serve /api/health (degraded) and logs are visible
    yield
    logger.info("Shutting down...")


app = FastAPI(
    title="Facebook Ads Connector",
    description="Facebook OAuth, token lifecycle and ad creation over the Graph API",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origin_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ── Register Routers ─────────────────────────────────────────────────
# OAuth callback is public (identity comes from the state token); login-url requires JWT
app.include_router(oauth.router, prefix="/api")
app.include_router(facebook.router, prefix="/api/facebook", tags=["Facebook"])
app.include_router(cron.router, prefix="/api")  # No JWT — uses CRON_SECRET


@app.get("/api/health")
async def health_check():
    db_ok = await check_db_connection()
    return {
        "status": "healthy" if db_ok else "degraded",
        "service": "Facebook Ads Connector",
        "database": "connected" if db_ok else "disconnected",
    }
