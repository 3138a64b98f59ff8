import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from companion_api.core.config import LOG_LEVEL, AUTO_CREATE_TABLES
from companion_api.api.endpoints import auth as auth_api
from companion_api.api.endpoints import referrals as referrals_api
from companion_api.api.endpoints import bonus as bonus_api
from companion_api.api.endpoints import withdrawals as withdrawals_api
from companion_api.api.endpoints import payments as payments_api
from companion_api.api.endpoints import tokens as tokens_api
from companion_api.api.endpoints import settings as settings_api
from companion_api.api.endpoints import admin as admin_api
from companion_api.api.endpoints import cron as cron_api

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)

@asynccontextmanager
async def lifespan(app: FastAPI):
    if AUTO_CREATE_TABLES:
        from companion_api.db.init_db import init_db
        init_db()
    yield

app = FastAPI(title="Companion Monetization API", version="0.1.0", lifespan=lifespan)

# Include API routers
app.include_router(auth_api.router, prefix="/api/v1/auth", tags=["Authentication"])
app.include_router(referrals_api.router, prefix="/api/v1/referrals", tags=["Referrals"])
app.include_router(bonus_api.router, prefix="/api/v1/bonus", tags=["Bonus Wallet"])
app.include_router(withdrawals_api.router, prefix="/api/v1/withdrawals", tags=["Withdrawals"])
app.include_router(payments_api.router, prefix="/api/v1/payments", tags=["Payments"])
app.include_router(tokens_api.router, prefix="/api/v1/tokens", tags=["Tokens"])
app.include_router(settings_api.router, prefix="/api/v1/settings", tags=["Settings"])
app.include_router(admin_api.router, prefix="/api/v1/admin", tags=["Admin"])
app.include_router(cron_api.router, prefix="/api/v1/cron", tags=["Cron"])

@app.get("/ping", tags=["Health Check"])
async def ping():
    return {"message": "pong"}
