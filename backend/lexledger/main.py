"""
LexLedger Practice Billing - FastAPI Backend
CRM, timesheets, rate cards and multi-currency invoicing for a law firm
"""
import logging
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager

from lexledger.api import crm, currency, rate_cards, timesheets, invoices, exports
from lexledger.db.database import engine, Base
from lexledger.core.config import settings as app_settings, configure_logging, init_directories

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize logging, export directory and database on startup"""
    configure_logging()
    init_directories()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("%s %s started", app_settings.APP_NAME, app_settings.APP_VERSION)
    yield


app = FastAPI(
    title=app_settings.APP_NAME,
    description="""
    Practice management backend for a law firm

    ## Features
    - 👥 CRM: leads, clients, contacts, opportunities, interactions
    - ⏱️ Timesheets with expenses, recorded against matters
    - 💳 Rate cards with automatic expiry
    - 🧾 Multi-currency invoices, discounts, splits and payments
    - 🤝 Partner share attribution
    - 📄 Word and PDF invoice exports
    """,
    version=app_settings.APP_VERSION,
    lifespan=lifespan
)

# CORS middleware for frontend
app.add_middleware(
    CORSMiddleware,
    allow_origins=app_settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# API routers
app.include_router(crm, prefix="/api", tags=["CRM"])
app.include_router(rate_cards, prefix="/api/rate-cards", tags=["Rate Cards"])
app.include_router(timesheets, prefix="/api/timesheets", tags=["Timesheets"])
app.include_router(invoices, prefix="/api/invoices", tags=["Invoices"])
app.include_router(currency, prefix="/api/currency", tags=["Currency"])
app.include_router(exports, prefix="/api/exports", tags=["Exports"])


@app.get("/")
async def root():
    return {
        "name": app_settings.APP_NAME,
        "version": app_settings.APP_VERSION,
        "status": "running",
        "modules": {
            "crm": "Leads, clients, contacts, matters, opportunities, interactions",
            "rate_cards": "Hourly rate ranges per lawyer and service type",
            "timesheets": "Time and expense capture",
            "invoices": "Multi-currency invoicing, splits, payments, partner shares",
            "currency": "Live and rate-table currency conversion",
            "exports": "Word, PDF, CSV, TSV and plain-text invoice exports",
        }
    }


@app.get("/health")
async def health_check():
    return {
        "status": "healthy",
        "service": app_settings.APP_NAME,
        "version": app_settings.APP_VERSION,
        "components": {
            "database": "connected",
            "document_renderer": "ready",
        }
    }
