from __future__ import annotations

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from creator_ledger.core.errors import LedgerError
from creator_ledger.core.logging import setup_logging
from creator_ledger.core.settings import S
from creator_ledger.error_handler import ledger_error_handler
from creator_ledger.metrics import METRICS_ENABLED, metrics_endpoint, metrics_middleware, set_app_info
from creator_ledger.routers.earnings import router as earnings_router
from creator_ledger.routers.misc import router as misc_router
from creator_ledger.routers.subscriptions import router as subscriptions_router
from creator_ledger.routers.tips import router as tips_router
from creator_ledger.routers.webhooks import router as webhooks_router


def create_app() -> FastAPI:
    setup_logging(S.log_level, S.log_json)
    app = FastAPI(title="Creator Ledger", version="0.1.0")

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(LedgerError, ledger_error_handler)

    if METRICS_ENABLED:
        app.middleware("http")(metrics_middleware)
        set_app_info(app.title, app.version)
        app.get("/metrics")(metrics_endpoint)

    app.include_router(misc_router)
    app.include_router(tips_router)
    app.include_router(earnings_router)
    app.include_router(subscriptions_router)
    app.include_router(webhooks_router)

    return app

app = create_app()
