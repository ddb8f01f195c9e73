from __future__ import annotations

import logging

from fastapi import Request
from fastapi.responses import JSONResponse

from creator_ledger.core.errors import LedgerError

logger = logging.getLogger(__name__)


async def ledger_error_handler(request: Request, exc: LedgerError) -> JSONResponse:
    """Render a LedgerError as ``{"error": code, "message": msg}``."""
    log_extra = {
        "error.code": exc.code,
        "error.kind": type(exc).__name__,
        "path": request.url.path,
        **{f"error.ctx.{k}": v for k, v in exc.context.items()},
    }
    if exc.status_code >= 500:
        logger.error(exc.message, extra=log_extra)
    else:
        logger.warning(exc.message, extra=log_extra)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())
