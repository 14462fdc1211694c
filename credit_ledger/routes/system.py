from __future__ import annotations
import structlog
from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from datetime import datetime, timezone
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from credit_ledger.config import settings
from credit_ledger.db import get_session

log = structlog.get_logger()

router = APIRouter()

@router.get("/health")
async def health(request: Request, session: AsyncSession = Depends(get_session)):
    body = {
        "status": "ok",
        "db": "ok",
        "env": settings.environment,
        "time": datetime.now(timezone.utc).isoformat(),
        "request_id": request.headers.get("x-request-id") or request.state.request_id,
    }
    try:
        await session.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        log.warning("health_db_unavailable", error=str(e))
        body.update(status="degraded", db="unavailable")
        return JSONResponse(body, status_code=503)
    return body

@router.get("/version")
async def version():
    return {
        "name": settings.app_name,
        "display_name": settings.app_display_name,
        "version": settings.app_version,
        "git_sha": settings.git_sha,
        "genesis_initial_grant": settings.genesis_initial_grant,
        "contribution_caps": {
            "daily": settings.contribution_daily_cap,
            "weekly": settings.contribution_weekly_cap,
        },
    }
