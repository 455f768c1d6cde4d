import logging

from fastapi import APIRouter, Response, status
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from vod_payments.api.dependencies import SessionDep, SettingsDep

logger = logging.getLogger(__name__)
router = APIRouter(tags=["monitoring"])


@router.get("/health")
async def health_check(settings: SettingsDep) -> dict:
    """Liveness plus which integrations have credentials."""
    return {
        "status": "healthy",
        "version": settings.api_version,
        "gateway_configured": settings.gateway_configured,
        "card_gateway_configured": settings.card_gateway_configured,
        "token_signer_configured": settings.token_signer_configured,
        "webhook_signature_required": settings.lanari_pay_verify_webhook_signature,
    }


@router.get("/health/ready")
async def readiness(session: SessionDep) -> JSONResponse:
    try:
        await session.execute(text("SELECT 1"))
    except SQLAlchemyError as exc:
        logger.error("Readiness check failed: database unreachable", exc_info=True)
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"status": "not_ready", "database": type(exc).__name__},
        )
    return JSONResponse(content={"status": "ready", "database": "ok"})


@router.get("/metrics")
async def metrics() -> Response:
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
