"""
Health check endpoint.
"""
from fastapi import APIRouter, Depends
from datetime import datetime
import logging

from app.config import settings
from app.dependencies.services import get_llm_service
from app.models.schemas import HealthCheckResponse
from app.services.llm_service import OpenAIChatService

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/", response_model=HealthCheckResponse)
async def health_check(llm: OpenAIChatService = Depends(get_llm_service)):
    """
    Health check endpoint to verify system status.

    Returns:
        HealthCheckResponse with status of the LLM API and Google credentials
    """
    llm_status = "ok"
    try:
        if not await llm.check_health():
            llm_status = "error"
    except Exception as e:
        logger.error(f"LLM health check failed: {e}")
        llm_status = "error"

    google_status = "ok" if settings.has_google_credentials() else "unconfigured"

    overall_status = "healthy" if llm_status == "ok" and google_status == "ok" else "degraded"

    return HealthCheckResponse(
        status=overall_status,
        llm=llm_status,
        google=google_status,
        timestamp=datetime.utcnow()
    )
