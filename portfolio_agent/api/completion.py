import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException

from ..config import settings
from ..core.recovery import ProviderCallFailed, RetryExhausted, UnsupportedProvider, retry_with_backoff
from ..services.completion import CompletionService, build_completion_service
from ..types.requests import CompletionRequest
from ..types.responses import CompletionResponse

logger = logging.getLogger(__name__)

router = APIRouter()

_service: Optional[CompletionService] = None


def get_completion_service() -> CompletionService:
    """Lazily build the shared completion service from settings."""
    global _service
    if _service is None:
        if not settings.has_llm_key:
            raise HTTPException(
                status_code=503,
                detail=f"No API key configured for provider: {settings.llm_provider}",
            )
        try:
            _service = build_completion_service()
        except UnsupportedProvider as exc:
            logger.error("Completion service misconfigured: %s", exc)
            raise HTTPException(status_code=500, detail=str(exc)) from exc
    return _service


@router.post("/completion", response_model=CompletionResponse)
async def create_completion(
    request: CompletionRequest,
    service: CompletionService = Depends(get_completion_service),
) -> CompletionResponse:
    """Generate a completion with the configured provider, retried with backoff."""

    async def call() -> str:
        return await service.generate_completion(request.prompt)

    try:
        completion = await retry_with_backoff(
            call,
            settings.default_retry_policy("Failed to generate completion after multiple retries"),
            operation_name="completion",
        )
    except RetryExhausted as exc:
        logger.error("Completion failed: %s", exc)
        raise HTTPException(status_code=502, detail=str(exc)) from exc
    except UnsupportedProvider as exc:
        raise HTTPException(status_code=500, detail=str(exc)) from exc
    except ProviderCallFailed as exc:
        logger.error("Completion rejected by provider: %s", exc)
        raise HTTPException(status_code=502, detail=str(exc)) from exc

    return CompletionResponse(completion=completion, provider=service.kind.value)
