from fastapi import APIRouter
from typing import Dict, Any

from ..agent_runtime import get_runtime
from ..config import settings
from ..core.portfolio import get_scanner
from ..providers.llm import get_available_providers

router = APIRouter()


@router.get("/healthz")
async def health_check() -> Dict[str, Any]:
    """Health check: provider configuration, runtime and scanner state"""

    providers = get_available_providers()
    configured = [name for name, info in providers.items() if info["status"] == "available"]
    active_ready = settings.has_llm_key

    return {
        "status": "healthy" if active_ready else "degraded",
        "active_provider": settings.llm_provider,
        "private_mode_enabled": settings.private_mode_enabled,
        "providers": providers,
        "available_providers": len(configured),
        "total_providers": len(providers),
        "runtime": {
            "enabled": settings.agent_runtime_enabled,
            "running": get_runtime().is_running,
        },
        "scanner": get_scanner().status(),
    }
