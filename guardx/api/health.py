from fastapi import APIRouter, Depends
from typing import Dict, Any

from ..config import settings
from ..core.deposit.orchestrator import DepositOrchestrator
from ..providers.debridge import get_debridge_provider
from .deposits import get_orchestrator

router = APIRouter()


@router.get("/healthz")
async def health_check(orchestrator: DepositOrchestrator = Depends(get_orchestrator)) -> Dict[str, Any]:
    """Health check endpoint that verifies provider status"""

    provider_status = {
        "debridge": await get_debridge_provider().health_check(),
        "rpc": await orchestrator.rpc.health_check(),
    }

    all_healthy = all(
        status["status"] == "healthy"
        for status in provider_status.values()
    )

    return {
        "status": "healthy" if all_healthy else "degraded",
        "providers": provider_status,
        "deposits": {
            "active": orchestrator.active_count,
            "deployedChains": [info.chain_id for info in orchestrator.registry.deployed_chains()],
            "delegateConfigured": settings.has_delegate,
        },
    }
