import json
from decimal import Decimal, InvalidOperation
from typing import Any, AsyncIterator, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field

from ..config import settings
from ..core.deposit.errors import UnknownWorkflowError
from ..core.deposit.models import DepositRequest, TokenInfo
from ..core.deposit.orchestrator import DepositOrchestrator, get_deposit_orchestrator
from ..core.deposit.signers import RemoteSigner, WalletSigner

router = APIRouter(prefix="/deposits")


class DepositTokenModel(BaseModel):
    address: str = Field(..., description="Token address, zero-address for the native asset")
    symbol: str = Field(..., description="Token symbol")
    decimals: int = Field(..., ge=0, le=36, description="Token decimals")
    minDeposit: Optional[str] = Field(default=None, description="Override for the minimum deposit (human units)")

    def to_token(self) -> TokenInfo:
        minimum: Optional[Decimal] = None
        if self.minDeposit is not None:
            try:
                minimum = Decimal(self.minDeposit)
            except InvalidOperation:
                raise HTTPException(status_code=422, detail=f"Invalid minDeposit: {self.minDeposit!r}")
        return TokenInfo(address=self.address, symbol=self.symbol, decimals=self.decimals, min_deposit=minimum)


class DepositRequestModel(BaseModel):
    token: DepositTokenModel
    amount: str = Field(..., description="Amount in human units, e.g. '12.5'")
    sourceChainId: int = Field(..., description="Chain the funds are on")
    destinationChainId: int = Field(..., description="Chain whose vault receives the deposit")
    recipient: Optional[str] = Field(default=None, description="Vault beneficiary; defaults to the signer")

    def to_request(self) -> DepositRequest:
        return DepositRequest(
            token=self.token.to_token(),
            amount=self.amount,
            source_chain_id=self.sourceChainId,
            destination_chain_id=self.destinationChainId,
            recipient=self.recipient,
        )


def get_orchestrator() -> DepositOrchestrator:
    return get_deposit_orchestrator()


def get_delegated_signer(
    orchestrator: DepositOrchestrator = Depends(get_orchestrator),
) -> WalletSigner:
    if not settings.has_delegate:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="No delegated signer configured for HTTP deposits",
        )
    return RemoteSigner(settings.delegate_address, orchestrator.rpc)


def _snapshot(orchestrator: DepositOrchestrator, workflow_id: str) -> Dict[str, Any]:
    try:
        return orchestrator.get(workflow_id).to_dict()
    except UnknownWorkflowError:
        raise HTTPException(status_code=404, detail=f"Deposit {workflow_id} not found")


def _sse(payload: Dict[str, Any], event: Optional[str] = None) -> str:
    prefix = f"event: {event}\n" if event else ""
    return f"{prefix}data: {json.dumps(payload, ensure_ascii=False)}\n\n"


async def _event_stream(orchestrator: DepositOrchestrator, workflow_id: str) -> AsyncIterator[str]:
    async for event in orchestrator.subscribe(workflow_id):
        yield _sse(event.to_dict(), event=event.to_state.value)
    yield "data: [DONE]\n\n"


@router.get("/chains")
async def list_chains(orchestrator: DepositOrchestrator = Depends(get_orchestrator)) -> Dict[str, Any]:
    """Chains known to the registry and whether the vault is deployed there."""
    registry = orchestrator.registry
    return {
        "success": True,
        "chains": [
            {
                **info.to_dict(),
                "vault": registry.vault_address(info.chain_id),
                "bridge": registry.bridge_address(info.chain_id),
            }
            for info in registry.all_chains()
        ],
    }


@router.post("/quote")
async def quote_deposit(
    request: DepositRequestModel,
    orchestrator: DepositOrchestrator = Depends(get_orchestrator),
) -> Dict[str, Any]:
    deposit = request.to_request()
    registry = orchestrator.registry
    if not registry.is_pair_supported(deposit.source_chain_id, deposit.destination_chain_id):
        raise HTTPException(
            status_code=400,
            detail=(
                f"Deposits from {registry.get_chain_name(deposit.source_chain_id)} to "
                f"{registry.get_chain_name(deposit.destination_chain_id)} are not supported"
            ),
        )
    quote = await orchestrator.quote_service.get_quote(deposit)
    return {
        "success": quote.feasible,
        "crossChain": deposit.is_cross_chain,
        "minimumDeposit": str(registry.minimum_deposit(deposit.token)),
        "quote": quote.to_dict(),
    }


@router.post("", status_code=status.HTTP_202_ACCEPTED)
async def start_deposit(
    request: DepositRequestModel,
    orchestrator: DepositOrchestrator = Depends(get_orchestrator),
    signer: WalletSigner = Depends(get_delegated_signer),
) -> Dict[str, Any]:
    handle = orchestrator.start_deposit(request.to_request(), signer=signer)
    return {
        "success": True,
        "workflowId": handle.workflow_id,
        "deposit": _snapshot(orchestrator, handle.workflow_id),
    }


@router.get("/{workflow_id}")
async def get_deposit(
    workflow_id: str,
    orchestrator: DepositOrchestrator = Depends(get_orchestrator),
) -> Dict[str, Any]:
    return {"success": True, "deposit": _snapshot(orchestrator, workflow_id)}


@router.get("/{workflow_id}/events")
async def stream_deposit_events(
    workflow_id: str,
    orchestrator: DepositOrchestrator = Depends(get_orchestrator),
) -> StreamingResponse:
    """Server-Sent Events: past transitions first, then live ones until terminal."""
    _snapshot(orchestrator, workflow_id)
    return StreamingResponse(
        _event_stream(orchestrator, workflow_id),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache"},
    )


@router.delete("/{workflow_id}")
async def cancel_deposit(
    workflow_id: str,
    orchestrator: DepositOrchestrator = Depends(get_orchestrator),
) -> Dict[str, Any]:
    try:
        cancelled = await orchestrator.cancel(workflow_id)
    except UnknownWorkflowError:
        raise HTTPException(status_code=404, detail=f"Deposit {workflow_id} not found")
    return {
        "success": True,
        "cancelled": cancelled,
        "deposit": _snapshot(orchestrator, workflow_id),
    }
