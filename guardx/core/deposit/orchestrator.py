"""
Deposit Orchestrator

Runs one deposit workflow per request as its own asyncio task:
validation, network switch, quote, source transaction, bridge tracking,
and destination settlement.
"""

import asyncio
import copy
import logging
from collections import OrderedDict
from dataclasses import dataclass
from typing import AsyncIterator, Awaitable, Callable, Dict, List, Optional, Set, Union

import structlog
from eth_utils import to_checksum_address

from ...config import settings
from ...providers.rpc import ChainRpcClient, get_rpc_client
from ..recovery import RecoverableError, UserRejectedError
from .chain_registry import ChainRegistry, get_chain_registry
from .errors import (
    BridgeFailedError,
    DepositError,
    QuoteRejectedError,
    UnknownWorkflowError,
    ValidationError,
    WorkflowCancelledError,
    WrongNetworkError,
)
from .execution import DestinationSettlementAdapter, SourceExecutionAdapter
from .models import (
    BridgeOrderStatus,
    DepositRequest,
    FailureReason,
    WorkflowContext,
    WorkflowEvent,
    WorkflowFailure,
    WorkflowState,
)
from .poller import BridgeStatusPoller
from .quote_service import QuoteService
from .signers import WalletSigner
from .state_machine import DepositStateMachine
from .tx_builder import is_valid_address, to_base_units


logger = logging.getLogger(__name__)

# Failure reason used when a step raises something other than a DepositError
STEP_FAILURE_REASONS: Dict[WorkflowState, FailureReason] = {
    WorkflowState.IDLE: FailureReason.VALIDATION_ERROR,
    WorkflowState.VALIDATING: FailureReason.VALIDATION_ERROR,
    WorkflowState.SWITCHING_NETWORK: FailureReason.WRONG_NETWORK,
    WorkflowState.QUOTING: FailureReason.QUOTE_REJECTED,
    WorkflowState.SUBMITTING_SOURCE: FailureReason.SOURCE_TX_FAILED,
    WorkflowState.AWAITING_SOURCE_CONFIRMATION: FailureReason.SOURCE_TX_REVERTED,
    WorkflowState.AWAITING_BRIDGE_COMPLETION: FailureReason.BRIDGE_STATUS_UNAVAILABLE,
    WorkflowState.SUBMITTING_DESTINATION: FailureReason.DESTINATION_TX_FAILED,
    WorkflowState.AWAITING_DESTINATION_CONFIRMATION: FailureReason.DESTINATION_TX_FAILED,
}


@dataclass(frozen=True)
class WorkflowHandle:
    """Opaque reference to a running or finished deposit workflow."""

    workflow_id: str


HandleLike = Union[WorkflowHandle, str]


class DepositWorkflow:
    """
    One deposit request driven through the state machine.

    ``step()`` performs exactly one transition. ``run()`` steps until a
    terminal state and is the body of the workflow's task.
    """

    def __init__(
        self,
        context: WorkflowContext,
        *,
        signer: WalletSigner,
        settlement_signer: Optional[WalletSigner],
        registry: ChainRegistry,
        quote_service: QuoteService,
        source_adapter: SourceExecutionAdapter,
        settlement_adapter: DestinationSettlementAdapter,
        poller: BridgeStatusPoller,
        rpc: ChainRpcClient,
        bridge_deadline_seconds: float,
        network_switch_timeout_seconds: float,
    ) -> None:
        self.context = context
        self.machine = DepositStateMachine(context, logger=logger)
        self.signer = signer
        self.settlement_signer = settlement_signer or signer
        self.registry = registry
        self.quote_service = quote_service
        self.source_adapter = source_adapter
        self.settlement_adapter = settlement_adapter
        self.poller = poller
        self.rpc = rpc
        self.bridge_deadline_seconds = bridge_deadline_seconds
        self.network_switch_timeout_seconds = network_switch_timeout_seconds
        self.done = asyncio.Event()
        self._subscribers: Set[asyncio.Queue] = set()
        self.machine.add_listener(self._publish)

        self._handlers: Dict[WorkflowState, Callable[[], Awaitable[None]]] = {
            WorkflowState.IDLE: self._start,
            WorkflowState.VALIDATING: self._validate,
            WorkflowState.SWITCHING_NETWORK: self._switch_network,
            WorkflowState.QUOTING: self._quote,
            WorkflowState.SUBMITTING_SOURCE: self._submit_source,
            WorkflowState.AWAITING_SOURCE_CONFIRMATION: self._await_source,
            WorkflowState.AWAITING_BRIDGE_COMPLETION: self._await_bridge,
            WorkflowState.SUBMITTING_DESTINATION: self._submit_destination,
            WorkflowState.AWAITING_DESTINATION_CONFIRMATION: self._await_destination,
        }

    @property
    def workflow_id(self) -> str:
        return self.context.workflow_id

    @property
    def request(self) -> DepositRequest:
        return self.context.request

    # ─────────────────────────────────────────────────────────────────────────
    # Subscribers
    # ─────────────────────────────────────────────────────────────────────────

    def add_subscriber(self, queue: asyncio.Queue) -> None:
        self._subscribers.add(queue)

    def remove_subscriber(self, queue: asyncio.Queue) -> None:
        self._subscribers.discard(queue)

    def _publish(self, event: WorkflowEvent) -> None:
        for queue in list(self._subscribers):
            queue.put_nowait(event)
        if event.is_terminal:
            self.done.set()

    # ─────────────────────────────────────────────────────────────────────────
    # Driving
    # ─────────────────────────────────────────────────────────────────────────

    async def run(self) -> WorkflowContext:
        structlog.contextvars.bind_contextvars(workflow_id=self.workflow_id)
        try:
            while not self.context.is_terminal:
                await self.step()
        except asyncio.CancelledError:
            self.fail_cancelled()
            raise
        return self.context

    async def step(self) -> None:
        """Perform one transition out of the current state."""
        state = self.context.state
        handler = self._handlers.get(state)
        if handler is None:
            return

        try:
            await handler()
        except DepositError as exc:
            self._fail(exc.to_failure())
        except Exception as exc:
            logger.exception("Unexpected error in %s", state.value)
            self._fail(
                WorkflowFailure(
                    reason=STEP_FAILURE_REASONS[state],
                    message=f"Unexpected error while {state.value.replace('_', ' ')}: {exc}",
                    retryable=False,
                    funds_in_flight=self.context.has_broadcast,
                    details={"errorType": type(exc).__name__},
                )
            )

    def fail_cancelled(self) -> None:
        """Drive a non-terminal workflow to Failed(Cancelled)."""
        if self.context.is_terminal:
            return
        state = self.context.state
        # A signer call that was interrupted may still have broadcast
        submitting = state in (WorkflowState.SUBMITTING_SOURCE, WorkflowState.SUBMITTING_DESTINATION)
        if self.context.has_broadcast:
            message = "Cancelled after a transaction was broadcast; funds may be in flight"
        elif submitting:
            message = "Cancelled while a transaction was being submitted; it may have been broadcast"
        else:
            message = "Cancelled before any transaction was broadcast"
        in_flight = self.context.has_broadcast or submitting
        error = WorkflowCancelledError(
            message,
            retryable=not in_flight,
            funds_in_flight=in_flight,
            details={"cancelledIn": state.value},
        )
        self._fail(error.to_failure())

    def _fail(self, failure: WorkflowFailure) -> None:
        ctx = self.context
        for key, value in (
            ("sourceTxHash", ctx.source_tx_hash),
            ("orderId", ctx.order.order_id if ctx.order else None),
            ("destinationTxHash", ctx.destination_tx_hash),
        ):
            if value and key not in failure.details:
                failure.details[key] = value
        self.machine.fail(failure)

    # ─────────────────────────────────────────────────────────────────────────
    # Steps
    # ─────────────────────────────────────────────────────────────────────────

    async def _start(self) -> None:
        self.machine.transition_to(
            WorkflowState.VALIDATING,
            detail={"crossChain": self.request.is_cross_chain},
        )

    async def _validate(self) -> None:
        request = self.request
        token = request.token
        source, destination = request.source_chain_id, request.destination_chain_id

        amount = request.parsed_amount()
        if amount is None or amount <= 0:
            raise ValidationError(f"Amount must be a positive number, got {request.amount!r}")

        minimum = self.registry.minimum_deposit(token)
        if amount < minimum:
            raise ValidationError(
                f"Minimum deposit is {minimum} {token.symbol}",
                details={"minimum": str(minimum)},
            )

        if not self.registry.is_pair_supported(source, destination):
            raise ValidationError(
                f"Deposits from {self.registry.get_chain_name(source)} to "
                f"{self.registry.get_chain_name(destination)} are not supported"
            )

        if request.is_cross_chain and self.registry.bridge_address(source) is None:
            raise ValidationError(
                f"Cross-chain deposits are not available from {self.registry.get_chain_name(source)}"
            )

        signer_address = await self.signer.get_address()
        recipient = request.recipient or signer_address
        if not is_valid_address(recipient):
            raise ValidationError(f"Invalid recipient address: {recipient!r}")
        self.context.recipient = to_checksum_address(recipient)

        try:
            balance = await self.rpc.get_balance(source, token.address, signer_address)
        except RecoverableError as exc:
            raise ValidationError(f"Could not read balance: {exc.message}", retryable=True) from exc
        required = to_base_units(amount, token.decimals)
        if balance < required:
            raise ValidationError(
                f"Insufficient {token.symbol} balance",
                details={"required": str(required), "available": str(balance)},
            )

        if not request.is_cross_chain:
            # Trivial quote; same-chain deposits never enter QUOTING
            self.context.quote = await self.quote_service.get_quote(request)

        if await self._active_chain() != source:
            self.machine.transition_to(WorkflowState.SWITCHING_NETWORK, detail={"targetChainId": source})
        else:
            self._after_network_ready()

    async def _switch_network(self) -> None:
        target = self.request.source_chain_id
        try:
            await asyncio.wait_for(
                self.signer.switch_chain(target),
                timeout=self.network_switch_timeout_seconds,
            )
        except asyncio.TimeoutError as exc:
            raise WrongNetworkError(f"Network switch to chain {target} timed out") from exc
        except UserRejectedError as exc:
            raise WrongNetworkError(f"Network switch rejected: {exc.message}") from exc
        except RecoverableError as exc:
            raise WrongNetworkError(f"Network switch to chain {target} failed: {exc.message}") from exc

        active = await self._active_chain()
        if active != target:
            raise WrongNetworkError(
                f"Wallet is on chain {active}, expected {target}",
                details={"activeChainId": active, "expectedChainId": target},
            )
        self._after_network_ready()

    def _after_network_ready(self) -> None:
        if self.request.is_cross_chain:
            self.machine.transition_to(WorkflowState.QUOTING)
        else:
            self.machine.transition_to(
                WorkflowState.SUBMITTING_SOURCE,
                detail={"quote": self.context.quote.to_dict() if self.context.quote else None},
            )

    async def _quote(self) -> None:
        quote = await self.quote_service.get_quote(self.request)
        self.context.quote = quote
        if not quote.feasible:
            raise QuoteRejectedError(
                "; ".join(quote.errors) or "Bridge route rejected",
                details={"errorCode": quote.error_code, "errors": list(quote.errors)},
            )
        self.machine.transition_to(WorkflowState.SUBMITTING_SOURCE, detail={"quote": quote.to_dict()})

    async def _submit_source(self) -> None:
        submitted = await self.source_adapter.submit(
            self.request,
            self.context.quote,
            signer=self.signer,
            recipient=self.context.recipient,
        )
        self.context.source_tx = submitted
        self.machine.transition_to(
            WorkflowState.AWAITING_SOURCE_CONFIRMATION,
            detail={"txHash": submitted.tx_hash, "chainId": submitted.chain_id},
        )

    async def _await_source(self) -> None:
        receipt = await self.source_adapter.confirm(self.context.source_tx)
        self.context.source_receipt = receipt

        if not self.request.is_cross_chain:
            self.machine.complete(detail={"txHash": receipt.tx_hash, "blockNumber": receipt.block_number})
            return

        # The order only exists once the source transaction is confirmed
        order = await self.poller.open_order(receipt.tx_hash)
        self.context.order = order
        self.machine.transition_to(
            WorkflowState.AWAITING_BRIDGE_COMPLETION,
            detail={"orderId": order.order_id, "synthetic": order.synthetic},
        )

    async def _await_bridge(self) -> None:
        order = await self.poller.poll_until_terminal(self.context.order, self.bridge_deadline_seconds)
        if order.status is BridgeOrderStatus.FAILED:
            raise BridgeFailedError(
                f"Bridge order {order.order_id} failed ({order.provider_status})",
                details={"providerStatus": order.provider_status},
            )
        self.machine.transition_to(
            WorkflowState.SUBMITTING_DESTINATION,
            detail={"orderId": order.order_id, "bridgeTxHash": order.destination_tx_hash},
        )

    async def _submit_destination(self) -> None:
        submitted = await self.settlement_adapter.settle(
            self.context.order,
            self.request,
            self.context.quote,
            signer=self.settlement_signer,
        )
        self.context.destination_tx = submitted
        self.machine.transition_to(
            WorkflowState.AWAITING_DESTINATION_CONFIRMATION,
            detail={"txHash": submitted.tx_hash, "chainId": submitted.chain_id},
        )

    async def _await_destination(self) -> None:
        receipt = await self.settlement_adapter.confirm(self.context.destination_tx)
        self.context.destination_receipt = receipt
        self.machine.complete(detail={"txHash": receipt.tx_hash, "blockNumber": receipt.block_number})

    async def _active_chain(self) -> Optional[int]:
        try:
            return await self.signer.get_chain_id()
        except RecoverableError:
            return None


class DepositOrchestrator:
    """
    Starts, tracks, and cancels deposit workflows.

    Workflows share only the read-only chain registry and stateless
    clients. Finished workflows are kept for lookups up to
    ``max_retained`` and evicted oldest first.

    Usage:
        orchestrator = get_deposit_orchestrator()
        handle = orchestrator.start_deposit(request, signer=wallet)
        async for event in orchestrator.subscribe(handle):
            ...
    """

    def __init__(
        self,
        *,
        registry: Optional[ChainRegistry] = None,
        quote_service: Optional[QuoteService] = None,
        source_adapter: Optional[SourceExecutionAdapter] = None,
        settlement_adapter: Optional[DestinationSettlementAdapter] = None,
        poller: Optional[BridgeStatusPoller] = None,
        rpc: Optional[ChainRpcClient] = None,
        bridge_deadline_seconds: Optional[float] = None,
        network_switch_timeout_seconds: Optional[float] = None,
        max_retained: Optional[int] = None,
    ) -> None:
        self.registry = registry or get_chain_registry()
        self.rpc = rpc or get_rpc_client()
        self.quote_service = quote_service or QuoteService(registry=self.registry)
        self.source_adapter = source_adapter or SourceExecutionAdapter(self.rpc, self.registry)
        self.settlement_adapter = settlement_adapter or DestinationSettlementAdapter(self.rpc, self.registry)
        self.poller = poller or BridgeStatusPoller()
        self.bridge_deadline_seconds = bridge_deadline_seconds or settings.bridge_deadline_seconds
        self.network_switch_timeout_seconds = (
            network_switch_timeout_seconds or settings.network_switch_timeout_seconds
        )
        self.max_retained = max_retained or settings.max_retained_workflows

        self._workflows: Dict[str, DepositWorkflow] = {}
        self._tasks: Dict[str, asyncio.Task] = {}
        self._finished: "OrderedDict[str, None]" = OrderedDict()

    # ─────────────────────────────────────────────────────────────────────────
    # Caller API
    # ─────────────────────────────────────────────────────────────────────────

    def start_deposit(
        self,
        request: DepositRequest,
        *,
        signer: WalletSigner,
        settlement_signer: Optional[WalletSigner] = None,
    ) -> WorkflowHandle:
        """Start a workflow for ``request`` and return immediately."""
        context = WorkflowContext(request=request)
        workflow = DepositWorkflow(
            context,
            signer=signer,
            settlement_signer=settlement_signer,
            registry=self.registry,
            quote_service=self.quote_service,
            source_adapter=self.source_adapter,
            settlement_adapter=self.settlement_adapter,
            poller=self.poller,
            rpc=self.rpc,
            bridge_deadline_seconds=self.bridge_deadline_seconds,
            network_switch_timeout_seconds=self.network_switch_timeout_seconds,
        )
        workflow_id = workflow.workflow_id
        self._workflows[workflow_id] = workflow

        task = asyncio.create_task(workflow.run(), name=f"deposit-{workflow_id}")
        self._tasks[workflow_id] = task
        task.add_done_callback(lambda t, wf=workflow: self._on_task_done(wf, t))

        logger.info(
            "Deposit %s started: %s %s from chain %s to chain %s",
            workflow_id,
            request.amount,
            request.token.symbol,
            request.source_chain_id,
            request.destination_chain_id,
        )
        return WorkflowHandle(workflow_id)

    async def subscribe(self, handle: HandleLike) -> AsyncIterator[WorkflowEvent]:
        """Yield past events, then live ones; ends after the terminal event."""
        workflow = self._require(handle)
        queue: asyncio.Queue = asyncio.Queue()

        # Snapshot and registration happen without an await in between
        history = list(workflow.context.history)
        if not workflow.context.is_terminal:
            workflow.add_subscriber(queue)

        try:
            for event in history:
                yield event
                if event.is_terminal:
                    return
            while True:
                event = await queue.get()
                yield event
                if event.is_terminal:
                    return
        finally:
            workflow.remove_subscriber(queue)

    async def cancel(self, handle: HandleLike) -> bool:
        """Cancel a running workflow. Returns False when it already finished."""
        workflow = self._require(handle)
        if workflow.context.is_terminal:
            return False

        task = self._tasks.get(workflow.workflow_id)
        if task is not None and not task.done():
            task.cancel()
            await asyncio.wait({task})
        # Covers a task that finished without reaching a terminal state
        workflow.fail_cancelled()
        logger.info("Deposit %s cancelled", workflow.workflow_id)
        return True

    def get(self, handle: HandleLike) -> WorkflowContext:
        """Snapshot of the workflow's current context."""
        return copy.deepcopy(self._require(handle).context)

    async def wait(self, handle: HandleLike, timeout: Optional[float] = None) -> WorkflowContext:
        """Wait for the workflow to reach a terminal state."""
        workflow = self._require(handle)
        await asyncio.wait_for(workflow.done.wait(), timeout=timeout)
        return self.get(handle)

    def list_workflows(self) -> List[WorkflowContext]:
        return [copy.deepcopy(wf.context) for wf in self._workflows.values()]

    @property
    def active_count(self) -> int:
        return sum(1 for wf in self._workflows.values() if not wf.context.is_terminal)

    async def close(self) -> None:
        """Cancel all running workflows."""
        running = [task for task in self._tasks.values() if not task.done()]
        for task in running:
            task.cancel()
        if running:
            await asyncio.wait(running)

    # ─────────────────────────────────────────────────────────────────────────
    # Internals
    # ─────────────────────────────────────────────────────────────────────────

    def _require(self, handle: HandleLike) -> DepositWorkflow:
        workflow_id = handle.workflow_id if isinstance(handle, WorkflowHandle) else str(handle)
        workflow = self._workflows.get(workflow_id)
        if workflow is None:
            raise UnknownWorkflowError(workflow_id)
        return workflow

    def _on_task_done(self, workflow: DepositWorkflow, task: asyncio.Task) -> None:
        # A task cancelled before its first step never ran run()
        if not workflow.context.is_terminal:
            workflow.fail_cancelled()
        if not task.cancelled() and task.exception() is not None:
            logger.error("Deposit %s task crashed: %r", workflow.workflow_id, task.exception())

        self._tasks.pop(workflow.workflow_id, None)
        self._finished[workflow.workflow_id] = None
        while len(self._finished) > self.max_retained:
            evicted, _ = self._finished.popitem(last=False)
            self._workflows.pop(evicted, None)


# Module-level singleton for convenience
_orchestrator: Optional[DepositOrchestrator] = None


def get_deposit_orchestrator() -> DepositOrchestrator:
    """Get or create the default orchestrator singleton."""
    global _orchestrator
    if _orchestrator is None:
        _orchestrator = DepositOrchestrator()
    return _orchestrator


async def close_deposit_orchestrator() -> None:
    """Cancel running workflows and release the RPC client, if started."""
    global _orchestrator
    if _orchestrator is None:
        return
    await _orchestrator.close()
    await _orchestrator.rpc.close()
    _orchestrator = None
