"""
Source and destination execution adapters.

Handles the chain-local half of a deposit:
- Approving the vault or bridge to pull ERC-20 tokens
- Building the vault or bridge call
- Handing it to the wallet signer (bounded wait)
- Retrying transient broadcast failures
- Waiting for one confirmation
"""

import asyncio
import logging
from typing import Optional, Type

from ...config import settings
from ...providers.rpc import ChainRpcClient, get_rpc_client
from ..recovery import (
    ConfirmationTimeoutError,
    RecoverableError,
    RetryConfig,
    RetryStrategy,
    TransactionRevertedError,
    UserRejectedError,
    classify_error,
)
from .chain_registry import ChainRegistry, get_chain_registry
from .errors import (
    DepositError,
    DestinationTxFailedError,
    SourceTxFailedError,
    SourceTxRevertedError,
)
from .models import BridgeOrder, DepositRequest, Quote, SubmittedTransaction, TokenInfo, TransactionReceipt
from .signers import WalletSigner
from .tx_builder import PreparedTransaction, TransactionBuilder, to_base_units


logger = logging.getLogger(__name__)


class _ChainAdapter:
    """Broadcast and confirmation plumbing shared by both adapters."""

    failure_error: Type[DepositError] = SourceTxFailedError

    def __init__(
        self,
        rpc: Optional[ChainRpcClient] = None,
        registry: Optional[ChainRegistry] = None,
        *,
        retry_config: Optional[RetryConfig] = None,
        signer_timeout_seconds: Optional[float] = None,
        confirmation_timeout_seconds: Optional[float] = None,
        confirmation_poll_interval: Optional[float] = None,
    ) -> None:
        self._rpc = rpc
        self._registry = registry or get_chain_registry()
        self._retry = RetryStrategy(
            retry_config or RetryConfig(max_attempts=settings.rpc_max_retries),
            logger=logger,
        )
        self.signer_timeout_seconds = signer_timeout_seconds or settings.signer_timeout_seconds
        self.confirmation_timeout_seconds = confirmation_timeout_seconds
        self.confirmation_poll_interval = confirmation_poll_interval

    @property
    def rpc(self) -> ChainRpcClient:
        if self._rpc is None:
            self._rpc = get_rpc_client()
        return self._rpc

    async def _broadcast(self, signer: WalletSigner, tx: PreparedTransaction) -> SubmittedTransaction:
        async def _send() -> str:
            return await asyncio.wait_for(
                signer.send_transaction(tx),
                timeout=self.signer_timeout_seconds,
            )

        try:
            tx_hash = await self._retry.execute(_send, context={"operation": f"broadcast {tx.call_type.value}"})
        except asyncio.TimeoutError as exc:
            raise self.failure_error(
                f"No signature within {self.signer_timeout_seconds:g}s",
                retryable=True,
                details={"chainId": tx.chain_id},
            ) from exc
        except UserRejectedError as exc:
            raise self.failure_error(
                f"Transaction rejected in wallet: {exc.message}",
                retryable=False,
                details={"chainId": tx.chain_id, "userRejected": True},
            ) from exc
        except TransactionRevertedError as exc:
            raise self.failure_error(
                f"Transaction would revert: {exc.revert_reason or exc.message}",
                retryable=False,
                details={"chainId": tx.chain_id, "revertReason": exc.revert_reason},
            ) from exc
        except RecoverableError as exc:
            raise self.failure_error(
                f"Broadcast failed after {self._retry.config.max_attempts} attempts: {exc.message}",
                retryable=True,
                details={"chainId": tx.chain_id, "category": exc.category.value},
            ) from exc
        except DepositError:
            raise
        except Exception as exc:
            context = classify_error(exc)
            raise self.failure_error(
                f"Broadcast failed: {exc}",
                retryable=context.recoverable,
                details={"chainId": tx.chain_id, "category": context.category.value},
            ) from exc

        logger.info("Broadcast %s on chain %s: %s", tx.call_type.value, tx.chain_id, tx_hash)
        return SubmittedTransaction(tx_hash=tx_hash, chain_id=tx.chain_id)

    async def _wait_for_receipt(self, submitted: SubmittedTransaction, timeout: float) -> TransactionReceipt:
        return await self.rpc.wait_for_confirmation(
            submitted.chain_id,
            submitted.tx_hash,
            timeout_seconds=timeout,
            required_confirmations=1,
            poll_interval=self.confirmation_poll_interval,
        )

    def _confirmation_timeout(self) -> float:
        return self.confirmation_timeout_seconds or settings.source_confirmation_timeout_seconds

    async def _ensure_allowance(
        self,
        signer: WalletSigner,
        chain_id: int,
        token: TokenInfo,
        owner: str,
        spender: str,
        amount: int,
    ) -> Optional[str]:
        """
        Approve ``spender`` for ``amount`` when the current allowance is short.

        Returns the approval tx hash, or None when no approval was needed.
        """
        if token.is_native:
            return None

        try:
            allowance = await self.rpc.get_allowance(chain_id, token.address, owner, spender)
        except RecoverableError as exc:
            raise self.failure_error(
                f"Could not read {token.symbol} allowance: {exc.message}",
                retryable=True,
                details={"chainId": chain_id},
            ) from exc
        if allowance >= amount:
            return None

        logger.info(
            "Allowance %s < %s for %s on chain %s; approving %s",
            allowance, amount, token.symbol, chain_id, spender,
        )
        approval = TransactionBuilder.build_approval(
            chain_id=chain_id,
            from_address=owner,
            token_address=token.address,
            spender=spender,
            amount=amount,
        )
        submitted = await self._broadcast(signer, approval)
        details = {"chainId": chain_id, "approvalTxHash": submitted.tx_hash}

        try:
            await self._wait_for_receipt(submitted, self._confirmation_timeout())
        except TransactionRevertedError as exc:
            raise self.failure_error(
                f"{token.symbol} approval reverted", retryable=False, details=details
            ) from exc
        except ConfirmationTimeoutError as exc:
            raise self.failure_error(
                f"{token.symbol} approval not confirmed: {exc.message}", retryable=True, details=details
            ) from exc
        return submitted.tx_hash


class SourceExecutionAdapter(_ChainAdapter):
    """Submits the source-chain transaction through the user's signer."""

    failure_error = SourceTxFailedError

    async def submit(
        self,
        request: DepositRequest,
        quote: Quote,
        *,
        signer: WalletSigner,
        recipient: str,
    ) -> SubmittedTransaction:
        amount = request.parsed_amount()
        if amount is None or amount <= 0:
            raise SourceTxFailedError(f"Invalid amount: {request.amount!r}", retryable=False)

        token = request.token
        amount_units = to_base_units(amount, token.decimals)
        from_address = await signer.get_address()

        if request.is_cross_chain:
            bridge = self._registry.bridge_address(request.source_chain_id)
            if bridge is None:
                raise SourceTxFailedError(
                    f"No bridge contract on chain {request.source_chain_id}", retryable=False
                )
            spender = bridge
            tx = TransactionBuilder.build_cross_chain_deposit(
                chain_id=request.source_chain_id,
                from_address=from_address,
                bridge_address=bridge,
                token_address=token.address,
                amount=amount_units,
                destination_chain_id=request.destination_chain_id,
                recipient=recipient,
                is_native=token.is_native,
            )
        else:
            vault = self._registry.vault_address(request.source_chain_id)
            if vault is None:
                raise SourceTxFailedError(
                    f"No vault contract on chain {request.source_chain_id}", retryable=False
                )
            spender = vault
            tx = TransactionBuilder.build_vault_deposit(
                chain_id=request.source_chain_id,
                from_address=from_address,
                vault_address=vault,
                token_address=token.address,
                amount=amount_units,
                is_native=token.is_native,
            )

        approval_tx_hash = await self._ensure_allowance(
            signer, request.source_chain_id, token, from_address, spender, amount_units
        )
        submitted = await self._broadcast(signer, tx)
        submitted.approval_tx_hash = approval_tx_hash
        return submitted

    async def confirm(self, submitted: SubmittedTransaction) -> TransactionReceipt:
        try:
            return await self._wait_for_receipt(submitted, self._confirmation_timeout())
        except TransactionRevertedError as exc:
            raise SourceTxRevertedError(
                exc.message,
                details={"txHash": submitted.tx_hash, "chainId": submitted.chain_id},
            ) from exc
        except ConfirmationTimeoutError as exc:
            # The transaction may still land after we stop watching
            raise SourceTxRevertedError(
                exc.message,
                funds_in_flight=True,
                details={"txHash": submitted.tx_hash, "chainId": submitted.chain_id, "timedOut": True},
            ) from exc


class DestinationSettlementAdapter(_ChainAdapter):
    """Deposits bridged funds into the destination vault."""

    failure_error = DestinationTxFailedError

    def __init__(self, *args, network_switch_timeout_seconds: Optional[float] = None, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.network_switch_timeout_seconds = (
            network_switch_timeout_seconds or settings.network_switch_timeout_seconds
        )

    async def settle(
        self,
        order: BridgeOrder,
        request: DepositRequest,
        quote: Quote,
        *,
        signer: WalletSigner,
    ) -> SubmittedTransaction:
        destination = request.destination_chain_id
        await self._ensure_chain(signer, destination)

        vault = self._registry.vault_address(destination)
        if vault is None:
            raise DestinationTxFailedError(f"No vault contract on chain {destination}", retryable=False)

        token = self._registry.destination_token(request.source_chain_id, destination, request.token)
        amount_units = order.amount_out
        if amount_units is None:
            amount_units = to_base_units(quote.min_amount_out, token.decimals)
        if amount_units <= 0:
            raise DestinationTxFailedError("Bridge reported no amount to deposit", retryable=False)

        from_address = await signer.get_address()
        tx = TransactionBuilder.build_vault_deposit(
            chain_id=destination,
            from_address=from_address,
            vault_address=vault,
            token_address=token.address,
            amount=amount_units,
            is_native=token.is_native,
            description=f"Deposit bridged funds for order {order.order_id}",
        )

        approval_tx_hash = await self._ensure_allowance(
            signer, destination, token, from_address, vault, amount_units
        )
        submitted = await self._broadcast(signer, tx)
        submitted.approval_tx_hash = approval_tx_hash
        return submitted

    def _confirmation_timeout(self) -> float:
        return self.confirmation_timeout_seconds or settings.destination_confirmation_timeout_seconds

    async def confirm(self, submitted: SubmittedTransaction) -> TransactionReceipt:
        try:
            return await self._wait_for_receipt(submitted, self._confirmation_timeout())
        except (TransactionRevertedError, ConfirmationTimeoutError) as exc:
            raise DestinationTxFailedError(
                exc.message,
                retryable=isinstance(exc, ConfirmationTimeoutError),
                details={"txHash": submitted.tx_hash, "chainId": submitted.chain_id},
            ) from exc

    async def _ensure_chain(self, signer: WalletSigner, chain_id: int) -> None:
        try:
            if await signer.get_chain_id() == chain_id:
                return
            await asyncio.wait_for(signer.switch_chain(chain_id), timeout=self.network_switch_timeout_seconds)
        except asyncio.TimeoutError as exc:
            raise DestinationTxFailedError(
                f"Settlement signer did not switch to chain {chain_id}", retryable=True
            ) from exc
        except UserRejectedError as exc:
            raise DestinationTxFailedError(
                f"Network switch rejected: {exc.message}", retryable=False
            ) from exc
        except RecoverableError as exc:
            raise DestinationTxFailedError(
                f"Could not switch settlement signer to chain {chain_id}: {exc.message}",
                retryable=True,
            ) from exc
