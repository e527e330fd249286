"""Wallet signer interface used by the execution adapters."""

import logging
from abc import ABC, abstractmethod
from typing import Optional

from eth_utils import to_checksum_address

from ..recovery import RpcError, TransactionRevertedError, UserRejectedError
from .tx_builder import PreparedTransaction


logger = logging.getLogger(__name__)

# EIP-1193 / EIP-3085 error codes
USER_REJECTED_CODE = 4001
UNRECOGNIZED_CHAIN_CODE = 4902


class WalletSigner(ABC):
    """A connected wallet able to sign and broadcast transactions."""

    @abstractmethod
    async def get_address(self) -> str:
        pass

    @abstractmethod
    async def get_chain_id(self) -> int:
        """Chain the wallet is currently connected to."""
        pass

    @abstractmethod
    async def switch_chain(self, chain_id: int) -> None:
        pass

    @abstractmethod
    async def send_transaction(self, tx: PreparedTransaction) -> str:
        """Sign and broadcast ``tx``; returns the transaction hash.

        Raises:
            UserRejectedError: the wallet owner declined
            TransactionRevertedError: the node rejected the call as reverting
            RecoverableError: transport or node failure worth retrying
        """
        pass


class RemoteSigner(WalletSigner):
    """
    Delegated signer reached over JSON-RPC.

    The node behind each configured RPC URL holds the key for ``address`` and
    signs ``eth_sendTransaction`` requests on its behalf.
    """

    def __init__(self, address: str, rpc_client, chain_id: Optional[int] = None):
        self.address = to_checksum_address(address)
        self._rpc = rpc_client
        self._chain_id = chain_id

    async def get_address(self) -> str:
        return self.address

    async def get_chain_id(self) -> int:
        if self._chain_id is None:
            raise RpcError("Remote signer has no active chain", code=UNRECOGNIZED_CHAIN_CODE)
        return self._chain_id

    async def switch_chain(self, chain_id: int) -> None:
        if not self._rpc.has_chain(chain_id):
            raise RpcError(
                f"Remote signer has no endpoint for chain {chain_id}",
                code=UNRECOGNIZED_CHAIN_CODE,
                chain_id=chain_id,
            )
        logger.info("Remote signer %s switched to chain %s", self.address, chain_id)
        self._chain_id = chain_id

    async def send_transaction(self, tx: PreparedTransaction) -> str:
        try:
            return await self._rpc.send_transaction(tx.chain_id, tx.to_dict())
        except RpcError as exc:
            if exc.code == USER_REJECTED_CODE:
                raise UserRejectedError(exc.message) from exc
            if "revert" in exc.message.lower():
                raise TransactionRevertedError(
                    exc.message,
                    reason=exc.message,
                    chain_id=tx.chain_id,
                ) from exc
            raise
