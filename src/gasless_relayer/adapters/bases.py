"""
Abstract Base Classes for the Relay Adapters

Defines the two seams of the relayer:

Core Classes:
    - LedgerClient: Every ledger read and write the relay engine performs.
      The AsyncWeb3 implementation lives in ``evm.ledger``; tests provide an
      in-memory one.
    - AdapterFactory: The operations a relay engine exposes to transports
      (HTTP server, scripts).

Each ledger method can fail independently; implementations raise
``BlockchainInteractionError`` (or ``ContractRevertError`` for reverts) and
the engine turns those into result statuses.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Mapping, Optional, Sequence


class LedgerClient(ABC):
    """
    Abstract ledger access used by the relay engine.

    Reads never cache: every call returns the ledger's current value.

    Key Responsibilities:
    1. State reads: chain id, block time, replay counter, fee, token data
    2. Writes: dry-run, gas estimation, signing and broadcasting
    3. Reconciliation: waiting for receipts and fetching submitted transactions
    """

    @property
    @abstractmethod
    def forwarder_address(self) -> str:
        """Checksummed forwarder contract address."""

    @property
    @abstractmethod
    def relayer_address(self) -> str:
        """Checksummed address of the operating account that pays gas."""

    @abstractmethod
    def explorer_tx_url(self, tx_hash: str) -> Optional[str]:
        """Explorer link for ``tx_hash``, or None when no explorer is configured."""

    # ---- reads ----

    @abstractmethod
    async def get_chain_id(self) -> int:
        """Live network chain id."""

    @abstractmethod
    async def get_latest_timestamp(self) -> int:
        """Timestamp of the latest block (ledger time)."""

    @abstractmethod
    async def get_nonce(self, address: str) -> int:
        """Forwarder replay counter of ``address``."""

    @abstractmethod
    async def get_relayer_fee(self) -> int:
        """Minimum fee the forwarder accepts, in token base units."""

    @abstractmethod
    async def resolve_token_address(self) -> str:
        """Token address the forwarder currently moves."""

    @abstractmethod
    async def get_token_decimals(self, token_address: str) -> int:
        """Decimals of ``token_address``."""

    @abstractmethod
    async def get_balance(self, token_address: str, owner: str) -> int:
        """Token balance of ``owner``."""

    @abstractmethod
    async def get_allowance(self, token_address: str, owner: str, spender: str) -> int:
        """Token allowance ``owner`` granted to ``spender``."""

    @abstractmethod
    async def get_native_balance(self, address: str) -> int:
        """Gas currency balance of ``address`` in wei."""

    # ---- writes ----

    @abstractmethod
    async def simulate_payment(self, args: Sequence[Any]) -> None:
        """Dry-run ``executePayment(*args)`` from the relayer address; raise on revert."""

    @abstractmethod
    async def estimate_payment_gas(self, args: Sequence[Any]) -> int:
        """Gas estimate for ``executePayment(*args)``."""

    @abstractmethod
    async def send_payment(self, args: Sequence[Any], gas_limit: int) -> str:
        """Sign and broadcast ``executePayment(*args)``; return the transaction hash."""

    @abstractmethod
    async def send_batch_payments(self, requests: List[Sequence[Any]], gas_limit: int) -> str:
        """Sign and broadcast ``executeBatchPayments(requests)``; return the transaction hash."""

    @abstractmethod
    async def wait_for_receipt(self, tx_hash: str) -> Mapping[str, Any]:
        """Wait for the receipt of ``tx_hash``; raise when it does not arrive in time."""

    @abstractmethod
    async def get_transaction(self, tx_hash: str) -> Optional[Mapping[str, Any]]:
        """Fetch a submitted transaction, or None when the node does not know it."""


class AdapterFactory(ABC):
    """
    Abstract relay engine interface.

    Implementations validate signed payment authorizations and submit them
    through the forwarder. All operations report failures through their
    result objects rather than by raising.
    """

    @abstractmethod
    async def execute_payment(self, raw_request: Any) -> Any:
        """
        Validate and relay one signed payment.

        Returns:
            An execution result with ``status`` set to SUCCESS or the failure kind.
        """

    @abstractmethod
    async def execute_batch_payments(self, raw_requests: Sequence[Any]) -> Any:
        """Relay several payments in one transaction."""

    @abstractmethod
    async def validate_request(self, raw_request: Any) -> Any:
        """Run every check short of submission."""

    @abstractmethod
    async def get_nonce(self, address: str) -> int:
        """Current replay counter of ``address``."""

    @abstractmethod
    async def get_relayer_fee(self) -> int:
        """Minimum relayer fee in token base units."""

    @abstractmethod
    async def get_token_decimals(self) -> int:
        """Decimals of the token currently moved by the forwarder."""

    @abstractmethod
    async def get_relayer_balance(self) -> Dict[str, Any]:
        """Gas currency balance of the operating account."""
