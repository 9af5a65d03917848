"""
AsyncWeb3 ledger client for the GaslessPaymentForwarder.

Implements ``LedgerClient`` over a single JSON-RPC endpoint. The operating
credential (the relayer's ``LocalAccount``) is handed in at construction and
only ever read: it signs transactions, nothing mutates it.

Nothing here caches ledger state. In particular the token address is asked
from the forwarder (``fxrp()``) on every call that needs it, so a forwarder
reconfiguration is picked up by the next request.

Dependencies:
    - web3.py: For blockchain RPC interaction
    - eth_account: For transaction signing
"""

import logging
from typing import Any, Dict, List, Mapping, Optional, Sequence

from eth_account import Account
from eth_account.signers.local import LocalAccount
from web3 import AsyncWeb3
from web3.exceptions import ContractLogicError, TimeExhausted, TransactionNotFound

from ...engine.exceptions import BlockchainInteractionError, ContractRevertError
from ..bases import LedgerClient
from .constants import (
    DEFAULT_POLL_LATENCY,
    DEFAULT_RECEIPT_TIMEOUT,
    RelayerConfig,
    explorer_tx_url,
)
from .diagnostics import extract_error_payload
from .ERC20_ABI import get_erc20_abi, load_forwarder_abi

logger = logging.getLogger(__name__)


def _to_ledger_error(exc: Exception, rpc_method: str) -> BlockchainInteractionError:
    """Wrap a web3/RPC failure, keeping revert data when the node returned any."""
    message, data = extract_error_payload(exc)
    if isinstance(exc, ContractLogicError) or data is not None or "revert" in message.lower():
        return ContractRevertError(message, data=data, rpc_method=rpc_method)
    return BlockchainInteractionError(message, rpc_method=rpc_method)


class ForwarderLedgerClient(LedgerClient):
    """
    Ledger access through AsyncWeb3.

    Attributes:
        w3: AsyncWeb3 instance bound to the configured RPC endpoint
        forwarder: Forwarder contract object

    Example::

        config = RelayerConfig.from_env()
        ledger = ForwarderLedgerClient.from_config(config)
        nonce = await ledger.get_nonce("0xSender...")
    """

    def __init__(
        self,
        w3: AsyncWeb3,
        *,
        forwarder_address: str,
        account: LocalAccount,
        forwarder_abi: Optional[List[Dict[str, Any]]] = None,
        explorer_url: Optional[str] = None,
        receipt_timeout: float = DEFAULT_RECEIPT_TIMEOUT,
        poll_latency: float = DEFAULT_POLL_LATENCY,
    ):
        self.w3 = w3
        self._forwarder_address = AsyncWeb3.to_checksum_address(forwarder_address)
        self._account = account
        self._relayer_address = AsyncWeb3.to_checksum_address(account.address)
        self._explorer_url = explorer_url
        self._receipt_timeout = receipt_timeout
        self._poll_latency = poll_latency
        self.forwarder = w3.eth.contract(
            address=self._forwarder_address,
            abi=forwarder_abi or load_forwarder_abi(),
        )

    @classmethod
    def from_config(cls, config: RelayerConfig) -> "ForwarderLedgerClient":
        """Build a client from ``RelayerConfig`` (RPC endpoint, key, ABI, timeouts)."""
        w3 = AsyncWeb3(AsyncWeb3.AsyncHTTPProvider(
            config.resolved_rpc_url(),
            request_kwargs={"timeout": config.request_timeout},
        ))
        return cls(
            w3,
            forwarder_address=config.forwarder_address,
            account=Account.from_key(config.relayer_private_key),
            forwarder_abi=load_forwarder_abi(config.forwarder_abi_path),
            explorer_url=config.chain_config.explorer_url,
            receipt_timeout=config.receipt_timeout,
        )

    @property
    def forwarder_address(self) -> str:
        return self._forwarder_address

    @property
    def relayer_address(self) -> str:
        return self._relayer_address

    def explorer_tx_url(self, tx_hash: str) -> Optional[str]:
        if not self._explorer_url:
            return None
        return explorer_tx_url(self._explorer_url, tx_hash)

    def _token(self, token_address: str):
        return self.w3.eth.contract(
            address=AsyncWeb3.to_checksum_address(token_address),
            abi=get_erc20_abi(),
        )

    async def _read(self, rpc_method: str, awaitable):
        try:
            return await awaitable
        except Exception as e:
            raise _to_ledger_error(e, rpc_method) from e

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_chain_id(self) -> int:
        return int(await self._read("eth_chainId", self.w3.eth.chain_id))

    async def get_latest_timestamp(self) -> int:
        block = await self._read("eth_getBlockByNumber", self.w3.eth.get_block("latest"))
        return int(block["timestamp"])

    async def get_nonce(self, address: str) -> int:
        fn = self.forwarder.functions.getNonce(AsyncWeb3.to_checksum_address(address))
        return int(await self._read("getNonce", fn.call()))

    async def get_relayer_fee(self) -> int:
        return int(await self._read("relayerFee", self.forwarder.functions.relayerFee().call()))

    async def resolve_token_address(self) -> str:
        token = await self._read("fxrp", self.forwarder.functions.fxrp().call())
        return AsyncWeb3.to_checksum_address(token)

    async def get_token_decimals(self, token_address: str) -> int:
        return int(await self._read("decimals", self._token(token_address).functions.decimals().call()))

    async def get_balance(self, token_address: str, owner: str) -> int:
        fn = self._token(token_address).functions.balanceOf(AsyncWeb3.to_checksum_address(owner))
        return int(await self._read("balanceOf", fn.call()))

    async def get_allowance(self, token_address: str, owner: str, spender: str) -> int:
        fn = self._token(token_address).functions.allowance(
            AsyncWeb3.to_checksum_address(owner),
            AsyncWeb3.to_checksum_address(spender),
        )
        return int(await self._read("allowance", fn.call()))

    async def get_native_balance(self, address: str) -> int:
        balance = await self._read(
            "eth_getBalance",
            self.w3.eth.get_balance(AsyncWeb3.to_checksum_address(address)),
        )
        return int(balance)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def simulate_payment(self, args: Sequence[Any]) -> None:
        fn = self.forwarder.functions.executePayment(*args)
        await self._read("eth_call", fn.call({"from": self._relayer_address}))

    async def estimate_payment_gas(self, args: Sequence[Any]) -> int:
        fn = self.forwarder.functions.executePayment(*args)
        return int(await self._read("eth_estimateGas", fn.estimate_gas({"from": self._relayer_address})))

    async def send_payment(self, args: Sequence[Any], gas_limit: int) -> str:
        return await self._sign_and_send(self.forwarder.functions.executePayment(*args), gas_limit)

    async def send_batch_payments(self, requests: List[Sequence[Any]], gas_limit: int) -> str:
        fn = self.forwarder.functions.executeBatchPayments([tuple(r) for r in requests])
        return await self._sign_and_send(fn, gas_limit)

    async def _fee_params(self) -> Dict[str, int]:
        """EIP-1559 fee fields from recent history, or a legacy gas price."""
        try:
            fee_history = await self.w3.eth.fee_history(1, "latest", [25.0])
            base_fee = fee_history["baseFeePerGas"][-1]
            priority_fee = fee_history["reward"][0][0]
            # 2x base fee absorbs a few blocks of base fee growth
            return {
                "maxPriorityFeePerGas": priority_fee,
                "maxFeePerGas": (base_fee * 2) + priority_fee,
            }
        except Exception as e:
            logger.debug("fee_history unavailable, using legacy gas price: %s", e)
            return {"gasPrice": await self._read("eth_gasPrice", self.w3.eth.gas_price)}

    async def _sign_and_send(self, fn, gas_limit: int) -> str:
        tx_nonce = await self._read(
            "eth_getTransactionCount",
            self.w3.eth.get_transaction_count(self._relayer_address, "pending"),
        )
        tx_params = {
            "from": self._relayer_address,
            "gas": int(gas_limit),
            "nonce": tx_nonce,
            "chainId": await self.get_chain_id(),
        }
        tx_params.update(await self._fee_params())

        transaction = await self._read("build_transaction", fn.build_transaction(tx_params))
        signed_tx = self._account.sign_transaction(transaction)
        tx_hash = await self._read("eth_sendRawTransaction", self.w3.eth.send_raw_transaction(signed_tx.raw_transaction))
        return AsyncWeb3.to_hex(tx_hash)

    async def wait_for_receipt(self, tx_hash: str) -> Mapping[str, Any]:
        try:
            return await self.w3.eth.wait_for_transaction_receipt(
                tx_hash,
                timeout=self._receipt_timeout,
                poll_latency=self._poll_latency,
            )
        except TimeExhausted as e:
            raise BlockchainInteractionError(
                f"Transaction {tx_hash} not confirmed within {self._receipt_timeout:g}s",
                rpc_method="eth_getTransactionReceipt",
            ) from e
        except Exception as e:
            raise _to_ledger_error(e, "eth_getTransactionReceipt") from e

    async def get_transaction(self, tx_hash: str) -> Optional[Mapping[str, Any]]:
        try:
            tx = await self.w3.eth.get_transaction(tx_hash)
        except TransactionNotFound:
            return None
        except Exception as e:
            raise _to_ledger_error(e, "eth_getTransactionByHash") from e

        result = dict(tx)
        data = result.get("input", result.get("data"))
        if isinstance(data, (bytes, bytearray)):
            result["input"] = AsyncWeb3.to_hex(data)
        return result
