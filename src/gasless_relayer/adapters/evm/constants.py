"""
EVM Chain and Relayer Configuration Management

Provides the supported Flare network table, environment-aware settings for
the relayer process, and the unit conversion helpers used for human-readable
token amounts.
"""

import os
from typing import Dict, Optional, Union
from decimal import Decimal, InvalidOperation, localcontext

from pydantic import BaseModel, Field, field_validator
from web3 import Web3
import dotenv

from ...engine.exceptions import ConfigurationError

dotenv.load_dotenv()


class EvmChainConfig(BaseModel):
    """EVM network configuration."""
    network: str
    name: str
    chain_id: int
    rpc_url: str = Field(..., description="Public JSON-RPC endpoint")
    explorer_url: str = Field(..., description="Block explorer URL")
    native_symbol: str = Field(..., description="Symbol of the gas currency")


# ---------------------------------------------------------------------------
# Forwarder constants
# ---------------------------------------------------------------------------

#: EIP-712 domain name registered by the forwarder contract.
FORWARDER_DOMAIN_NAME: str = "GaslessPaymentForwarder"

#: EIP-712 domain version registered by the forwarder contract.
FORWARDER_DOMAIN_VERSION: str = "1"

#: Display symbol of the token moved through the forwarder.
TOKEN_SYMBOL: str = "FXRP"

#: Decimals of every supported network's gas currency.
NATIVE_DECIMALS: int = 18

#: Gas ceiling as a percentage of the estimate (130 means estimate * 1.3).
DEFAULT_GAS_BUFFER_PERCENT: int = 130

#: Fixed gas allowance per payment on the batch path (no estimation there).
DEFAULT_BATCH_GAS_PER_PAYMENT: int = 100_000

#: Largest batch accepted in one transaction.
DEFAULT_MAX_BATCH_SIZE: int = 50

#: Seconds to wait for a receipt before reporting a finality failure.
DEFAULT_RECEIPT_TIMEOUT: float = 120.0

#: Seconds between receipt polls.
DEFAULT_POLL_LATENCY: float = 1.0

#: Default validity window for newly created payment requests (seconds).
DEFAULT_DEADLINE_WINDOW: int = 1800

#: Hex digits in a 65-byte (r, s, v) signature.
SIGNATURE_HEX_LENGTH: int = 130

MAX_UINT256: int = 2**256 - 1


_EVM_CHAINS_DATA: Dict[str, Dict] = {
    "flare": {
        "name": "Flare Mainnet",
        "chain_id": 14,
        "rpc_url": "https://flare-api.flare.network/ext/C/rpc",
        "explorer_url": "https://flare-explorer.flare.network",
        "native_symbol": "FLR",
    },
    "coston2": {
        "name": "Flare Testnet Coston2",
        "chain_id": 114,
        "rpc_url": "https://coston2-api.flare.network/ext/C/rpc",
        "explorer_url": "https://coston2-explorer.flare.network",
        "native_symbol": "C2FLR",
    },
    "songbird": {
        "name": "Songbird Canary-Network",
        "chain_id": 19,
        "rpc_url": "https://songbird-api.flare.network/ext/C/rpc",
        "explorer_url": "https://songbird-explorer.flare.network",
        "native_symbol": "SGB",
    },
}

DEFAULT_NETWORK: str = "coston2"


def get_chain_config(network: str) -> Optional[EvmChainConfig]:
    """
    Look up a supported network by name.

    Args:
        network: Network name (``flare``, ``coston2`` or ``songbird``), case-insensitive.

    Returns:
        EvmChainConfig or None when the network is unknown.
    """
    data = _EVM_CHAINS_DATA.get(network.lower())
    if data is None:
        return None
    return EvmChainConfig(network=network.lower(), **data)


def get_chain_config_by_id(chain_id: int) -> Optional[EvmChainConfig]:
    """Look up a supported network by chain id."""
    for network, data in _EVM_CHAINS_DATA.items():
        if data["chain_id"] == chain_id:
            return EvmChainConfig(network=network, **data)
    return None


def explorer_tx_url(explorer_url: str, tx_hash: str) -> str:
    """Build the explorer link for a transaction hash."""
    return f"{explorer_url.rstrip('/')}/tx/{tx_hash}"


# ---------------------------------------------------------------------------
# Environment
# ---------------------------------------------------------------------------

def get_private_key_from_env() -> Optional[str]:
    """
    Load the relayer private key from environment variables.

    Environment Variable:
        - RELAYER_PRIVATE_KEY: The relayer's EVM private key (0x-prefixed hex format)

    Returns:
        str: Private key from environment, or None if not configured

    Note:
        The private key should be stored securely in environment variables
        and never committed to version control.
    """
    return os.getenv("RELAYER_PRIVATE_KEY")


def get_forwarder_address_from_env() -> Optional[str]:
    """Load the deployed forwarder contract address (``FORWARDER_ADDRESS``)."""
    return os.getenv("FORWARDER_ADDRESS")


def get_network_from_env() -> str:
    """Load the network name (``NETWORK``), defaulting to coston2."""
    return os.getenv("NETWORK", DEFAULT_NETWORK)


def get_rpc_url_from_env() -> Optional[str]:
    """Load an explicit RPC endpoint (``RPC_URL``) overriding the network default."""
    return os.getenv("RPC_URL")


def _env_number(name: str, default, cast):
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return cast(raw)
    except (ValueError, InvalidOperation) as e:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}") from e


class RelayerConfig(BaseModel):
    """
    Runtime settings of the relayer process.

    Built from the environment via :meth:`from_env`; tests construct it
    directly.

    Attributes:
        relayer_private_key: Key of the operating account that pays gas
        forwarder_address: Deployed GaslessPaymentForwarder address
        network: Network name used for the RPC default and explorer links
        rpc_url: JSON-RPC endpoint
        host: HTTP bind address
        port: HTTP port
        gas_buffer_percent: Gas ceiling as a percentage of the estimate
        batch_gas_per_payment: Fixed gas allowance per batched payment
        max_batch_size: Largest accepted batch
        receipt_timeout: Seconds to wait for a receipt
        request_timeout: RPC HTTP timeout in seconds
        low_balance_threshold: Native balance below which startup warns
        forwarder_abi_path: Optional JSON ABI overriding the built-in one
        log_level: Logging level name
    """

    relayer_private_key: str = Field(..., repr=False, description="Relayer account private key")
    forwarder_address: str = Field(..., description="Forwarder contract address")
    network: str = Field(default=DEFAULT_NETWORK, description="Network name")
    rpc_url: Optional[str] = Field(default=None, description="JSON-RPC endpoint")
    host: str = Field(default="0.0.0.0", description="HTTP bind address")
    port: int = Field(default=3000, ge=1, le=65535, description="HTTP port")
    gas_buffer_percent: int = Field(default=DEFAULT_GAS_BUFFER_PERCENT, ge=100, description="Gas ceiling percentage")
    batch_gas_per_payment: int = Field(default=DEFAULT_BATCH_GAS_PER_PAYMENT, gt=0, description="Gas per batched payment")
    max_batch_size: int = Field(default=DEFAULT_MAX_BATCH_SIZE, gt=0, description="Maximum batch size")
    receipt_timeout: float = Field(default=DEFAULT_RECEIPT_TIMEOUT, gt=0, description="Receipt wait timeout (s)")
    request_timeout: float = Field(default=60.0, gt=0, description="RPC request timeout (s)")
    low_balance_threshold: Decimal = Field(default=Decimal("0.1"), ge=0, description="Low native balance warning level")
    forwarder_abi_path: Optional[str] = Field(default=None, description="Path to a forwarder ABI JSON file")
    log_level: str = Field(default="INFO", description="Logging level name")

    @field_validator("forwarder_address")
    @classmethod
    def _checksum_forwarder(cls, value: str) -> str:
        if not Web3.is_address(value):
            raise ValueError(f"invalid forwarder address: {value!r}")
        return Web3.to_checksum_address(value)

    @field_validator("network")
    @classmethod
    def _known_network(cls, value: str) -> str:
        if get_chain_config(value) is None:
            raise ValueError(f"unsupported network {value!r}, expected one of {sorted(_EVM_CHAINS_DATA)}")
        return value.lower()

    @property
    def chain_config(self) -> EvmChainConfig:
        return get_chain_config(self.network)

    def resolved_rpc_url(self) -> str:
        """Explicit RPC URL, or the network's public endpoint."""
        return self.rpc_url or self.chain_config.rpc_url

    @classmethod
    def from_env(cls) -> "RelayerConfig":
        """
        Build the configuration from environment variables (``.env`` supported).

        Raises:
            ConfigurationError: If a required variable is missing or a value is invalid.
        """
        private_key = get_private_key_from_env()
        forwarder = get_forwarder_address_from_env()
        missing = [
            name for name, value in (
                ("RELAYER_PRIVATE_KEY", private_key),
                ("FORWARDER_ADDRESS", forwarder),
            )
            if not value
        ]
        if missing:
            raise ConfigurationError(f"Missing required environment variables: {', '.join(missing)}")

        try:
            return cls(
                relayer_private_key=private_key,
                forwarder_address=forwarder,
                network=get_network_from_env(),
                rpc_url=get_rpc_url_from_env(),
                host=os.getenv("HOST", "0.0.0.0"),
                port=_env_number("PORT", 3000, int),
                gas_buffer_percent=_env_number("GAS_BUFFER_PERCENT", DEFAULT_GAS_BUFFER_PERCENT, int),
                batch_gas_per_payment=_env_number("BATCH_GAS_PER_PAYMENT", DEFAULT_BATCH_GAS_PER_PAYMENT, int),
                max_batch_size=_env_number("MAX_BATCH_SIZE", DEFAULT_MAX_BATCH_SIZE, int),
                receipt_timeout=_env_number("RECEIPT_TIMEOUT_SECONDS", DEFAULT_RECEIPT_TIMEOUT, float),
                request_timeout=_env_number("RPC_REQUEST_TIMEOUT", 60.0, float),
                low_balance_threshold=_env_number("LOW_BALANCE_THRESHOLD", Decimal("0.1"), Decimal),
                forwarder_abi_path=os.getenv("FORWARDER_ABI_PATH") or None,
                log_level=os.getenv("LOG_LEVEL", "INFO"),
            )
        except ValueError as e:
            raise ConfigurationError(str(e)) from e


# ---------------------------------------------------------------------------
# Unit conversion
# ---------------------------------------------------------------------------

def amount_to_value(*, amount: Union[float, int, str, Decimal], decimals: int) -> int:
    """Convert a human-readable token `amount` into smallest-unit integer `value`.

    Args:
        amount: Human-readable amount (e.g. "1.5" FXRP). Accepts float/int/str/Decimal.
        decimals: Token decimals.

    Returns:
        int: Smallest-unit integer value.

    Raises:
        ValueError: If inputs are invalid or the amount cannot be represented in smallest units.
    """
    if not isinstance(decimals, int) or decimals < 0:
        raise ValueError("decimals must be a non-negative int")

    try:
        # str() avoids binary-float surprises (0.1 -> 0.100000000000000005...)
        dec_amount = amount if isinstance(amount, Decimal) else Decimal(str(amount))
    except (InvalidOperation, ValueError, TypeError) as e:
        raise ValueError(f"Invalid amount: {amount!r}") from e

    if not dec_amount.is_finite() or dec_amount < 0:
        raise ValueError("amount must be a non-negative finite number")

    with localcontext() as ctx:
        ctx.prec = 100
        scaled = dec_amount.scaleb(decimals)

    if scaled != scaled.to_integral_value():
        raise ValueError(
            f"amount {amount!r} is not representable with decimals={decimals} "
            f"(would create fractional smallest units)"
        )

    return int(scaled)


def value_to_amount(*, value: Union[int, str, Decimal], decimals: int) -> Decimal:
    """Convert a smallest-unit integer `value` into an exact human-readable Decimal."""
    if not isinstance(decimals, int) or decimals < 0:
        raise ValueError("decimals must be a non-negative int")

    try:
        dec_value = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError) as e:
        raise ValueError(f"Invalid value: {value!r}") from e

    if dec_value != dec_value.to_integral_value():
        raise ValueError("value must be an integer in smallest units")

    with localcontext() as ctx:
        ctx.prec = 100
        return dec_value.scaleb(-decimals)


def format_units(value: Union[int, str, Decimal], decimals: int) -> str:
    """
    Render a smallest-unit value as a decimal string.

    Trailing zeros are dropped but at least one fractional digit is kept,
    so ``format_units(100 * 10**18, 18)`` gives ``"100.0"`` and
    ``format_units(15, 1)`` gives ``"1.5"``.
    """
    text = format(value_to_amount(value=value, decimals=decimals), "f")
    if "." not in text:
        return text + ".0"
    text = text.rstrip("0")
    return text + "0" if text.endswith(".") else text
