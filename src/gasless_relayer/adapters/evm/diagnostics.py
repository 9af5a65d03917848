"""
Revert diagnosis for failed forwarder calls.

Nodes and client libraries report reverts inconsistently: sometimes a decoded
error name, sometimes only the raw revert bytes, sometimes just a message
such as ``"execution reverted"``. ``FailureDiagnoser`` turns whatever it is
given into a ``RevertDiagnosis`` using this precedence:

1. an error name the failure already carries,
2. raw revert data decoded against the forwarder/token error catalog and the
   standard ``Error(string)`` / ``Panic(uint256)`` selectors,
3. the failure's own message.

For post-submission failures it also fetches the submitted transaction to
tell an empty-calldata relayer bug from a genuine on-chain revert.

Diagnosis never raises. A failed decode or lookup degrades to the raw message.
"""

import logging
from typing import Any, Dict, List, Mapping, Optional, Tuple

from eth_abi import decode as abi_decode
from eth_utils import keccak

from .ERC20_ABI import get_erc20_error_abi, get_forwarder_error_abi
from .schemas import RevertDiagnosis

logger = logging.getLogger(__name__)

#: Selector of the built-in ``Error(string)`` revert.
ERROR_STRING_SELECTOR: str = "0x08c379a0"

#: Selector of the built-in ``Panic(uint256)`` revert.
PANIC_SELECTOR: str = "0x4e487b71"

_PANIC_CODES: Dict[int, str] = {
    0x01: "assertion failed",
    0x11: "arithmetic overflow or underflow",
    0x12: "division by zero",
    0x21: "invalid enum value",
    0x31: "pop on empty array",
    0x32: "array index out of bounds",
    0x41: "out of memory",
    0x51: "call to zero-initialized function",
}


def _error_signature(entry: Mapping[str, Any]) -> str:
    def _type(param: Mapping[str, Any]) -> str:
        kind = param["type"]
        if kind.startswith("tuple"):
            inner = ",".join(_type(c) for c in param.get("components", []))
            return f"({inner}){kind[5:]}"
        return kind

    return f"{entry['name']}({','.join(_type(p) for p in entry.get('inputs', []))})"


def build_error_catalog(abi: List[Mapping[str, Any]]) -> Dict[str, Mapping[str, Any]]:
    """Map ``0x``-prefixed 4-byte selectors to the ABI ``error`` entries of ``abi``."""
    catalog: Dict[str, Mapping[str, Any]] = {}
    for entry in abi:
        if entry.get("type") != "error":
            continue
        selector = "0x" + keccak(text=_error_signature(entry))[:4].hex()
        catalog[selector] = entry
    return catalog


def _as_hex(value: Any) -> Optional[str]:
    if isinstance(value, (bytes, bytearray)):
        return "0x" + bytes(value).hex()
    if isinstance(value, str) and value[:2].lower() == "0x":
        return value.lower()
    return None


def extract_error_payload(exc: BaseException) -> Tuple[str, Optional[str]]:
    """
    Pull ``(message, revert_data)`` out of an arbitrary failure.

    Handles ``.data``/``.message`` attributes (web3 ``ContractLogicError``,
    ``ContractRevertError``), JSON-RPC error dicts passed as the first
    argument of a ``ValueError``, and nested ``{"data": {"data": ...}}``
    payloads some nodes return.
    """
    message = getattr(exc, "message", None) or getattr(exc, "reason", None)
    data: Any = getattr(exc, "data", None)

    if exc.args and isinstance(exc.args[0], dict):
        payload = exc.args[0]
        message = message or payload.get("message")
        data = data if data is not None else payload.get("data")

    if isinstance(data, Mapping):
        message = message or data.get("message")
        data = data.get("data")

    if not message:
        message = str(exc) or type(exc).__name__
    return str(message), _as_hex(data)


class FailureDiagnoser:
    """
    Explain failed ledger calls.

    Args:
        error_abi: ABI entries to decode custom errors against. Defaults to
            the forwarder and ERC20 error catalogs.
        ledger: Optional ledger client used to fetch submitted transactions.

    Example::

        diagnoser = FailureDiagnoser(ledger=ledger)
        diagnosis = diagnoser.decode(exc, phase="simulation")
        diagnosis.summary()   # "simulation failed: Contract reverted: InsufficientFee"
    """

    def __init__(self, error_abi: Optional[List[Mapping[str, Any]]] = None, ledger=None):
        abi = error_abi if error_abi is not None else get_forwarder_error_abi() + get_erc20_error_abi()
        self._catalog = build_error_catalog(abi)
        self._ledger = ledger

    def decode_revert_data(self, data: Optional[str]) -> Tuple[Optional[str], Optional[str], Optional[Dict[str, Any]]]:
        """
        Decode raw revert data.

        Returns:
            ``(error_name, reason, error_args)``; all None when nothing matched.
        """
        if not data or len(data) < 10:
            return None, None, None

        selector, body = data[:10].lower(), bytes.fromhex(data[10:])

        if selector == ERROR_STRING_SELECTOR:
            (text,) = abi_decode(["string"], body)
            return "Error", text, None

        if selector == PANIC_SELECTOR:
            (code,) = abi_decode(["uint256"], body)
            label = _PANIC_CODES.get(code, "unknown panic")
            return "Panic", f"Panic(0x{code:02x}): {label}", {"code": code}

        entry = self._catalog.get(selector)
        if entry is None:
            return None, None, None

        inputs = entry.get("inputs", [])
        args: Optional[Dict[str, Any]] = None
        if inputs:
            values = abi_decode([_error_signature({"name": "", "inputs": [p]})[1:-1] for p in inputs], body)
            args = {
                (param.get("name") or f"arg{i}"): (_as_hex(value) or value)
                for i, (param, value) in enumerate(zip(inputs, values))
            }
        return entry["name"], None, args

    def decode(self, exc: BaseException, *, phase: str) -> RevertDiagnosis:
        """
        Explain ``exc`` without touching the ledger.

        Args:
            exc: The failure raised by a ledger call.
            phase: Pipeline phase that failed.

        Returns:
            RevertDiagnosis: Never raises.
        """
        try:
            message, data = extract_error_payload(exc)
        except Exception:
            message, data = (str(exc) or type(exc).__name__), None

        diagnosis = RevertDiagnosis(phase=phase, reason=message, revert_data=data)

        error_name = getattr(exc, "error_name", None)
        if error_name:
            diagnosis.error_name = str(error_name)
            diagnosis.reason = f"Contract reverted: {error_name}"
            return diagnosis

        if data:
            try:
                name, reason, args = self.decode_revert_data(data)
            except Exception as e:
                logger.debug("Could not decode revert data %s: %s", data, e)
                name, reason, args = None, None, None

            if name == "Error":
                diagnosis.error_name = name
                diagnosis.reason = f"Contract reverted: {reason}"
            elif name is not None:
                diagnosis.error_name = name
                diagnosis.error_args = args
                diagnosis.reason = reason if name == "Panic" else f"Contract reverted: {name}"
            elif phase == "simulation":
                diagnosis.reason = f"revert data: {data}"

        return diagnosis

    async def diagnose(self, exc: BaseException, *, phase: str, tx_hash: Optional[str] = None) -> RevertDiagnosis:
        """
        Explain ``exc``, inspecting the submitted transaction when ``tx_hash`` is given.

        The lookup reports whether the transaction carried calldata (an empty
        one points at the relayer, not the user) and adds an explorer link.
        Lookup failures are ignored.
        """
        diagnosis = self.decode(exc, phase=phase)
        if not tx_hash:
            return diagnosis

        diagnosis.tx_hash = tx_hash
        if self._ledger is None:
            return diagnosis

        try:
            diagnosis.explorer_url = self._ledger.explorer_tx_url(tx_hash)
        except Exception as e:
            logger.debug("No explorer link for %s: %s", tx_hash, e)

        try:
            tx = await self._ledger.get_transaction(tx_hash)
        except Exception as e:
            logger.debug("Could not fetch transaction %s: %s", tx_hash, e)
            return diagnosis

        if tx is None:
            logger.warning("Transaction %s not returned by the node; calldata unknown", tx_hash)
            diagnosis.tx_found = False
            return diagnosis

        diagnosis.tx_found = True
        calldata = _as_hex(tx.get("input", tx.get("data")))
        if not calldata or calldata == "0x":
            diagnosis.calldata_empty = True
        else:
            diagnosis.calldata_empty = False
            diagnosis.calldata_length = len(calldata)
        return diagnosis
