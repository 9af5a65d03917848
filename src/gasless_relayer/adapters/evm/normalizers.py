"""
Payment request normalization.

Turns a raw, loosely typed request (an HTTP JSON body or a ``PaymentRequest``)
into a ``NormalizedPaymentRequest``. Pure: no ledger access, no clock.
"""

from typing import Any, Mapping, Union

from eth_utils import is_address, to_checksum_address

from ...engine.exceptions import MalformedRequestError
from .constants import MAX_UINT256, SIGNATURE_HEX_LENGTH
from .schemas import NormalizedPaymentRequest, PaymentRequest

_HEX_DIGITS = frozenset("0123456789abcdef")

RawPaymentRequest = Union[PaymentRequest, Mapping[str, Any]]


def normalize_address(value: Any, field: str) -> str:
    if not isinstance(value, str) or not is_address(value):
        raise MalformedRequestError(f"Invalid address for '{field}': {value!r}", field=field)
    return to_checksum_address(value)


def _normalize_uint(value: Any, field: str) -> int:
    """Parse a non-negative integer from an int, a decimal string or a 0x string."""
    if isinstance(value, bool):
        raise MalformedRequestError(f"'{field}' must be an integer, got a boolean", field=field)

    if isinstance(value, int):
        parsed = value
    elif isinstance(value, str):
        text = value.strip()
        try:
            if text[:2].lower() == "0x" and text[2:] and set(text[2:].lower()) <= _HEX_DIGITS:
                parsed = int(text[2:], 16)
            elif text.isascii() and text.isdigit():
                parsed = int(text)
            else:
                raise ValueError(text)
        except ValueError:
            raise MalformedRequestError(
                f"'{field}' must be a base-unit integer string, got {value!r}", field=field
            ) from None
    else:
        # floats included: base units are never fractional
        raise MalformedRequestError(
            f"'{field}' must be an integer or integer string, got {type(value).__name__}", field=field
        )

    if parsed < 0 or parsed > MAX_UINT256:
        raise MalformedRequestError(f"'{field}' out of uint256 range: {value!r}", field=field)
    return parsed


def _normalize_deadline(value: Any) -> int:
    # Timestamps arrive as JSON numbers; integral floats are tolerated.
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return _normalize_uint(value, "deadline")


def _normalize_signature(value: Any) -> str:
    if not isinstance(value, str):
        raise MalformedRequestError("Invalid signature: must be a hex string", field="signature")

    body = value.strip()
    if body[:2] in ("0x", "0X"):
        body = body[2:]
    body = body.lower()

    if len(body) < SIGNATURE_HEX_LENGTH:
        raise MalformedRequestError(
            f"Invalid signature: expected at least {SIGNATURE_HEX_LENGTH} hex chars, got {len(body)}",
            field="signature",
        )
    if not set(body) <= _HEX_DIGITS:
        raise MalformedRequestError("Invalid signature: must be a hex string", field="signature")
    return "0x" + body


def normalize_payment_request(raw: RawPaymentRequest) -> NormalizedPaymentRequest:
    """
    Canonicalize a raw payment request.

    - ``from`` / ``to`` are validated and checksummed
    - ``amount`` / ``fee`` become integers in base units (ints, decimal
      strings or 0x strings; floats are rejected)
    - ``deadline`` becomes an integer timestamp
    - ``signature`` becomes 0x-prefixed lowercase hex of at least 65 bytes

    Args:
        raw: ``PaymentRequest`` or a mapping keyed by the wire names.

    Returns:
        NormalizedPaymentRequest: Frozen canonical request.

    Raises:
        MalformedRequestError: Naming the first field that failed.
    """
    if isinstance(raw, PaymentRequest):
        raw = raw.to_wire()
    if not isinstance(raw, Mapping):
        raise MalformedRequestError(f"Payment request must be an object, got {type(raw).__name__}")

    for field in ("from", "to", "amount", "fee", "deadline", "signature"):
        if raw.get(field) is None:
            raise MalformedRequestError(f"Missing required field '{field}'", field=field)

    return NormalizedPaymentRequest(
        sender=normalize_address(raw["from"], "from"),
        recipient=normalize_address(raw["to"], "to"),
        amount=_normalize_uint(raw["amount"], "amount"),
        fee=_normalize_uint(raw["fee"], "fee"),
        deadline=_normalize_deadline(raw["deadline"]),
        signature=_normalize_signature(raw["signature"]),
    )
