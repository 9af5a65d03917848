"""
EVM Off-Chain Signing Utilities

User-side helpers for producing ``PaymentRequest`` authorizations the relayer
accepts. Signing is performed in-process with ``eth_account``; the helpers
that need ledger values (counter, minimum fee, ledger time, token decimals)
read them through a ``LedgerClient`` and never write.

Exported helpers
----------------
sign_payment_request
    Build the EIP-712 payload for given values, sign it and return the wire
    ``PaymentRequest``.

create_payment_request
    Read the current counter, fee and ledger time, convert a human-readable
    amount and sign. Mirrors what a wallet front end does.

check_user_status
    Balance, forwarder allowance and counter of an address.

parse_amount / format_amount
    Human-readable amount <-> token base units.
"""

import asyncio
from decimal import Decimal
from typing import Any, Dict, Optional, Tuple, Union

from eth_account import Account

from ..bases import LedgerClient
from .constants import (
    DEFAULT_DEADLINE_WINDOW,
    TOKEN_SYMBOL,
    amount_to_value,
    format_units,
)
from .normalizers import normalize_address
from .schemas import NormalizedPaymentRequest, PaymentRequest
from .verifies import build_forwarder_domain, build_payment_typed_data


def parse_amount(amount: Union[str, int, float, Decimal], decimals: int) -> int:
    """
    Convert a human-readable amount to base units (``"1.5"`` -> ``1500000`` at 6 decimals).

    Raises:
        ValueError: If the amount is negative or has more fractional digits than ``decimals``.
    """
    return amount_to_value(amount=amount, decimals=decimals)


def format_amount(value: Union[int, str], decimals: int) -> str:
    """Convert base units to a human-readable string (``1500000`` -> ``"1.5"`` at 6 decimals)."""
    return format_units(value, decimals)


def sign_payment_request(
    *,
    private_key: str,
    forwarder_address: str,
    chain_id: int,
    recipient: str,
    amount: int,
    fee: int,
    nonce: int,
    deadline: int,
) -> PaymentRequest:
    """
    Sign a ``PaymentRequest`` for the forwarder at ``forwarder_address``.

    The sender is the address derived from ``private_key``. ``nonce`` must be
    the sender's current forwarder counter or the relayer rejects the
    signature as a mismatch.

    Args:
        private_key:        Hex-encoded secp256k1 key of the sender.
        forwarder_address:  Forwarder contract, the EIP-712 ``verifyingContract``.
        chain_id:           Network chain id the forwarder lives on.
        recipient:          Receiving address.
        amount:             Amount in token base units.
        fee:                Relayer fee in token base units.
        nonce:              Sender's current forwarder counter.
        deadline:           Unix timestamp after which the request is void.

    Returns:
        ``PaymentRequest`` ready to POST to ``/execute``.

    Example::

        request = sign_payment_request(
            private_key="0xYOUR_PRIVATE_KEY",
            forwarder_address="0xForwarder...",
            chain_id=114,
            recipient="0xRecipient...",
            amount=1_000_000,
            fee=10_000,
            nonce=0,
            deadline=1_900_000_000,
        )
    """
    account = Account.from_key(private_key)
    unsigned = NormalizedPaymentRequest(
        sender=account.address,
        recipient=normalize_address(recipient, "to"),
        amount=int(amount),
        fee=int(fee),
        deadline=int(deadline),
        signature="0x",
    )
    domain = build_forwarder_domain(chain_id=chain_id, forwarder_address=normalize_address(forwarder_address, "forwarder"))
    typed_data = build_payment_typed_data(unsigned, nonce=nonce, domain=domain)
    signed = Account.sign_typed_data(private_key, full_message=typed_data.to_dict())

    return PaymentRequest(
        sender=unsigned.sender,
        recipient=unsigned.recipient,
        amount=str(unsigned.amount),
        fee=str(unsigned.fee),
        deadline=unsigned.deadline,
        signature="0x" + bytes(signed.signature).hex(),
    )


async def create_payment_request(
    ledger: LedgerClient,
    private_key: str,
    recipient: str,
    amount: Union[str, int, float, Decimal],
    fee: Optional[Union[str, int, float, Decimal]] = None,
    deadline_window: int = DEFAULT_DEADLINE_WINDOW,
) -> Tuple[PaymentRequest, Dict[str, Any]]:
    """
    Build and sign a payment request from human-readable values.

    The deadline is taken from ledger time rather than the local clock so that
    clock skew cannot make a fresh request look expired to the forwarder.

    Args:
        ledger: Ledger client used for reads only.
        private_key: Sender key.
        recipient: Receiving address.
        amount: Human-readable amount (``"1.5"`` FXRP).
        fee: Human-readable fee; the forwarder minimum when None.
        deadline_window: Seconds from ledger time until the request expires.

    Returns:
        ``(request, meta)`` where ``meta`` holds ``amount_formatted``,
        ``fee_formatted``, ``nonce`` and ``chain_id``. ``meta`` is not signed.
    """
    sender = Account.from_key(private_key).address
    token = await ledger.resolve_token_address()
    chain_id, decimals, nonce, ledger_time, min_fee = await asyncio.gather(
        ledger.get_chain_id(),
        ledger.get_token_decimals(token),
        ledger.get_nonce(sender),
        ledger.get_latest_timestamp(),
        ledger.get_relayer_fee(),
    )

    value = parse_amount(amount, decimals)
    fee_value = min_fee if fee is None else parse_amount(fee, decimals)

    request = sign_payment_request(
        private_key=private_key,
        forwarder_address=ledger.forwarder_address,
        chain_id=chain_id,
        recipient=recipient,
        amount=value,
        fee=fee_value,
        nonce=nonce,
        deadline=ledger_time + deadline_window,
    )
    meta = {
        "amount_formatted": f"{format_amount(value, decimals)} {TOKEN_SYMBOL}",
        "fee_formatted": f"{format_amount(fee_value, decimals)} {TOKEN_SYMBOL}",
        "nonce": nonce,
        "chain_id": chain_id,
    }
    return request, meta


async def check_user_status(ledger: LedgerClient, address: str) -> Dict[str, Any]:
    """
    Report what a sender needs before relaying works for them.

    Returns:
        Dict with ``token_address``, ``balance``, ``balance_formatted``,
        ``allowance``, ``allowance_formatted``, ``nonce`` and
        ``needs_approval`` (True when nothing is approved to the forwarder).
    """
    owner = normalize_address(address, "address")
    token = await ledger.resolve_token_address()
    balance, allowance, nonce, decimals = await asyncio.gather(
        ledger.get_balance(token, owner),
        ledger.get_allowance(token, owner, ledger.forwarder_address),
        ledger.get_nonce(owner),
        ledger.get_token_decimals(token),
    )
    return {
        "token_address": token,
        "balance": balance,
        "balance_formatted": format_amount(balance, decimals),
        "allowance": allowance,
        "allowance_formatted": format_amount(allowance, decimals),
        "nonce": nonce,
        "needs_approval": allowance == 0,
    }
