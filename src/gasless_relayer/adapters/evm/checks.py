"""
Ledger state checks for payment requests.

``LedgerStateChecker`` reads the values a payment depends on and decides
whether the forwarder would accept the request right now. All comparisons
are done in integer base units; decimals only shape the messages.
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional

from ...schemas.bases import RelayStatus
from ..bases import LedgerClient
from .constants import TOKEN_SYMBOL, format_units
from .schemas import EVMVerificationResult, LedgerSnapshot, NormalizedPaymentRequest

logger = logging.getLogger(__name__)


class LedgerStateChecker:
    """
    Check a normalized request against current ledger state.

    Reads (no sequencing beyond the token address dependency):
    ledger time, the sender's replay counter, the forwarder's token, its
    decimals, the sender's balance and the allowance granted to the
    forwarder, and the forwarder's minimum fee.

    Predicates, reported in this order when several fail:

    1. ``deadline <= ledger_time`` -> REQUEST_EXPIRED
    2. ``balance < amount + fee`` -> INSUFFICIENT_BALANCE
    3. ``allowance < amount + fee`` -> INSUFFICIENT_ALLOWANCE
    4. ``fee < min_fee`` -> FEE_TOO_LOW

    Every violated predicate is listed under ``error_details["violations"]``.
    """

    def __init__(self, ledger: LedgerClient):
        self._ledger = ledger

    async def read_snapshot(self, request: NormalizedPaymentRequest, *, nonce: Optional[int] = None) -> LedgerSnapshot:
        """
        Read every value the predicates need.

        Args:
            request: Normalized request.
            nonce: Counter already read by the caller; read here when None.

        Raises:
            BlockchainInteractionError: If any read fails.
        """
        ledger = self._ledger

        async def _nonce() -> int:
            return nonce if nonce is not None else await ledger.get_nonce(request.sender)

        ledger_time, current_nonce, min_fee, token = await asyncio.gather(
            ledger.get_latest_timestamp(),
            _nonce(),
            ledger.get_relayer_fee(),
            ledger.resolve_token_address(),
        )
        decimals, balance, allowance = await asyncio.gather(
            ledger.get_token_decimals(token),
            ledger.get_balance(token, request.sender),
            ledger.get_allowance(token, request.sender, ledger.forwarder_address),
        )

        return LedgerSnapshot(
            ledger_time=ledger_time,
            nonce=current_nonce,
            token_address=token,
            token_decimals=decimals,
            balance=balance,
            allowance=allowance,
            min_fee=min_fee,
        )

    @staticmethod
    def evaluate(request: NormalizedPaymentRequest, snapshot: LedgerSnapshot) -> EVMVerificationResult:
        """Decide ``request`` against an already read ``snapshot``. Pure."""
        decimals = snapshot.token_decimals
        required = request.total
        violations: List[Dict[str, Any]] = []

        if request.deadline <= snapshot.ledger_time:
            violations.append({
                "status": RelayStatus.REQUEST_EXPIRED,
                "message": f"Payment request has expired (deadline: {request.deadline}, chain: {snapshot.ledger_time})",
                "deadline": request.deadline,
                "ledger_time": snapshot.ledger_time,
            })

        if snapshot.balance < required:
            violations.append({
                "status": RelayStatus.INSUFFICIENT_BALANCE,
                "message": (
                    f"Insufficient {TOKEN_SYMBOL} balance. "
                    f"Required: {format_units(required, decimals)}, "
                    f"Available: {format_units(snapshot.balance, decimals)}"
                ),
                "required": required,
                "available": snapshot.balance,
            })

        if snapshot.allowance < required:
            violations.append({
                "status": RelayStatus.INSUFFICIENT_ALLOWANCE,
                "message": (
                    f"Insufficient {TOKEN_SYMBOL} allowance. "
                    f"Required: {format_units(required, decimals)}, "
                    f"Approved: {format_units(snapshot.allowance, decimals)}"
                ),
                "required": required,
                "approved": snapshot.allowance,
            })

        if request.fee < snapshot.min_fee:
            violations.append({
                "status": RelayStatus.FEE_TOO_LOW,
                "message": f"Fee too low. Minimum: {format_units(snapshot.min_fee, decimals)} {TOKEN_SYMBOL}",
                "fee": request.fee,
                "minimum": snapshot.min_fee,
            })

        if not violations:
            return EVMVerificationResult(
                status=RelayStatus.SUCCESS,
                is_valid=True,
                message="Ledger state allows the payment",
                sender=request.sender,
                snapshot=snapshot,
            )

        primary = violations[0]
        details = {k: v for k, v in primary.items() if k not in ("status", "message")}
        details["violations"] = [v["status"].value for v in violations]
        return EVMVerificationResult(
            status=primary["status"],
            is_valid=False,
            message=primary["message"],
            error_details=details,
            sender=request.sender,
            snapshot=snapshot,
        )

    async def check(self, request: NormalizedPaymentRequest, *, nonce: Optional[int] = None) -> EVMVerificationResult:
        """
        Read ledger state and evaluate ``request`` against it.

        Returns:
            EVMVerificationResult: SUCCESS, the first violated predicate's
            status, or LEDGER_UNAVAILABLE when a read failed. Never raises
            for ledger errors.
        """
        try:
            snapshot = await self.read_snapshot(request, nonce=nonce)
        except Exception as e:
            logger.warning("Ledger state read failed for %s: %s", request.sender, e)
            return EVMVerificationResult(
                status=RelayStatus.LEDGER_UNAVAILABLE,
                is_valid=False,
                message=f"Could not read ledger state: {e}",
                error_details={"exception": str(e)},
                sender=request.sender,
            )

        return self.evaluate(request, snapshot)
