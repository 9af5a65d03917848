"""
Exception and Error Definitions Module

Defines the exception hierarchy for request validation, relay submission and
ledger interaction. All exceptions inherit from BaseException for unified
exception handling.

Engine operations report failures as result objects carrying a
``RelayStatus``; the ``RelayError`` branch mirrors those statuses one to one
for callers that prefer exceptions (see ``error_for_status`` and
``raise_for_status`` on the result models).

Exception Hierarchy:
    BaseException (root)
    ├── RelayError
    │   ├── MalformedRequestError
    │   ├── InvalidSignatureFormatError
    │   ├── SignerMismatchError
    │   ├── RequestExpiredError
    │   ├── InsufficientBalanceError
    │   ├── InsufficientAllowanceError
    │   ├── FeeTooLowError
    │   ├── SimulationFailedError
    │   ├── CounterRaceLostError
    │   ├── EstimationFailedError
    │   ├── SubmissionFailedError
    │   ├── FinalityWaitFailedError
    │   └── LedgerUnavailableError
    ├── ConfigurationError
    └── BlockchainInteractionError
        └── ContractRevertError
"""

from typing import Any, Dict, Optional, Type

from ..schemas.bases import RelayStatus, RecoveryAction, recovery_for


class BaseException(Exception):
    """
    Root exception class for all project-specific exceptions.

    All custom exceptions should inherit from this class to enable
    unified exception handling and centralized error processing.
    """
    pass


class RelayError(BaseException):
    """
    Base exception for relay failures.

    Attributes:
        status: Outcome kind this error stands for
        message: Human-readable description
        details: Structured context (addresses, amounts, counters)
        recovery: Recommended caller action
    """

    status: RelayStatus = RelayStatus.SUCCESS

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    @property
    def recovery(self) -> RecoveryAction:
        return recovery_for(self.status, self.details)


class MalformedRequestError(RelayError):
    """
    Raised when a raw request field cannot be parsed into canonical form.

    This includes scenarios such as:
    - Address that is not 20 bytes of hex
    - Amount or fee that is negative, fractional or not a number
    - Signature shorter than 65 bytes or not hex
    - Batch that is empty or exceeds the configured size

    Attributes:
        field: Name of the offending field
    """

    status = RelayStatus.MALFORMED_REQUEST

    def __init__(self, message: str, field: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        details = dict(details or {})
        if field is not None:
            details.setdefault("field", field)
        super().__init__(message, details)
        self.field = field


class InvalidSignatureFormatError(RelayError):
    """Raised when the signature cannot be split into (r, s, v) or recovery fails."""

    status = RelayStatus.INVALID_SIGNATURE_FORMAT


class SignerMismatchError(RelayError):
    """
    Raised when the recovered signer differs from the declared sender.

    A wrong chain id, forwarder address or counter at signing time all
    surface here because each changes the recovered address.

    Attributes (in details):
        recovered: Address recovered from the signature
        expected: Declared sender
    """

    status = RelayStatus.SIGNER_MISMATCH


class RequestExpiredError(RelayError):
    """
    Raised when the request deadline is at or before ledger time.

    Attributes (in details):
        deadline: The request deadline
        ledger_time: Latest block timestamp
    """

    status = RelayStatus.REQUEST_EXPIRED


class InsufficientBalanceError(RelayError):
    """
    Raised when the sender's token balance cannot cover amount + fee.

    Attributes (in details):
        required: Amount required
        available: Amount available
    """

    status = RelayStatus.INSUFFICIENT_BALANCE


class InsufficientAllowanceError(RelayError):
    """Raised when the allowance granted to the forwarder is below amount + fee."""

    status = RelayStatus.INSUFFICIENT_ALLOWANCE


class FeeTooLowError(RelayError):
    """Raised when the offered fee is below the forwarder's minimum."""

    status = RelayStatus.FEE_TOO_LOW


class SimulationFailedError(RelayError):
    """Raised when the dry-run of the forwarder call reverts."""

    status = RelayStatus.SIMULATION_FAILED


class CounterRaceLostError(RelayError):
    """
    Raised when the sender's replay counter changed between verification
    and submission.

    The authorization was probably executed by another submitter; a fresh
    one must be signed.
    """

    status = RelayStatus.COUNTER_RACE_LOST


class EstimationFailedError(RelayError):
    """Raised when gas estimation fails after a successful dry-run."""

    status = RelayStatus.ESTIMATION_FAILED


class SubmissionFailedError(RelayError):
    """Raised when the signed transaction cannot be broadcast."""

    status = RelayStatus.SUBMISSION_FAILED


class FinalityWaitFailedError(RelayError):
    """
    Raised when a broadcast transaction is not confirmed in time or its
    receipt reports a revert.

    Attributes (in details):
        tx_hash: Transaction hash
        calldata_empty: Whether the submitted transaction carried no calldata
    """

    status = RelayStatus.FINALITY_WAIT_FAILED


class LedgerUnavailableError(RelayError):
    """Raised when a ledger state read fails."""

    status = RelayStatus.LEDGER_UNAVAILABLE


_ERRORS_BY_STATUS: Dict[RelayStatus, Type[RelayError]] = {
    cls.status: cls
    for cls in (
        MalformedRequestError,
        InvalidSignatureFormatError,
        SignerMismatchError,
        RequestExpiredError,
        InsufficientBalanceError,
        InsufficientAllowanceError,
        FeeTooLowError,
        SimulationFailedError,
        CounterRaceLostError,
        EstimationFailedError,
        SubmissionFailedError,
        FinalityWaitFailedError,
        LedgerUnavailableError,
    )
}


def error_for_status(
    status: RelayStatus,
    message: str,
    details: Optional[Dict[str, Any]] = None,
) -> RelayError:
    """
    Build the ``RelayError`` subclass instance matching ``status``.

    Args:
        status: A failure status (``SUCCESS`` is rejected).
        message: Error message.
        details: Structured context.

    Returns:
        RelayError: Exception instance, not raised.

    Raises:
        ValueError: If ``status`` is ``SUCCESS``.
    """
    if status == RelayStatus.SUCCESS:
        raise ValueError("SUCCESS has no matching error")
    return _ERRORS_BY_STATUS[status](message, details=details)


class ConfigurationError(BaseException):
    """
    Raised when configuration is missing or invalid.

    This includes scenarios such as:
    - Missing RELAYER_PRIVATE_KEY or FORWARDER_ADDRESS
    - Invalid forwarder address
    - Unsupported network name
    - Unreadable forwarder ABI file
    """
    pass


class BlockchainInteractionError(BaseException):
    """
    Raised when blockchain interaction (RPC call) fails.

    This includes scenarios such as:
    - RPC call timeout
    - Network connectivity issues
    - Invalid contract address

    Attributes:
        rpc_method: RPC method that was called (e.g., 'eth_call')
        reason: Error reason from blockchain node
    """

    def __init__(self, reason: str, rpc_method: Optional[str] = None):
        super().__init__(reason)
        self.reason = reason
        self.rpc_method = rpc_method


class ContractRevertError(BlockchainInteractionError):
    """
    Raised when a contract call or estimate reverts.

    Attributes:
        data: Raw revert data (0x-prefixed hex) when the node returned it
        error_name: Decoded custom error name when already known
    """

    def __init__(
        self,
        reason: str,
        data: Optional[str] = None,
        error_name: Optional[str] = None,
        rpc_method: Optional[str] = None,
    ):
        super().__init__(reason, rpc_method=rpc_method)
        self.data = data
        self.error_name = error_name
