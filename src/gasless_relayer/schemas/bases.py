"""
Base Schema Models for the Gasless Relayer

This module defines the fundamental base classes that all other schema models
inherit from. It provides the foundation for type safety, validation, and
consistent result reporting across the relay engine.

Core Classes:
    - CanonicalModel: Pydantic base model with deterministic JSON serialization
    - RelayStatus: Outcome kinds shared by every engine operation
    - RecoveryAction: What a caller should do about a failed outcome
    - BaseVerificationResult: Abstract verification result model
    - BaseExecutionResult: Abstract execution result model

Dependencies:
    - pydantic: For data validation and serialization
"""

import json
from typing import Optional, Dict, Any
from abc import ABC
from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class CanonicalModel(BaseModel):
    """
    Pydantic base model with canonical JSON serialization.

    Ensures a consistent, deterministic JSON representation: sorted keys and
    no extra whitespace. All schema models in the relayer inherit from it.

    Example:
        class MyModel(CanonicalModel):
            name: str
            value: int

        model = MyModel(name="test", value=123)
        canonical_json = model.to_canonical_json()  # '{"name":"test","value":123}'
    """

    model_config = ConfigDict(populate_by_name=True)

    def to_canonical_json(self) -> str:
        """
        Convert model to a canonical JSON string.

        ``model_dump(mode="json")`` turns enums, datetimes and nested models
        into plain types; ``json.dumps`` with sorted keys and compact
        separators makes the output deterministic.

        Returns:
            str: JSON string with sorted keys and no extra whitespace.
        """
        data = self.model_dump(mode="json", by_alias=True)
        return json.dumps(
            data,
            separators=(",", ":"),
            sort_keys=True,
            ensure_ascii=False
        )

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert model to dictionary representation.

        Returns:
            Dict[str, Any]: Dictionary with all model fields.
        """
        return self.model_dump()


class RelayStatus(str, Enum):
    """
    Enumeration of relay outcome kinds.

    Every engine operation reports exactly one of these. ``SUCCESS`` is the
    only non-failure value; every other member names the step that stopped
    the request.

    Attributes:
        SUCCESS: Request passed every step (or the transaction was confirmed)
        MALFORMED_REQUEST: A field could not be parsed into canonical form
        INVALID_SIGNATURE_FORMAT: Signature bytes cannot be split or recovered
        SIGNER_MISMATCH: Recovered signer differs from the declared sender
        REQUEST_EXPIRED: Deadline is at or before ledger time
        INSUFFICIENT_BALANCE: Sender balance is below amount + fee
        INSUFFICIENT_ALLOWANCE: Forwarder allowance is below amount + fee
        FEE_TOO_LOW: Offered fee is below the forwarder's minimum
        SIMULATION_FAILED: Dry-run of the forwarder call reverted
        COUNTER_RACE_LOST: Replay counter moved between verification and send
        ESTIMATION_FAILED: Gas estimation failed after a successful dry-run
        SUBMISSION_FAILED: Transaction could not be broadcast
        FINALITY_WAIT_FAILED: Transaction was not confirmed or was reverted
        LEDGER_UNAVAILABLE: A ledger state read failed
    """
    SUCCESS = "success"
    MALFORMED_REQUEST = "malformed_request"
    INVALID_SIGNATURE_FORMAT = "invalid_signature_format"
    SIGNER_MISMATCH = "signer_mismatch"
    REQUEST_EXPIRED = "request_expired"
    INSUFFICIENT_BALANCE = "insufficient_balance"
    INSUFFICIENT_ALLOWANCE = "insufficient_allowance"
    FEE_TOO_LOW = "fee_too_low"
    SIMULATION_FAILED = "simulation_failed"
    COUNTER_RACE_LOST = "counter_race_lost"
    ESTIMATION_FAILED = "estimation_failed"
    SUBMISSION_FAILED = "submission_failed"
    FINALITY_WAIT_FAILED = "finality_wait_failed"
    LEDGER_UNAVAILABLE = "ledger_unavailable"


class RecoveryAction(str, Enum):
    """
    What the caller should do after a failed outcome.

    Attributes:
        NONE: Nothing to do, the request succeeded
        RESIGN: Construct and sign a fresh authorization
        FIX_INPUT: Correct the request or the sender's on-chain state first
        RETRY: Transient condition, the same request may be tried again
        INSPECT: Look at the submitted transaction before acting
        SYSTEM_FAULT: The relayer itself misbehaved
    """
    NONE = "none"
    RESIGN = "resign"
    FIX_INPUT = "fix_input"
    RETRY = "retry"
    INSPECT = "inspect"
    SYSTEM_FAULT = "system_fault"


_RECOVERY_BY_STATUS: Dict[RelayStatus, RecoveryAction] = {
    RelayStatus.SUCCESS: RecoveryAction.NONE,
    RelayStatus.MALFORMED_REQUEST: RecoveryAction.FIX_INPUT,
    RelayStatus.INVALID_SIGNATURE_FORMAT: RecoveryAction.FIX_INPUT,
    RelayStatus.SIGNER_MISMATCH: RecoveryAction.RESIGN,
    RelayStatus.REQUEST_EXPIRED: RecoveryAction.RESIGN,
    RelayStatus.INSUFFICIENT_BALANCE: RecoveryAction.FIX_INPUT,
    RelayStatus.INSUFFICIENT_ALLOWANCE: RecoveryAction.FIX_INPUT,
    RelayStatus.FEE_TOO_LOW: RecoveryAction.FIX_INPUT,
    RelayStatus.SIMULATION_FAILED: RecoveryAction.FIX_INPUT,
    RelayStatus.COUNTER_RACE_LOST: RecoveryAction.RESIGN,
    RelayStatus.ESTIMATION_FAILED: RecoveryAction.RETRY,
    RelayStatus.SUBMISSION_FAILED: RecoveryAction.SYSTEM_FAULT,
    RelayStatus.FINALITY_WAIT_FAILED: RecoveryAction.INSPECT,
    RelayStatus.LEDGER_UNAVAILABLE: RecoveryAction.RETRY,
}


def recovery_for(status: RelayStatus, error_details: Optional[Dict[str, Any]] = None) -> RecoveryAction:
    """
    Classify a status into the action a caller should take.

    A finality failure whose submitted transaction carried no calldata is a
    relayer fault rather than something to inspect.

    Args:
        status: Outcome kind.
        error_details: Optional diagnostic details attached to the outcome.

    Returns:
        RecoveryAction: Recommended caller action.
    """
    if (
        status == RelayStatus.FINALITY_WAIT_FAILED
        and error_details
        and error_details.get("calldata_empty") is True
    ):
        return RecoveryAction.SYSTEM_FAULT
    return _RECOVERY_BY_STATUS[status]


class BaseVerificationResult(CanonicalModel, ABC):
    """
    Abstract base class for verification results.

    Encapsulates the outcome of checking an authorization, either its
    signature or its standing against ledger state.

    Attributes:
        verification_type: Type of verification (e.g., "evm")
        status: Verification result status (RelayStatus enum)
        is_valid: Boolean indicating if verification was successful
        message: Human-readable status message
        error_details: Detailed error information if verification failed
        verified_at: Timestamp when verification was performed

    Methods:
        is_success: Check if verification was successful
        get_error_message: Get formatted error message
    """

    verification_type: str = Field(..., description="Type of verification (e.g., evm)")
    status: RelayStatus = Field(..., description="Verification result status")
    is_valid: bool = Field(..., description="Whether the request passed verification")
    message: str = Field(..., description="Human-readable status message")
    error_details: Optional[Dict[str, Any]] = Field(None, description="Detailed error information")
    verified_at: datetime = Field(default_factory=datetime.now, description="Verification timestamp")

    def is_success(self) -> bool:
        """
        Check if verification was successful.

        Returns:
            bool: True if verification was successful, False otherwise.

        Example:
            result = await checker.check(request)
            if result.is_success():
                # Proceed with submission
            else:
                # Report result.status to the caller
        """
        return self.is_valid and self.status == RelayStatus.SUCCESS

    def get_error_message(self) -> Optional[str]:
        """
        Get formatted error message from verification result.

        Returns:
            Optional[str]: Error message if verification failed, None if successful.
        """
        if self.is_success():
            return None

        error_msg = f"Verification failed: {self.message}"
        if self.error_details:
            details_str = json.dumps(self.error_details, indent=2, default=str)
            error_msg += f"\nDetails: {details_str}"
        return error_msg


class BaseExecutionResult(CanonicalModel, ABC):
    """
    Abstract base class for relay execution results.

    Captures the outcome of submitting an authorization: either a confirmed,
    non-reverted transaction or the failure kind that stopped the pipeline.

    Attributes:
        confirmation_type: Type of confirmation (e.g., "evm")
        status: Outcome kind (RelayStatus enum)
        success: True only after inclusion and a non-reverted receipt
        error_message: Error message if execution failed
        error_details: Structured diagnostic details
        recovery: Recommended caller action
        created_at: Timestamp when the result was recorded

    Methods:
        is_success: Check if the transaction executed successfully
    """

    confirmation_type: str = Field(..., description="Type of confirmation (e.g., evm)")
    status: RelayStatus = Field(..., description="Execution outcome kind")
    success: bool = Field(default=False, description="Whether the transaction was confirmed without revert")
    error_message: Optional[str] = Field(None, description="Error message if execution failed")
    error_details: Optional[Dict[str, Any]] = Field(None, description="Structured diagnostic details")
    recovery: RecoveryAction = Field(default=RecoveryAction.NONE, description="Recommended caller action")
    created_at: datetime = Field(default_factory=datetime.now, description="Result recording timestamp")

    def is_success(self) -> bool:
        """
        Check if the transaction executed successfully on-chain.

        Returns:
            bool: True if the transaction was confirmed and not reverted.
        """
        return self.success and self.status == RelayStatus.SUCCESS
