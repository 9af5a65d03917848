from .bases import CanonicalModel, RelayStatus, RecoveryAction, recovery_for, BaseVerificationResult, BaseExecutionResult
from .https import NonceResponse, FeeResponse, BatchExecuteRequest, ExecuteResponse, BatchExecuteResponse, ErrorResponse

__all__ = [
    "CanonicalModel",
    "RelayStatus",
    "RecoveryAction",
    "recovery_for",
    "BaseVerificationResult",
    "BaseExecutionResult",
    "NonceResponse",
    "FeeResponse",
    "BatchExecuteRequest",
    "ExecuteResponse",
    "BatchExecuteResponse",
    "ErrorResponse",
]
