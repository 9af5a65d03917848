from .bases import AdapterFactory, LedgerClient
from .evm import (
    EVMRelayAdapter,
    ForwarderLedgerClient,
    PaymentRequest,
    NormalizedPaymentRequest,
    EVMVerificationResult,
    EVMExecutionResult,
    EVMBatchExecutionResult,
)

__all__ = [
    "AdapterFactory",
    "LedgerClient",
    "EVMRelayAdapter",
    "ForwarderLedgerClient",
    "PaymentRequest",
    "NormalizedPaymentRequest",
    "EVMVerificationResult",
    "EVMExecutionResult",
    "EVMBatchExecutionResult",
]
