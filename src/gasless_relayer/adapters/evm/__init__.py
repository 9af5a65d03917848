from .adapter import EVMRelayAdapter
from .ledger import ForwarderLedgerClient
from .constants import RelayerConfig
from .diagnostics import FailureDiagnoser
from .checks import LedgerStateChecker
from .normalizers import normalize_payment_request
from .schemas import (
    PaymentRequest,
    NormalizedPaymentRequest,
    EVMECDSASignature,
    LedgerSnapshot,
    EVMVerificationResult,
    EVMExecutionResult,
    EVMBatchExecutionResult,
    RevertDiagnosis,
)
from .signatures import (
    sign_payment_request,
    create_payment_request,
    check_user_status,
    parse_amount,
    format_amount,
)
from .verifies import (
    build_forwarder_domain,
    verify_payment_signature,
)

__all__ = [
    "EVMRelayAdapter",
    "ForwarderLedgerClient",
    "RelayerConfig",
    "FailureDiagnoser",
    "LedgerStateChecker",
    "normalize_payment_request",
    "PaymentRequest",
    "NormalizedPaymentRequest",
    "EVMECDSASignature",
    "LedgerSnapshot",
    "EVMVerificationResult",
    "EVMExecutionResult",
    "EVMBatchExecutionResult",
    "RevertDiagnosis",
    "sign_payment_request",
    "create_payment_request",
    "check_user_status",
    "parse_amount",
    "format_amount",
    "build_forwarder_domain",
    "verify_payment_signature",
]
