from dataclasses import dataclass, field
from typing import Dict, Any, List


# -----------------------------
# EIP-712 Domain
# -----------------------------

@dataclass(frozen=True)
class EIP712Domain:
    """
    EIP-712 domain separator.
    Used to prevent signature replay across chains and contracts.
    """
    name: str
    version: str
    chainId: int
    verifyingContract: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "version": self.version,
            "chainId": self.chainId,
            "verifyingContract": self.verifyingContract,
        }


# -----------------------------
# GaslessPaymentForwarder: PaymentRequest
# -----------------------------

@dataclass(frozen=True)
class PaymentRequestMessage:
    """
    Message payload of the forwarder's ``PaymentRequest`` typed struct.

    The on-chain type names its first field `from`, a Python reserved word;
    this class uses `sender` and maps it back in `to_dict()`.

    Attributes:
        sender: Address authorizing the payment (maps to `from`).
        recipient: Address receiving the amount (maps to `to`).
        amount: Amount in token base units (uint256).
        fee: Fee paid to the relayer in token base units (uint256).
        nonce: Sender's replay counter at signing time (uint256).
        deadline: Unix timestamp after which the request is void (uint256).
    """
    sender: str
    recipient: str
    amount: int
    fee: int
    nonce: int
    deadline: int

    def to_dict(self) -> Dict[str, Any]:
        """Return the message keyed by the typed-struct field names."""
        return {
            "from": self.sender,
            "to": self.recipient,
            "amount": self.amount,
            "fee": self.fee,
            "nonce": self.nonce,
            "deadline": self.deadline,
        }


@dataclass
class PaymentRequestTypedData:
    """
    Container for ``PaymentRequest`` typed data usable with EIP-712 signing
    and recovery routines.

    Attributes:
        domain: EIP712Domain describing the forwarder deployment.
        message: PaymentRequestMessage carrying the payload.
        primary_type: The primary EIP-712 type (``"PaymentRequest"``).
        types: The typed definitions required by EIP-712 (automatically set).
    """
    domain: EIP712Domain
    message: PaymentRequestMessage

    primary_type: str = "PaymentRequest"

    types: Dict[str, List[Dict[str, str]]] = field(
        default_factory=lambda: {
            "EIP712Domain": [
                {"name": "name", "type": "string"},
                {"name": "version", "type": "string"},
                {"name": "chainId", "type": "uint256"},
                {"name": "verifyingContract", "type": "address"},
            ],
            "PaymentRequest": [
                {"name": "from", "type": "address"},
                {"name": "to", "type": "address"},
                {"name": "amount", "type": "uint256"},
                {"name": "fee", "type": "uint256"},
                {"name": "nonce", "type": "uint256"},
                {"name": "deadline", "type": "uint256"},
            ],
        }
    )

    def to_dict(self) -> Dict[str, Any]:
        """Return ``{types, primaryType, domain, message}`` for ``full_message=`` APIs."""
        return {
            "types": self.types,
            "primaryType": self.primary_type,
            "domain": self.domain.to_dict(),
            "message": self.message.to_dict(),
        }
