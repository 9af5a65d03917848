"""
ERC20 + GaslessPaymentForwarder Smart Contract ABI Module

This module provides simplified ABI definitions for the FXRP token reads the
relayer performs and for the forwarder contract it submits payments to,
including the custom errors used to decode opaque reverts.

Usage:
    from .ERC20_ABI import get_erc20_abi, get_forwarder_abi

    token = web3.eth.contract(address=token_address, abi=get_erc20_abi())
    forwarder = web3.eth.contract(address=forwarder_address, abi=get_forwarder_abi())
"""

import json
from pathlib import Path
from typing import Dict, Any, List, Optional

from ...engine.exceptions import ConfigurationError


def get_balance_abi() -> List[Dict[str, Any]]:
    """
    Get ABI for ERC20 `balanceOf(account)`.

    Returns:
        List[Dict[str, Any]]: ABI for balanceOf function
    """
    return [
        {
            "name": "balanceOf",
            "type": "function",
            "stateMutability": "view",
            "inputs": [{"name": "account", "type": "address"}],
            "outputs": [{"name": "", "type": "uint256"}],
        }
    ]


def get_allowance_abi() -> List[Dict[str, Any]]:
    """
    Get ABI for ERC20 `allowance(owner, spender)`.

    Returns:
        List[Dict[str, Any]]: ABI for ERC20 `allowance` function.
    """
    return [
        {
            "name": "allowance",
            "type": "function",
            "stateMutability": "view",
            "inputs": [
                {"name": "owner", "type": "address"},
                {"name": "spender", "type": "address"},
            ],
            "outputs": [{"name": "", "type": "uint256"}],
        }
    ]


def get_decimals_abi() -> List[Dict[str, Any]]:
    """Get ABI for ERC20 `decimals()`."""
    return [
        {
            "name": "decimals",
            "type": "function",
            "stateMutability": "view",
            "inputs": [],
            "outputs": [{"name": "", "type": "uint8"}],
        }
    ]


def get_approve_abi() -> List[Dict[str, Any]]:
    """
    Get ABI for ERC20 `approve(spender, amount)`.

    Example:
        contract = web3.eth.contract(address=token_address, abi=get_approve_abi())
        tx = contract.functions.approve(forwarder, MAX_UINT256).build_transaction({...})
    """
    return [
        {
            "name": "approve",
            "type": "function",
            "stateMutability": "nonpayable",
            "inputs": [
                {"name": "spender", "type": "address"},
                {"name": "amount", "type": "uint256"},
            ],
            "outputs": [{"name": "", "type": "bool"}],
        }
    ]


def get_erc20_error_abi() -> List[Dict[str, Any]]:
    """
    Get ABI entries for the ERC-6093 token errors a transfer can revert with.

    Returns:
        List[Dict[str, Any]]: ``error`` entries.
    """
    return [
        {
            "name": "ERC20InsufficientBalance",
            "type": "error",
            "inputs": [
                {"name": "sender", "type": "address"},
                {"name": "balance", "type": "uint256"},
                {"name": "needed", "type": "uint256"},
            ],
        },
        {
            "name": "ERC20InsufficientAllowance",
            "type": "error",
            "inputs": [
                {"name": "spender", "type": "address"},
                {"name": "allowance", "type": "uint256"},
                {"name": "needed", "type": "uint256"},
            ],
        },
    ]


def get_erc20_abi() -> List[Dict[str, Any]]:
    """Get the combined ERC20 ABI used by the ledger client."""
    return (
        get_balance_abi()
        + get_allowance_abi()
        + get_decimals_abi()
        + get_approve_abi()
        + get_erc20_error_abi()
    )


_PAYMENT_REQUEST_COMPONENTS: List[Dict[str, str]] = [
    {"name": "from", "type": "address"},
    {"name": "to", "type": "address"},
    {"name": "amount", "type": "uint256"},
    {"name": "fee", "type": "uint256"},
    {"name": "deadline", "type": "uint256"},
    {"name": "signature", "type": "bytes"},
]


def get_forwarder_error_abi() -> List[Dict[str, Any]]:
    """
    Get the custom errors the forwarder (and the OpenZeppelin libraries it
    builds on) can revert with.

    Used by the failure diagnoser to name a revert from its 4-byte selector.
    """
    return [
        {"name": "InvalidSignature", "type": "error", "inputs": []},
        {"name": "RequestExpired", "type": "error", "inputs": []},
        {"name": "InsufficientFee", "type": "error", "inputs": []},
        {"name": "InvalidRecipient", "type": "error", "inputs": []},
        {"name": "ZeroAmount", "type": "error", "inputs": []},
        {"name": "EmptyBatch", "type": "error", "inputs": []},
        {"name": "TransferFailed", "type": "error", "inputs": []},
        {"name": "ECDSAInvalidSignature", "type": "error", "inputs": []},
        {
            "name": "ECDSAInvalidSignatureLength",
            "type": "error",
            "inputs": [{"name": "length", "type": "uint256"}],
        },
        {
            "name": "ECDSAInvalidSignatureS",
            "type": "error",
            "inputs": [{"name": "s", "type": "bytes32"}],
        },
        {
            "name": "SafeERC20FailedOperation",
            "type": "error",
            "inputs": [{"name": "token", "type": "address"}],
        },
        {
            "name": "OwnableUnauthorizedAccount",
            "type": "error",
            "inputs": [{"name": "account", "type": "address"}],
        },
        {"name": "ReentrancyGuardReentrantCall", "type": "error", "inputs": []},
    ]


def get_forwarder_abi() -> List[Dict[str, Any]]:
    """
    Get ABI for the GaslessPaymentForwarder contract.

    The function signatures on-chain::

        function executePayment(address from, address to, uint256 amount,
                                uint256 fee, uint256 deadline, bytes signature) external
        function executeBatchPayments(PaymentRequest[] requests) external
        function getNonce(address account) external view returns (uint256)
        function relayerFee() external view returns (uint256)
        function fxrp() external view returns (address)

    where ``PaymentRequest = { from, to, amount, fee, deadline, signature }``.

    Returns:
        List[Dict[str, Any]]: Function and error entries.

    Example::

        forwarder = web3.eth.contract(address=forwarder_address, abi=get_forwarder_abi())
        tx = forwarder.functions.executePayment(
            sender, recipient, amount, fee, deadline, sig_bytes,
        ).build_transaction({...})
    """
    return [
        {
            "name": "executePayment",
            "type": "function",
            "stateMutability": "nonpayable",
            "inputs": list(_PAYMENT_REQUEST_COMPONENTS),
            "outputs": [],
        },
        {
            "name": "executeBatchPayments",
            "type": "function",
            "stateMutability": "nonpayable",
            "inputs": [
                {
                    "name": "requests",
                    "type": "tuple[]",
                    "components": list(_PAYMENT_REQUEST_COMPONENTS),
                },
            ],
            "outputs": [],
        },
        {
            "name": "getNonce",
            "type": "function",
            "stateMutability": "view",
            "inputs": [{"name": "account", "type": "address"}],
            "outputs": [{"name": "", "type": "uint256"}],
        },
        {
            "name": "relayerFee",
            "type": "function",
            "stateMutability": "view",
            "inputs": [],
            "outputs": [{"name": "", "type": "uint256"}],
        },
        {
            "name": "fxrp",
            "type": "function",
            "stateMutability": "view",
            "inputs": [],
            "outputs": [{"name": "", "type": "address"}],
        },
    ] + get_forwarder_error_abi()


def load_forwarder_abi(path: Optional[str] = None) -> List[Dict[str, Any]]:
    """
    Load the forwarder ABI from a JSON file, or return the built-in one.

    Accepts either a bare ABI list or a compiler artifact with an ``abi`` key.

    Raises:
        ConfigurationError: If the file cannot be read or holds no ABI list.
    """
    if not path:
        return get_forwarder_abi()

    try:
        payload = json.loads(Path(path).read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        raise ConfigurationError(f"Cannot read forwarder ABI from {path}: {e}") from e

    abi = payload.get("abi") if isinstance(payload, dict) else payload
    if not isinstance(abi, list):
        raise ConfigurationError(f"No ABI list found in {path}")
    return abi
