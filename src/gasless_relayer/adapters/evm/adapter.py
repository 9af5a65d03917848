"""
EVM Relay Adapter

Server-side relay engine for the GaslessPaymentForwarder. Accepts signed
payment authorizations, re-verifies them independently, checks them against
live ledger state, and submits them with a safety-margined gas ceiling.

Key Features:
    - EIP-712 ``PaymentRequest`` signer recovery against the live domain
    - Ledger state validation (expiry, balance, allowance, minimum fee)
    - Dry-run before submission and a replay-counter race recheck
    - Receipt reconciliation with revert diagnosis
    - Batch submission through ``executeBatchPayments``

Dependencies:
    - web3.py: For blockchain RPC interaction (through ``ForwarderLedgerClient``)
    - eth_account: For signature recovery and transaction signing
"""

import asyncio
import logging
from typing import Any, Dict, Optional, Sequence, Tuple, Type

from ...engine.exceptions import ContractRevertError, MalformedRequestError
from ...schemas.bases import RelayStatus, recovery_for
from ..bases import AdapterFactory, LedgerClient
from .checks import LedgerStateChecker
from .constants import (
    DEFAULT_BATCH_GAS_PER_PAYMENT,
    DEFAULT_GAS_BUFFER_PERCENT,
    DEFAULT_MAX_BATCH_SIZE,
    NATIVE_DECIMALS,
    RelayerConfig,
    format_units,
)
from .diagnostics import FailureDiagnoser
from .ERC20_ABI import load_forwarder_abi
from .ledger import ForwarderLedgerClient
from .normalizers import RawPaymentRequest, normalize_address, normalize_payment_request
from .schemas import (
    EVMBatchExecutionResult,
    EVMExecutionResult,
    EVMVerificationResult,
    NormalizedPaymentRequest,
)
from .standards import EIP712Domain
from .verifies import build_forwarder_domain, verify_payment_signature

logger = logging.getLogger(__name__)


class EVMRelayAdapter(AdapterFactory):
    """
    EVM relay engine.

    Pipeline for a single payment, terminal on the first failure:

    1. normalize the raw request
    2. read chain id and the sender's replay counter, recover the signer
    3. check ledger state (expiry, balance, allowance, minimum fee)
    4. dry-run ``executePayment``
    5. re-read the replay counter; abort if it moved
    6. estimate gas and apply the safety margin
    7. sign and broadcast
    8. wait for the receipt and require a non-reverted status

    Each failure is returned as an ``EVMExecutionResult`` whose ``status``
    names the failed step; nothing is raised and nothing is retried.
    At-most-once execution rests on the forwarder's replay counter; the
    recheck in step 5 only narrows the window in which a concurrent
    submitter can make this one fail on-chain.

    Attributes:
        ledger: Ledger client (reads, dry-run, submission)
        diagnoser: Failure diagnoser used on every failing ledger call
        gas_buffer_percent: Gas ceiling as a percentage of the estimate
        batch_gas_per_payment: Fixed gas per batched payment
        max_batch_size: Largest accepted batch

    Example:
        relayer = EVMRelayAdapter.from_config(RelayerConfig.from_env())
        result = await relayer.execute_payment(request_json)
        if result.is_success():
            print(result.tx_hash, result.gas_used)
        else:
            print(result.status, result.recovery, result.error_message)
    """

    def __init__(
        self,
        ledger: LedgerClient,
        *,
        diagnoser: Optional[FailureDiagnoser] = None,
        gas_buffer_percent: int = DEFAULT_GAS_BUFFER_PERCENT,
        batch_gas_per_payment: int = DEFAULT_BATCH_GAS_PER_PAYMENT,
        max_batch_size: int = DEFAULT_MAX_BATCH_SIZE,
    ):
        if gas_buffer_percent < 100:
            raise ValueError("gas_buffer_percent must be at least 100")
        self.ledger = ledger
        self.diagnoser = diagnoser or FailureDiagnoser(ledger=ledger)
        self.checker = LedgerStateChecker(ledger)
        self.gas_buffer_percent = gas_buffer_percent
        self.batch_gas_per_payment = batch_gas_per_payment
        self.max_batch_size = max_batch_size

    @classmethod
    def from_config(cls, config: RelayerConfig) -> "EVMRelayAdapter":
        """Build the adapter and its AsyncWeb3 ledger client from ``RelayerConfig``."""
        ledger = ForwarderLedgerClient.from_config(config)
        error_abi = [e for e in load_forwarder_abi(config.forwarder_abi_path) if e.get("type") == "error"]
        return cls(
            ledger,
            diagnoser=FailureDiagnoser(
                error_abi=error_abi or None,
                ledger=ledger,
            ),
            gas_buffer_percent=config.gas_buffer_percent,
            batch_gas_per_payment=config.batch_gas_per_payment,
            max_batch_size=config.max_batch_size,
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def gas_ceiling(self, estimate: int) -> int:
        """Apply the safety margin, rounding up so the ceiling never falls below it."""
        return -(-int(estimate) * self.gas_buffer_percent // 100)

    async def get_verification_domain(self) -> EIP712Domain:
        """Build the EIP-712 domain from the live chain id and the forwarder address."""
        chain_id = await self.ledger.get_chain_id()
        return build_forwarder_domain(chain_id=chain_id, forwarder_address=self.ledger.forwarder_address)

    def _failure(
        self,
        status: RelayStatus,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        result_cls: Type[EVMExecutionResult] = EVMExecutionResult,
        **fields: Any,
    ) -> EVMExecutionResult:
        return result_cls(
            status=status,
            success=False,
            error_message=message,
            error_details=details,
            recovery=recovery_for(status, details),
            **fields,
        )

    def _from_verification(
        self,
        result: EVMVerificationResult,
        result_cls: Type[EVMExecutionResult] = EVMExecutionResult,
        **fields: Any,
    ) -> EVMExecutionResult:
        return self._failure(result.status, result.message, result.error_details, result_cls, **fields)

    async def _validate(
        self,
        raw_request: RawPaymentRequest,
    ) -> Tuple[Optional[NormalizedPaymentRequest], EVMVerificationResult, Optional[int]]:
        """Normalize, verify the signature and check ledger state; return the counter used."""
        try:
            request = normalize_payment_request(raw_request)
        except MalformedRequestError as e:
            return None, EVMVerificationResult(
                status=RelayStatus.MALFORMED_REQUEST,
                is_valid=False,
                message=e.message,
                error_details=e.details,
            ), None

        try:
            domain, nonce = await asyncio.gather(
                self.get_verification_domain(),
                self.ledger.get_nonce(request.sender),
            )
        except Exception as e:
            logger.warning("Could not read verification inputs for %s: %s", request.sender, e)
            return request, EVMVerificationResult(
                status=RelayStatus.LEDGER_UNAVAILABLE,
                is_valid=False,
                message=f"Could not read chain id or nonce: {e}",
                error_details={"exception": str(e)},
                sender=request.sender,
            ), None

        verification = verify_payment_signature(request, nonce=nonce, domain=domain)
        if not verification.is_success():
            logger.info("Rejected request from %s: %s", request.sender, verification.message)
            return request, verification, nonce

        state = await self.checker.check(request, nonce=nonce)
        if not state.is_success():
            logger.info("Rejected request from %s: %s", request.sender, state.message)
        else:
            state.recovered_signer = verification.recovered_signer
        return request, state, nonce

    # ------------------------------------------------------------------
    # Validation and submission
    # ------------------------------------------------------------------

    async def validate_request(self, raw_request: RawPaymentRequest) -> EVMVerificationResult:
        """
        Run every check short of submission.

        Normalization, signer recovery against the live domain and the
        ledger state check. The result's ``snapshot`` holds the ledger values
        the decision was made on.

        Args:
            raw_request: ``PaymentRequest`` or JSON-style mapping.

        Returns:
            EVMVerificationResult: SUCCESS or the first failing check. No exceptions are raised.
        """
        _, result, _ = await self._validate(raw_request)
        return result

    async def execute_payment(self, raw_request: RawPaymentRequest) -> EVMExecutionResult:
        """
        Validate and relay a single signed payment.

        Args:
            raw_request: ``PaymentRequest`` or JSON-style mapping with
                ``from``, ``to``, ``amount``, ``fee``, ``deadline``, ``signature``.

        Returns:
            :class:`EVMExecutionResult` with ``status=SUCCESS``, the
            transaction hash, block number and gas used once the receipt
            confirms a non-reverted execution; otherwise the failure kind,
            a message and diagnostic details. No exceptions are raised.
        """
        request, verification, nonce = await self._validate(raw_request)
        if not verification.is_success():
            return self._from_verification(verification)

        args = request.to_contract_args()

        # ----------------------------------------------------------------
        # 1. Dry-run
        # ----------------------------------------------------------------
        try:
            await self.ledger.simulate_payment(args)
        except Exception as e:
            diagnosis = self.diagnoser.decode(e, phase="simulation")
            logger.info("Simulation failed for %s: %s", request.sender, diagnosis.reason)
            return self._failure(
                RelayStatus.SIMULATION_FAILED,
                f"Contract simulation failed: {diagnosis.reason}",
                diagnosis.to_details(),
            )

        # ----------------------------------------------------------------
        # 2. Replay counter race recheck
        # ----------------------------------------------------------------
        try:
            current_nonce = await self.ledger.get_nonce(request.sender)
        except Exception as e:
            return self._failure(
                RelayStatus.LEDGER_UNAVAILABLE,
                f"Could not re-read nonce: {e}",
                {"exception": str(e)},
            )

        if current_nonce != nonce:
            logger.warning(
                "Nonce for %s moved from %s to %s before submission", request.sender, nonce, current_nonce
            )
            return self._failure(
                RelayStatus.COUNTER_RACE_LOST,
                (
                    f"Nonce changed (was {nonce}, now {current_nonce}). "
                    "Payment may have been submitted by another request. "
                    "Please create a new payment request."
                ),
                {"expected_nonce": nonce, "current_nonce": current_nonce},
            )

        # ----------------------------------------------------------------
        # 3. Gas estimate with safety margin
        # ----------------------------------------------------------------
        try:
            estimate = await self.ledger.estimate_payment_gas(args)
        except Exception as e:
            diagnosis = self.diagnoser.decode(e, phase="estimateGas")
            return self._failure(
                RelayStatus.ESTIMATION_FAILED,
                f"Gas estimation failed (contract would revert): {diagnosis.reason}",
                diagnosis.to_details(),
            )
        gas_limit = self.gas_ceiling(estimate)

        # ----------------------------------------------------------------
        # 4-5. Submit and await finality
        # ----------------------------------------------------------------
        logger.info(
            "Relaying payment %s -> %s (amount=%s fee=%s gas_limit=%s)",
            request.sender, request.recipient, request.amount, request.fee, gas_limit,
        )
        return await self._submit_and_confirm(
            lambda: self.ledger.send_payment(args, gas_limit),
            gas_limit=gas_limit,
        )

    async def execute_batch_payments(self, raw_requests: Sequence[RawPaymentRequest]) -> EVMBatchExecutionResult:
        """
        Relay several payments in one ``executeBatchPayments`` transaction.

        Each request is normalized and checked against ledger state.
        Signatures are not re-verified here: requests from one sender carry
        consecutive counters and only the first matches the current value.
        There is no dry-run and no estimate; the gas ceiling is
        ``batch_gas_per_payment * len(requests)``.

        Args:
            raw_requests: Non-empty sequence of at most ``max_batch_size`` requests.

        Returns:
            :class:`EVMBatchExecutionResult`; ``payments_processed`` counts
            the submitted requests. No exceptions are raised.
        """
        if isinstance(raw_requests, (str, bytes)) or not isinstance(raw_requests, Sequence):
            return self._failure(
                RelayStatus.MALFORMED_REQUEST,
                "Batch must be a list of payment requests",
                {"field": "requests"},
                EVMBatchExecutionResult,
            )
        if not raw_requests:
            return self._failure(
                RelayStatus.MALFORMED_REQUEST,
                "Batch must contain at least one payment request",
                {"field": "requests", "size": 0},
                EVMBatchExecutionResult,
            )
        if len(raw_requests) > self.max_batch_size:
            return self._failure(
                RelayStatus.MALFORMED_REQUEST,
                f"Batch of {len(raw_requests)} exceeds the maximum of {self.max_batch_size}",
                {"field": "requests", "size": len(raw_requests), "max_batch_size": self.max_batch_size},
                EVMBatchExecutionResult,
            )

        requests = []
        for index, raw in enumerate(raw_requests):
            try:
                requests.append(normalize_payment_request(raw))
            except MalformedRequestError as e:
                return self._failure(
                    RelayStatus.MALFORMED_REQUEST,
                    f"Request {index}: {e.message}",
                    {**e.details, "index": index},
                    EVMBatchExecutionResult,
                )

        checks = await asyncio.gather(*(self.checker.check(r) for r in requests))
        for index, check in enumerate(checks):
            if not check.is_success():
                return self._failure(
                    check.status,
                    f"Request {index}: {check.message}",
                    {**(check.error_details or {}), "index": index},
                    EVMBatchExecutionResult,
                )

        gas_limit = self.batch_gas_per_payment * len(requests)
        batch_args = [r.to_contract_args() for r in requests]
        logger.info("Relaying batch of %d payments (gas_limit=%s)", len(requests), gas_limit)
        return await self._submit_and_confirm(
            lambda: self.ledger.send_batch_payments(batch_args, gas_limit),
            gas_limit=gas_limit,
            result_cls=EVMBatchExecutionResult,
            payments_processed=len(requests),
        )

    async def _submit_and_confirm(
        self,
        send,
        *,
        gas_limit: int,
        result_cls: Type[EVMExecutionResult] = EVMExecutionResult,
        **submitted_fields: Any,
    ) -> EVMExecutionResult:
        """
        Broadcast via ``send()`` and reconcile the receipt.

        ``submitted_fields`` are attached only once a transaction exists.
        """
        try:
            tx_hash = await send()
        except Exception as e:
            diagnosis = self.diagnoser.decode(e, phase="sendTransaction")
            logger.error("Submission failed: %s", diagnosis.summary())
            return self._failure(
                RelayStatus.SUBMISSION_FAILED,
                diagnosis.summary(),
                diagnosis.to_details(),
                result_cls,
                gas_limit=gas_limit,
            )

        explorer_url = self.ledger.explorer_tx_url(tx_hash)
        logger.info("Submitted transaction %s", tx_hash)

        try:
            receipt = await self.ledger.wait_for_receipt(tx_hash)
        except Exception as e:
            diagnosis = await self.diagnoser.diagnose(e, phase="transaction", tx_hash=tx_hash)
            logger.error("Transaction %s not confirmed: %s", tx_hash, diagnosis.summary())
            return self._failure(
                RelayStatus.FINALITY_WAIT_FAILED,
                diagnosis.summary(),
                diagnosis.to_details(),
                result_cls,
                tx_hash=tx_hash,
                gas_limit=gas_limit,
                explorer_url=explorer_url,
                **submitted_fields,
            )

        block_number = receipt.get("blockNumber")
        gas_used = int(receipt.get("gasUsed") or 0)

        if receipt.get("status") == 0:
            reverted = ContractRevertError("transaction reverted on-chain", rpc_method="eth_getTransactionReceipt")
            diagnosis = await self.diagnoser.diagnose(reverted, phase="transaction", tx_hash=tx_hash)
            logger.error("Transaction %s reverted: %s", tx_hash, diagnosis.summary())
            return self._failure(
                RelayStatus.FINALITY_WAIT_FAILED,
                diagnosis.summary(),
                diagnosis.to_details(),
                result_cls,
                tx_hash=tx_hash,
                block_number=block_number,
                gas_used=gas_used,
                gas_limit=gas_limit,
                explorer_url=explorer_url,
                **submitted_fields,
            )

        logger.info("Transaction %s confirmed in block %s (gas used %s)", tx_hash, block_number, gas_used)
        return result_cls(
            status=RelayStatus.SUCCESS,
            success=True,
            tx_hash=tx_hash,
            block_number=block_number,
            gas_used=gas_used,
            gas_limit=gas_limit,
            explorer_url=explorer_url,
            **submitted_fields,
        )

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_nonce(self, address: str) -> int:
        """
        Current forwarder replay counter of ``address``.

        Raises:
            MalformedRequestError: If ``address`` is not a valid address.
            BlockchainInteractionError: If the read fails.
        """
        return await self.ledger.get_nonce(normalize_address(address, "address"))

    async def get_relayer_fee(self) -> int:
        """Minimum relayer fee in token base units."""
        return await self.ledger.get_relayer_fee()

    async def get_token_decimals(self) -> int:
        """Decimals of the token the forwarder currently moves (resolved fresh)."""
        token = await self.ledger.resolve_token_address()
        return await self.ledger.get_token_decimals(token)

    async def get_relayer_balance(self) -> Dict[str, Any]:
        """
        Gas currency balance of the operating account.

        Returns:
            Dict with ``address``, ``balance_wei`` and ``balance`` (decimal string).
        """
        address = self.ledger.relayer_address
        wei = await self.ledger.get_native_balance(address)
        return {
            "address": address,
            "balance_wei": wei,
            "balance": format_units(wei, NATIVE_DECIMALS),
        }
