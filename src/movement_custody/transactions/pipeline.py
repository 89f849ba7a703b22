"""Custody-signed transaction pipeline.

Pipeline flow (each step aborts the whole transaction on failure):
1. Build the unsigned transaction from the intent
2. Derive the signing payload (domain prefix + BCS bytes)
3. Send a raw-sign request to the custody platform and poll it to a terminal status
4. Rebuild the sender authenticator from the returned signature
5. Submit the signed transaction and wait for it to be committed

Only the status poll in step 3 repeats; nothing else is retried.
"""

import asyncio
import logging
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Awaitable, Callable, Iterator, Optional

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PublicKey

from movement_custody.errors import (
    CustodyError,
    InvalidSignatureError,
    SigningFailedError,
    SigningTimeoutError,
    TransactionError,
)
from movement_custody.movement.base import LedgerClient
from movement_custody.movement.types import (
    ED25519_SIGNATURE_LENGTH,
    Ed25519Authenticator,
    RawTransaction,
)
from movement_custody.signing.base import (
    CustodySigner,
    DerivationPath,
    SigningRequest,
    SigningRequestStatus,
    SigningStatus,
)
from movement_custody.transactions.intent import (
    TransactionIntent,
    build_call,
    effective_gas_options,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PipelineConfig:
    """Polling and verification settings of the pipeline.

    Attributes:
        poll_interval_s: Delay between signing status polls
        signing_timeout_s: Deadline for reaching a terminal status (None = no deadline)
        verify_signatures: Check signatures against the public key before submitting
    """
    poll_interval_s: float = 3.0
    signing_timeout_s: Optional[float] = 600.0
    verify_signatures: bool = True


@contextmanager
def _step(context: str) -> Iterator[None]:
    """Add ``context`` to any failure of the wrapped step and re-raise."""
    try:
        yield
    except CustodyError as e:
        raise e.with_context(context)
    except (ValueError, TypeError) as e:
        raise TransactionError(f"{context}: {e}") from e


class TransactionPipeline:
    """Runs the five-step custody signing flow for one transaction at a time.

    The pipeline holds no per-transaction state, so one instance can be
    shared by every account client.
    """

    def __init__(
        self,
        signer: CustodySigner,
        ledger: LedgerClient,
        config: Optional[PipelineConfig] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.signer = signer
        self.ledger = ledger
        self.config = config or PipelineConfig()
        self._sleep = sleep

    async def execute(
        self,
        intent: TransactionIntent,
        derivation_path: DerivationPath,
        public_key: bytes,
    ) -> dict:
        """Build, custody-sign, submit and confirm a transaction.

        Args:
            intent: Transfer to perform
            derivation_path: Custody key slot of the sender
            public_key: Sender's cached Ed25519 public key

        Returns:
            Committed transaction exactly as reported by the ledger
        """
        raw_transaction = await self.build(intent)
        payload = self.signing_payload(raw_transaction)
        signature = await self.request_signature(payload, derivation_path)
        authenticator = self.build_authenticator(public_key, signature, payload)
        return await self.submit_and_confirm(raw_transaction, authenticator)

    async def build(self, intent: TransactionIntent) -> RawTransaction:
        """Step 1: unsigned transaction for the intent."""
        with _step("Failed to build transaction"):
            call = build_call(intent)
            return await self.ledger.build_transaction(
                intent.sender, call, effective_gas_options(intent.gas_options)
            )

    def signing_payload(self, raw_transaction: RawTransaction) -> bytes:
        """Step 2: exact bytes to sign. Same transaction, same bytes."""
        with _step("Failed to serialize transaction"):
            return self.ledger.signing_message(raw_transaction)

    async def request_signature(self, payload: bytes, derivation_path: DerivationPath) -> Optional[bytes]:
        """Step 3: raw-sign ``payload`` on the custody platform."""
        request = SigningRequest(
            payload=payload,
            derivation_path=derivation_path,
            note=f"Movement transaction: {payload.hex()}",
        )
        with _step("Failed to create signing request"):
            request_id = await self.signer.create_raw_sign_request(request)

        result = await self.wait_for_signature(request_id)
        return result.signature

    async def wait_for_signature(self, request_id: str) -> SigningRequestStatus:
        """Poll a signing request until it reaches a terminal status.

        Raises:
            SigningFailedError: Request ended BLOCKED, CANCELLED, FAILED or REJECTED
            SigningTimeoutError: Deadline passed before a terminal status
        """
        loop = asyncio.get_running_loop()
        timeout = self.config.signing_timeout_s
        deadline = None if timeout is None else loop.time() + timeout

        while True:
            with _step(f"Failed to poll signing request {request_id}"):
                result = await self.signer.get_request_status(request_id)
            logger.debug(f"Signing request {request_id} is {result.status.value}")

            if result.status is SigningStatus.COMPLETED:
                return result
            if result.status.is_failure:
                logger.error(f"Signing request {request_id} ended with status {result.status.value}")
                raise SigningFailedError(request_id, result.status.value)
            if deadline is not None and loop.time() >= deadline:
                raise SigningTimeoutError(request_id, timeout)

            await self._sleep(self.config.poll_interval_s)

    def build_authenticator(
        self,
        public_key: bytes,
        signature: Optional[bytes],
        payload: bytes,
    ) -> Ed25519Authenticator:
        """Step 4: pair the signature with the sender's public key."""
        if signature is None:
            raise InvalidSignatureError("Custody platform returned no signature")
        if len(signature) != ED25519_SIGNATURE_LENGTH:
            raise InvalidSignatureError(
                f"Expected a {ED25519_SIGNATURE_LENGTH}-byte Ed25519 signature, got {len(signature)} bytes"
            )

        if self.config.verify_signatures:
            try:
                Ed25519PublicKey.from_public_bytes(public_key).verify(signature, payload)
            except InvalidSignature:
                raise InvalidSignatureError("Signature does not verify against the account public key")
            except ValueError as e:
                raise InvalidSignatureError(f"Invalid account public key: {e}") from e

        with _step("Failed to create sender authenticator"):
            return Ed25519Authenticator(public_key=public_key, signature=signature)

    async def submit_and_confirm(
        self,
        raw_transaction: RawTransaction,
        authenticator: Ed25519Authenticator,
    ) -> dict:
        """Step 5: submit and block until committed."""
        with _step("Failed to submit transaction"):
            pending = await self.ledger.submit_transaction(raw_transaction, authenticator)

        transaction_hash = pending["hash"]
        with _step(f"Failed to wait for transaction {transaction_hash}"):
            return await self.ledger.wait_for_transaction(transaction_hash)
