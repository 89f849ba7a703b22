"""Simulated custody signer.

Derives deterministic Ed25519 keys from a seed and the account index and
signs in-process. Suitable for:
- Development against a local devnet
- Tests that need real, verifiable signatures

WARNING: Private keys live in memory. Never use against a real network.
"""

import hashlib
import logging
import uuid
from dataclasses import dataclass
from typing import Iterable

from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey
from cryptography.hazmat.primitives.serialization import Encoding, PublicFormat

from movement_custody.errors import RemoteCallError
from movement_custody.signing.base import (
    CustodySigner,
    DerivationPath,
    SignerType,
    SigningRequest,
    SigningRequestStatus,
    SigningStatus,
)

logger = logging.getLogger(__name__)

SERVICE_NAME = "Simulated custody"
DEFAULT_STATUS_SEQUENCE = (SigningStatus.SUBMITTED, SigningStatus.PENDING, SigningStatus.COMPLETED)


@dataclass
class _PendingRequest:
    request: SigningRequest
    statuses: list[SigningStatus]
    polls: int = 0


class SimulatedSigner(CustodySigner):
    """In-process signer that walks each request through a status sequence.

    Every request reports ``statuses`` one per poll; the last one repeats
    while it is not terminal. A request that ends in COMPLETED carries a real
    signature. Once a terminal status is reported the request is forgotten.
    """

    def __init__(
        self,
        seed: str = "movement-custody-dev",
        statuses: Iterable[SigningStatus] = DEFAULT_STATUS_SEQUENCE,
    ):
        super().__init__(SignerType.SIMULATED)
        self.seed = seed.encode()
        self.statuses = list(statuses)
        if not self.statuses:
            raise ValueError("statuses must not be empty")
        self._requests: dict[str, _PendingRequest] = {}
        self.status_calls = 0
        logger.warning("Using simulated signer - keys are held in memory")

    def _private_key(self, derivation_path: DerivationPath) -> Ed25519PrivateKey:
        material = self.seed + str(derivation_path).encode()
        return Ed25519PrivateKey.from_private_bytes(hashlib.sha256(material).digest())

    async def get_public_key(self, derivation_path: DerivationPath) -> bytes:
        return self._private_key(derivation_path).public_key().public_bytes(
            Encoding.Raw, PublicFormat.Raw
        )

    async def create_raw_sign_request(self, request: SigningRequest) -> str:
        request_id = str(uuid.uuid4())
        self._requests[request_id] = _PendingRequest(request=request, statuses=list(self.statuses))
        logger.info(f"[SIMULATED] Raw sign request {request_id} for {request.derivation_path}")
        return request_id

    async def get_request_status(self, request_id: str) -> SigningRequestStatus:
        self.status_calls += 1
        pending = self._requests.get(request_id)
        if pending is None:
            raise RemoteCallError(SERVICE_NAME, f"Unknown signing request {request_id}", status_code=404)

        status = pending.statuses[min(pending.polls, len(pending.statuses) - 1)]
        pending.polls += 1

        result = SigningRequestStatus(request_id=request_id, status=status, raw_status=status.value)
        if status is SigningStatus.COMPLETED:
            key = self._private_key(pending.request.derivation_path)
            result.signature = key.sign(pending.request.payload)
        if status.is_terminal:
            del self._requests[request_id]
        return result
