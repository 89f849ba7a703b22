"""Base interfaces for custody signing.

Signing flow:
1. Caller derives the exact bytes to sign (the signing payload)
2. Payload is submitted to the custody platform with a derivation path
3. Custody platform runs its approval / MPC ceremony asynchronously
4. Caller polls the request until it reaches a terminal status
5. A completed request carries the signature (never key material)
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Optional

logger = logging.getLogger(__name__)

# BIP44 purpose and the Movement/Aptos coin type
DERIVATION_PURPOSE = 44
MOVEMENT_COIN_TYPE = 637


class SignerType(str, Enum):
    """Type of signing backend."""
    FIREBLOCKS = "fireblocks"   # Fireblocks MPC raw signing
    SIMULATED = "simulated"     # Deterministic in-process keys (development only)


class SigningStatus(str, Enum):
    """Lifecycle of a raw-sign request on the custody platform."""
    SUBMITTED = "SUBMITTED"
    PENDING = "PENDING"
    BLOCKED = "BLOCKED"
    CANCELLED = "CANCELLED"
    FAILED = "FAILED"
    REJECTED = "REJECTED"
    COMPLETED = "COMPLETED"

    @property
    def is_failure(self) -> bool:
        return self in _FAILURE_STATUSES

    @property
    def is_terminal(self) -> bool:
        return self is SigningStatus.COMPLETED or self.is_failure


_FAILURE_STATUSES = frozenset({
    SigningStatus.BLOCKED,
    SigningStatus.CANCELLED,
    SigningStatus.FAILED,
    SigningStatus.REJECTED,
})


@dataclass(frozen=True)
class DerivationPath:
    """Hierarchical key path ``[44, 637, account, 0, 0]``.

    Only the account component varies; it is the custody vault account id.
    """
    account_index: int
    purpose: int = DERIVATION_PURPOSE
    coin_type: int = MOVEMENT_COIN_TYPE
    change: int = 0
    address_index: int = 0

    @classmethod
    def for_account(cls, account_id: str) -> "DerivationPath":
        """Build the path for a custody account id.

        Raises:
            ValueError: If the id is not a non-negative integer
        """
        text = str(account_id).strip()
        if not (text.isascii() and text.isdigit()):
            raise ValueError(f"Account id must be a non-negative integer, got {account_id!r}")
        return cls(account_index=int(text))

    def as_list(self) -> list[int]:
        return [self.purpose, self.coin_type, self.account_index, self.change, self.address_index]

    def __str__(self) -> str:
        return "[" + ", ".join(str(part) for part in self.as_list()) + "]"


def canonical_account_id(account_id: str) -> str:
    """Normalise an account id so that "03" and "3" name the same vault account.

    Raises:
        ValueError: If the id is not a non-negative integer
    """
    return str(DerivationPath.for_account(account_id).account_index)


@dataclass
class SigningRequest:
    """Request to raw-sign a payload.

    Attributes:
        payload: Exact bytes to be signed
        derivation_path: Key slot to sign with
        note: Optional human readable note shown in the custody console
    """
    payload: bytes
    derivation_path: DerivationPath
    note: Optional[str] = None

    @property
    def payload_hex(self) -> str:
        return self.payload.hex()


@dataclass
class SigningRequestStatus:
    """Current state of a raw-sign request.

    Attributes:
        request_id: Custody platform request id
        status: Normalised signing status
        signature: Raw signature bytes, set once the request completed
        raw_status: Status string exactly as reported by the platform
    """
    request_id: str
    status: SigningStatus
    signature: Optional[bytes] = None
    raw_status: Optional[str] = None


class CustodySigner(ABC):
    """Abstract base class for custody signing backends.

    Implementations never expose private keys. They return public keys
    and signatures only.
    """

    def __init__(self, signer_type: SignerType):
        self.signer_type = signer_type

    @abstractmethod
    async def get_public_key(self, derivation_path: DerivationPath) -> bytes:
        """Get the 32-byte Ed25519 public key for a key slot.

        Args:
            derivation_path: Key slot to look up

        Returns:
            Raw public key bytes
        """
        pass

    @abstractmethod
    async def create_raw_sign_request(self, request: SigningRequest) -> str:
        """Submit a raw-sign request.

        Args:
            request: Payload and key slot to sign with

        Returns:
            Request id to poll with ``get_request_status``
        """
        pass

    @abstractmethod
    async def get_request_status(self, request_id: str) -> SigningRequestStatus:
        """Fetch the current status of a raw-sign request."""
        pass

    async def health_check(self) -> bool:
        """Check if the signing backend is available."""
        return True

    async def close(self) -> None:
        """Release any network resources held by the backend."""
        return None

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(type={self.signer_type.value})"
