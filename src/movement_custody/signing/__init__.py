"""Custody signing backends.

Provides:
- FireblocksSigner: Fireblocks MPC raw signing
- SimulatedSigner: Deterministic in-process keys for development and tests
"""

from movement_custody.signing.base import (
    CustodySigner,
    DerivationPath,
    SignerType,
    SigningRequest,
    SigningRequestStatus,
    SigningStatus,
)
from movement_custody.signing.fireblocks import FireblocksSigner
from movement_custody.signing.simulated import SimulatedSigner

__all__ = [
    "CustodySigner",
    "DerivationPath",
    "FireblocksSigner",
    "SignerType",
    "SigningRequest",
    "SigningRequestStatus",
    "SigningStatus",
    "SimulatedSigner",
]
