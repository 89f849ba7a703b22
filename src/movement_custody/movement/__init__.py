"""Movement ledger: transaction types, BCS encoding and the REST client."""

from movement_custody.movement.address import derive_address, is_valid_address
from movement_custody.movement.base import (
    CoinBalance,
    EntryFunctionCall,
    GasOptions,
    LedgerClient,
    MoveBalance,
    TransactionHistoryEntry,
)
from movement_custody.movement.client import MovementClient
from movement_custody.movement.types import (
    AccountAddress,
    Ed25519Authenticator,
    RawTransaction,
    signing_message,
)

__all__ = [
    "AccountAddress",
    "CoinBalance",
    "Ed25519Authenticator",
    "EntryFunctionCall",
    "GasOptions",
    "LedgerClient",
    "MoveBalance",
    "MovementClient",
    "RawTransaction",
    "TransactionHistoryEntry",
    "derive_address",
    "is_valid_address",
    "signing_message",
]
