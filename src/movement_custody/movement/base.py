"""Ledger client interface.

Transaction flow on the ledger side:
1. Build an unsigned transaction from an entry-function call
2. Derive the signing message (domain prefix + BCS bytes)
3. Submit the transaction together with the sender authenticator
4. Wait for the transaction to be committed
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Optional

from movement_custody.movement.types import (
    Ed25519Authenticator,
    RawTransaction,
    signing_message,
)


@dataclass(frozen=True)
class EntryFunctionCall:
    """Structured entry-function payload before BCS encoding.

    Attributes:
        function: Fully qualified function id (``0x1::module::function``)
        type_arguments: Move type strings
        argument_types: Move type of each argument, used for encoding
        arguments: Argument values (addresses as hex strings, integers as int)
    """
    function: str
    type_arguments: tuple[str, ...] = ()
    argument_types: tuple[str, ...] = ()
    arguments: tuple[Any, ...] = ()


@dataclass
class GasOptions:
    """Optional overrides applied while building a transaction."""
    max_gas_amount: Optional[int] = None
    gas_unit_price: Optional[int] = None
    expire_timestamp: Optional[int] = None  # absolute, seconds since epoch
    sequence_number: Optional[int] = None

    def is_empty(self) -> bool:
        return all(
            value is None
            for value in (
                self.max_gas_amount,
                self.gas_unit_price,
                self.expire_timestamp,
                self.sequence_number,
            )
        )


@dataclass
class CoinBalance:
    """Balance of one fungible asset held by an account."""
    amount_in_octas: int
    decimals: int
    amount: float
    is_frozen: bool
    asset_type: str
    name: str
    symbol: str = ""


@dataclass
class MoveBalance:
    """Native MOVE holdings of an account."""
    move_coins: list[CoinBalance] = field(default_factory=list)
    total_in_octas: int = 0
    total: float = 0.0


@dataclass
class TransactionHistoryEntry:
    """One transaction of an account's history.

    ``details`` is None and ``error`` is set when fetching that version failed.
    """
    transaction_version: int
    details: Optional[dict] = None
    error: Optional[str] = None


class LedgerClient(ABC):
    """Abstract base class for Move ledger clients."""

    @abstractmethod
    async def build_transaction(
        self,
        sender: str,
        call: EntryFunctionCall,
        options: Optional[GasOptions] = None,
    ) -> RawTransaction:
        """Build an unsigned transaction.

        Args:
            sender: Sender account address
            call: Entry-function payload
            options: Gas/expiry/sequence overrides; None uses ledger defaults

        Returns:
            RawTransaction ready for signing
        """
        pass

    def signing_message(self, raw_transaction: RawTransaction) -> bytes:
        """Bytes the sender has to sign. Pure and deterministic."""
        return signing_message(raw_transaction)

    @abstractmethod
    async def submit_transaction(
        self,
        raw_transaction: RawTransaction,
        authenticator: Ed25519Authenticator,
    ) -> dict:
        """Submit a signed transaction.

        Returns:
            Pending transaction response; always carries ``hash``
        """
        pass

    @abstractmethod
    async def wait_for_transaction(self, transaction_hash: str) -> dict:
        """Block until the transaction is committed and return it verbatim."""
        pass

    @abstractmethod
    async def get_account_coins_data(self, address: str) -> list[dict]:
        """Raw fungible asset balances of an account."""
        pass

    @abstractmethod
    async def get_balances(self, address: str) -> list[CoinBalance]:
        """All balances of an account, normalised."""
        pass

    @abstractmethod
    async def get_move_balance(self, address: str) -> MoveBalance:
        """Native MOVE balance of an account."""
        pass

    @abstractmethod
    async def get_transaction_history(
        self, address: str, limit: int = 50, offset: int = 0
    ) -> list[TransactionHistoryEntry]:
        """Most recent transactions of an account, newest first."""
        pass

    async def close(self) -> None:
        """Release any network resources held by the client."""
        return None
