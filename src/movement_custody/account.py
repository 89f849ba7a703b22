"""Account client bound to one custody vault account.

The account's public key is fetched from the custody platform once, when the
client is created, and the address is derived from it. Both are immutable for
the lifetime of the client.
"""

import logging
from typing import Optional

from movement_custody.errors import (
    AccountInitializationError,
    AddressNotInitializedError,
    CustodyError,
)
from movement_custody.movement.address import derive_address, is_valid_address
from movement_custody.movement.base import (
    CoinBalance,
    GasOptions,
    LedgerClient,
    MoveBalance,
    TransactionHistoryEntry,
)
from movement_custody.movement.types import ED25519_PUBLIC_KEY_LENGTH
from movement_custody.signing.base import CustodySigner, DerivationPath
from movement_custody.transactions.intent import AssetSpec, TransactionIntent
from movement_custody.transactions.pipeline import TransactionPipeline

logger = logging.getLogger(__name__)


class AccountClient:
    """Account-scoped reads and custody-signed transfers.

    Use ``AccountClient.create`` rather than the constructor; it performs
    the identity lookup and never returns a half-initialized client.
    """

    def __init__(
        self,
        account_id: str,
        derivation_path: DerivationPath,
        address: Optional[str],
        public_key: Optional[bytes],
        ledger: LedgerClient,
        pipeline: TransactionPipeline,
    ):
        self.account_id = account_id
        self.derivation_path = derivation_path
        self._address = address
        self._public_key = public_key
        self.ledger = ledger
        self.pipeline = pipeline
        self._history_cache: Optional[list[TransactionHistoryEntry]] = None

    @classmethod
    async def create(
        cls,
        account_id: str,
        signer: CustodySigner,
        ledger: LedgerClient,
        pipeline: TransactionPipeline,
    ) -> "AccountClient":
        """Look up the account identity and build its client.

        Raises:
            AccountInitializationError: Public key lookup or validation failed
        """
        try:
            derivation_path = DerivationPath.for_account(account_id)
            public_key = await signer.get_public_key(derivation_path)
            if len(public_key) != ED25519_PUBLIC_KEY_LENGTH:
                raise ValueError(f"Public key must be {ED25519_PUBLIC_KEY_LENGTH} bytes, got {len(public_key)}")
            address = derive_address(public_key)
            if not is_valid_address(address):
                raise ValueError(f"Derived address {address} is not valid")
        except (CustodyError, ValueError) as e:
            logger.error(f"Failed to initialize account {account_id}: {e}")
            raise AccountInitializationError(account_id, str(e)) from e

        logger.info(f"Initialized account {account_id} with address {address}")
        return cls(
            account_id=account_id,
            derivation_path=derivation_path,
            address=address,
            public_key=public_key,
            ledger=ledger,
            pipeline=pipeline,
        )

    def _require_identity(self) -> tuple[str, bytes]:
        if not self._address or not self._public_key:
            raise AddressNotInitializedError(f"Address is not initialized for account {self.account_id}")
        return self._address, self._public_key

    # ======================
    # Identity
    # ======================

    def get_address(self) -> str:
        address, _ = self._require_identity()
        return address

    def get_public_key(self) -> str:
        """Public key as ``0x`` prefixed hex."""
        _, public_key = self._require_identity()
        return "0x" + public_key.hex()

    # ======================
    # Reads
    # ======================

    async def get_balance(self) -> MoveBalance:
        address, _ = self._require_identity()
        try:
            return await self.ledger.get_move_balance(address)
        except CustodyError as e:
            raise e.with_context("Failed to get balance")

    async def get_balances(self) -> list[CoinBalance]:
        address, _ = self._require_identity()
        try:
            return await self.ledger.get_balances(address)
        except CustodyError as e:
            raise e.with_context("Failed to get balances")

    async def get_coins_data(self) -> list[dict]:
        address, _ = self._require_identity()
        try:
            return await self.ledger.get_account_coins_data(address)
        except CustodyError as e:
            raise e.with_context("Failed to get coins data")

    async def get_transaction_history(
        self,
        limit: int = 10,
        offset: int = 0,
        use_cache: bool = False,
    ) -> list[TransactionHistoryEntry]:
        """Recent transactions of the account.

        With ``use_cache`` the last successful result is returned without a
        remote call, or an empty list if nothing was fetched yet.
        """
        address, _ = self._require_identity()
        if use_cache:
            return list(self._history_cache or [])

        try:
            history = await self.ledger.get_transaction_history(address, limit=limit, offset=offset)
        except CustodyError as e:
            raise e.with_context("Failed to get transaction history")

        self._history_cache = history
        return history

    # ======================
    # Transfers
    # ======================

    async def create_transfer(
        self,
        recipient: str,
        amount: int,
        gas_options: Optional[GasOptions] = None,
    ) -> dict:
        """Transfer native MOVE and wait for the transaction to commit."""
        intent = TransactionIntent(
            sender=self.get_address(),
            recipient=recipient,
            amount=amount,
            gas_options=gas_options,
        )
        return await self._execute(intent, "Failed to create transfer")

    async def create_token_transfer(
        self,
        recipient: str,
        amount: int,
        asset_type: str,
        gas_options: Optional[GasOptions] = None,
    ) -> dict:
        """Transfer a fungible asset identified by its metadata address."""
        intent = TransactionIntent(
            sender=self.get_address(),
            recipient=recipient,
            amount=amount,
            asset=AssetSpec(type=asset_type),
            gas_options=gas_options,
        )
        return await self._execute(intent, "Failed to create token transfer")

    async def _execute(self, intent: TransactionIntent, context: str) -> dict:
        _, public_key = self._require_identity()
        logger.info(
            f"Account {self.account_id}: sending {intent.amount} to {intent.recipient}"
            + (f" (asset {intent.asset.type})" if intent.asset else "")
        )
        try:
            result = await self.pipeline.execute(intent, self.derivation_path, public_key)
        except CustodyError as e:
            logger.error(f"Account {self.account_id}: {context}: {e}")
            raise e.with_context(context)

        logger.info(f"Account {self.account_id}: transaction {result.get('hash')} committed")
        return result

    def __repr__(self) -> str:
        return f"AccountClient(account_id={self.account_id!r}, address={self._address!r})"
