"""Pytest configuration and fixtures."""

import os
from typing import Optional

import pytest
import pytest_asyncio

# Keep test runs independent of any local .env / environment
os.environ["SIGNER_BACKEND"] = "simulated"
os.environ["DEBUG"] = "true"

from movement_custody.account import AccountClient
from movement_custody.movement.base import (
    CoinBalance,
    EntryFunctionCall,
    GasOptions,
    LedgerClient,
    MoveBalance,
    TransactionHistoryEntry,
)
from movement_custody.movement.client import encode_entry_function
from movement_custody.movement.types import AccountAddress, Ed25519Authenticator, RawTransaction
from movement_custody.signing.simulated import SimulatedSigner
from movement_custody.transactions.pipeline import PipelineConfig, TransactionPipeline

CHAIN_ID = 126
RECIPIENT = "0x" + "b" * 64
ASSET_TYPE = "0x" + "a" * 64


class FakeLedger(LedgerClient):
    """In-memory ledger that records every call made to it."""

    def __init__(self):
        self.build_calls: list[tuple[str, EntryFunctionCall, Optional[GasOptions]]] = []
        self.submitted: list[tuple[RawTransaction, Ed25519Authenticator]] = []
        self.waited: list[str] = []
        self.history_calls = 0
        self.history: list[TransactionHistoryEntry] = [
            TransactionHistoryEntry(transaction_version=42, details={"version": "42", "success": True}),
        ]
        self.balances = [
            CoinBalance(
                amount_in_octas=150_000_000,
                decimals=8,
                amount=1.5,
                is_frozen=False,
                asset_type="0x1::aptos_coin::AptosCoin",
                name="Move Coin",
                symbol="MOVE",
            ),
        ]
        self.read_error: Optional[Exception] = None

    async def build_transaction(self, sender, call, options=None):
        self.build_calls.append((sender, call, options))
        options = options or GasOptions()
        return RawTransaction(
            sender=AccountAddress.from_str(sender),
            sequence_number=options.sequence_number if options.sequence_number is not None else 7,
            payload=encode_entry_function(call),
            max_gas_amount=options.max_gas_amount or 200_000,
            gas_unit_price=options.gas_unit_price or 100,
            expiration_timestamp_secs=options.expire_timestamp or 1_900_000_000,
            chain_id=CHAIN_ID,
        )

    async def submit_transaction(self, raw_transaction, authenticator):
        self.submitted.append((raw_transaction, authenticator))
        return {"hash": f"0x{len(self.submitted):064x}", "type": "pending_transaction"}

    async def wait_for_transaction(self, transaction_hash):
        self.waited.append(transaction_hash)
        return {"hash": transaction_hash, "type": "user_transaction", "success": True, "vm_status": "Executed successfully"}

    async def get_account_coins_data(self, address):
        if self.read_error:
            raise self.read_error
        return [{"amount": 150_000_000, "asset_type": "0x1::aptos_coin::AptosCoin"}]

    async def get_balances(self, address):
        if self.read_error:
            raise self.read_error
        return list(self.balances)

    async def get_move_balance(self, address):
        if self.read_error:
            raise self.read_error
        return MoveBalance(move_coins=list(self.balances), total_in_octas=150_000_000, total=1.5)

    async def get_transaction_history(self, address, limit=50, offset=0):
        self.history_calls += 1
        if self.read_error:
            raise self.read_error
        return list(self.history)


@pytest.fixture
def ledger() -> FakeLedger:
    return FakeLedger()


@pytest.fixture
def signer() -> SimulatedSigner:
    return SimulatedSigner(seed="test-seed")


@pytest.fixture
def pipeline_config() -> PipelineConfig:
    return PipelineConfig(poll_interval_s=0, signing_timeout_s=5.0)


@pytest.fixture
def pipeline(signer, ledger, pipeline_config) -> TransactionPipeline:
    return TransactionPipeline(signer, ledger, pipeline_config)


@pytest_asyncio.fixture
async def account(signer, ledger, pipeline) -> AccountClient:
    return await AccountClient.create("3", signer, ledger, pipeline)
