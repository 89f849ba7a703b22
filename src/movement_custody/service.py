"""Custody service facade.

Dispatches account actions to pooled account clients. This is the layer an
HTTP API sits on; routing and request validation live outside this package.
"""

import logging
from enum import Enum
from typing import Any, Optional

from movement_custody.account import AccountClient
from movement_custody.config import Settings, configure_logging, get_settings
from movement_custody.movement.base import GasOptions, LedgerClient
from movement_custody.movement.client import MovementClient
from movement_custody.pool.manager import ClientPool
from movement_custody.pool.types import PoolMetrics
from movement_custody.signing.base import CustodySigner
from movement_custody.signing.factory import get_signer
from movement_custody.transactions.pipeline import TransactionPipeline

logger = logging.getLogger(__name__)


class ActionType(str, Enum):
    """Account actions accepted by ``CustodyService.execute``."""
    CREATE_MOVE_TRANSACTION = "create_move_transaction"
    CREATE_TOKEN_TRANSACTION = "create_token_transaction"
    GET_BALANCE = "get_balance"
    GET_BALANCES = "get_balances"
    GET_TRANSACTIONS_HISTORY = "get_transactions_history"
    GET_ACCOUNT_COINS_DATA = "get_account_coins_data"
    GET_ACCOUNT_ADDRESS = "get_account_address"
    GET_ACCOUNT_PUBLIC_KEY = "get_account_public_key"


def _gas_options(params: dict) -> GasOptions:
    return GasOptions(
        max_gas_amount=params.get("max_gas_amount"),
        gas_unit_price=params.get("gas_unit_price"),
        expire_timestamp=params.get("expire_timestamp"),
        sequence_number=params.get("account_sequence_number"),
    )


class CustodyService:
    """Runs account actions on pooled clients."""

    def __init__(
        self,
        pool: ClientPool,
        signer: Optional[CustodySigner] = None,
        ledger: Optional[LedgerClient] = None,
    ):
        self.pool = pool
        self.signer = signer
        self.ledger = ledger

    async def execute(self, account_id: str, action: ActionType, params: Optional[dict] = None) -> Any:
        """Run ``action`` for a vault account.

        The client is always released back to the pool, also on failure.

        Raises:
            ValueError: Unknown action
        """
        try:
            action = ActionType(action)
        except ValueError:
            raise ValueError(f"Unknown action type: {action}") from None
        params = params or {}

        async with self.pool.lease(account_id) as client:
            try:
                return await self._dispatch(client, action, params)
            except Exception as e:
                logger.error(f"Error executing {action.value} for account {account_id}: {e}")
                raise

    async def _dispatch(self, client: AccountClient, action: ActionType, params: dict) -> Any:
        if action == ActionType.CREATE_MOVE_TRANSACTION:
            return await client.create_transfer(
                params["recipient_address"],
                int(params["amount"]),
                gas_options=_gas_options(params),
            )
        if action == ActionType.CREATE_TOKEN_TRANSACTION:
            return await client.create_token_transfer(
                params["recipient_address"],
                int(params["amount"]),
                params["token_type"],
                gas_options=_gas_options(params),
            )
        if action == ActionType.GET_BALANCE:
            return await client.get_balance()
        if action == ActionType.GET_BALANCES:
            return await client.get_balances()
        if action == ActionType.GET_TRANSACTIONS_HISTORY:
            return await client.get_transaction_history(
                limit=params.get("limit", 10),
                offset=params.get("offset", 0),
                use_cache=params.get("use_cache", False),
            )
        if action == ActionType.GET_ACCOUNT_COINS_DATA:
            return await client.get_coins_data()
        if action == ActionType.GET_ACCOUNT_ADDRESS:
            return client.get_address()
        if action == ActionType.GET_ACCOUNT_PUBLIC_KEY:
            return client.get_public_key()
        raise ValueError(f"Unknown action type: {action}")

    def pool_metrics(self) -> PoolMetrics:
        return self.pool.metrics()

    async def shutdown(self) -> None:
        """Shut down the pool, then close the shared signer and ledger clients."""
        await self.pool.shutdown()
        if self.signer is not None:
            await self.signer.close()
        if self.ledger is not None:
            await self.ledger.close()


def create_service(settings: Optional[Settings] = None) -> CustodyService:
    """Wire signer, ledger client, pipeline and pool from settings.

    This is the only place that resolves settings from the environment.
    The returned service's pool sweep is not started; call
    ``service.pool.start()`` from inside the running event loop.
    """
    settings = settings or get_settings()
    configure_logging(settings.debug)

    signer = get_signer(settings)
    ledger = MovementClient(
        settings.movement_fullnode_url,
        settings.movement_indexer_url,
        commit_timeout_s=settings.commit_timeout_s,
        default_max_gas_amount=settings.default_max_gas_amount,
        default_expiration_s=settings.default_expiration_s,
    )
    pipeline = TransactionPipeline(signer, ledger, settings.pipeline_config())

    async def build_client(account_id: str) -> AccountClient:
        return await AccountClient.create(account_id, signer, ledger, pipeline)

    pool = ClientPool(build_client, settings.pool_config())
    logger.info(f"Custody service ready: {settings.get_safe_dict()}")
    return CustodyService(pool, signer=signer, ledger=ledger)
