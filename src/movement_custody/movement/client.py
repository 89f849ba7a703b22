"""Movement ledger client.

Talks to a Movement (Aptos-compatible) fullnode REST API for building,
submitting and confirming transactions, and to the GraphQL indexer for
balances and account history.

Reference:
- https://fullnode.mainnet.aptoslabs.com/v1/spec#/
- https://docs.movementnetwork.xyz/
"""

import asyncio
import logging
import time
from typing import Any, Callable, Optional

import httpx

from movement_custody.errors import CommitError, RemoteCallError, SubmissionError
from movement_custody.movement.base import (
    CoinBalance,
    EntryFunctionCall,
    GasOptions,
    LedgerClient,
    MoveBalance,
    TransactionHistoryEntry,
)
from movement_custody.movement.bcs import Serializer, encode
from movement_custody.movement.types import (
    AccountAddress,
    Ed25519Authenticator,
    EntryFunction,
    RawTransaction,
    SignedTransaction,
    TypeTag,
)

logger = logging.getLogger(__name__)

FULLNODE_SERVICE = "Movement fullnode"
INDEXER_SERVICE = "Movement indexer"
SIGNED_TRANSACTION_CONTENT_TYPE = "application/x.aptos.signed_transaction+bcs"

NATIVE_COIN_SYMBOL = "MOVE"
DEFAULT_HISTORY_LIMIT = 50
DEFAULT_HISTORY_OFFSET = 0

ACCOUNT_COINS_QUERY = """
query GetAccountCoinsData($address: String) {
  current_fungible_asset_balances(where: {owner_address: {_eq: $address}}) {
    amount
    asset_type
    is_frozen
    is_primary
    last_transaction_timestamp
    last_transaction_version
    owner_address
    storage_id
    token_standard
    metadata {
      name
      symbol
      decimals
      asset_type
      creator_address
      icon_uri
      project_uri
      token_standard
    }
  }
}
"""

ACCOUNT_TRANSACTIONS_QUERY = """
query GetAccountTransactionsData($address: String, $limit: Int, $offset: Int) {
  account_transactions(
    where: {account_address: {_eq: $address}}
    order_by: {transaction_version: desc}
    limit: $limit
    offset: $offset
  ) {
    transaction_version
  }
}
"""


def _encode_value(serializer: Serializer, tag: TypeTag, value: Any) -> None:
    """BCS encode ``value`` as Move type ``tag``."""
    if tag.kind == "address" or (
        tag.kind == "struct" and tag.struct.module == "object" and tag.struct.name == "Object"
    ):
        AccountAddress.from_str(str(value)).serialize(serializer)
    elif tag.kind == "bool":
        if not isinstance(value, bool):
            raise TypeError(f"bool argument expected, got {value!r}")
        serializer.bool(value)
    elif tag.kind in ("u8", "u16", "u32", "u64", "u128"):
        getattr(serializer, tag.kind)(int(value))
    elif tag.kind == "vector":
        if tag.inner.kind == "u8" and isinstance(value, (bytes, bytearray)):
            serializer.bytes(bytes(value))
        else:
            serializer.sequence(value, lambda s, item: _encode_value(s, tag.inner, item))
    elif tag.kind == "struct" and tag.struct.module == "string" and tag.struct.name == "String":
        serializer.str(str(value))
    else:
        raise ValueError(f"Unsupported argument type: {tag}")


def encode_argument(move_type: str, value: Any) -> bytes:
    """BCS encode one entry-function argument by its Move type."""
    tag = TypeTag.parse(move_type)
    return encode(value, lambda serializer, item: _encode_value(serializer, tag, item))


def encode_entry_function(call: EntryFunctionCall) -> EntryFunction:
    """Turn a structured call into a BCS-ready entry function."""
    if len(call.argument_types) != len(call.arguments):
        raise ValueError(
            f"{call.function}: {len(call.arguments)} arguments but "
            f"{len(call.argument_types)} argument types"
        )
    return EntryFunction.natural(
        call.function,
        [TypeTag.parse(type_arg) for type_arg in call.type_arguments],
        [encode_argument(move_type, value) for move_type, value in zip(call.argument_types, call.arguments)],
    )


def _to_coin_balance(coin: dict) -> CoinBalance:
    try:
        metadata = coin.get("metadata") or {}
        amount_in_octas = int(coin.get("amount") or 0)
        decimals = int(metadata.get("decimals") or 0)
    except (AttributeError, TypeError, ValueError) as e:
        raise RemoteCallError(INDEXER_SERVICE, f"Malformed balance row: {coin!r}") from e
    return CoinBalance(
        amount_in_octas=amount_in_octas,
        decimals=decimals,
        amount=amount_in_octas / 10**decimals,
        is_frozen=bool(coin.get("is_frozen")),
        asset_type=coin.get("asset_type") or "",
        name=metadata.get("name") or "",
        symbol=metadata.get("symbol") or "",
    )


class MovementClient(LedgerClient):
    """Ledger client for the Movement network."""

    def __init__(
        self,
        fullnode_url: str,
        indexer_url: str,
        *,
        commit_timeout_s: float = 20.0,
        commit_poll_interval_s: float = 1.0,
        default_max_gas_amount: int = 200_000,
        default_expiration_s: int = 20,
        timeout: float = 30.0,
        http_client: Optional[httpx.AsyncClient] = None,
        clock: Callable[[], float] = time.time,
    ):
        """Initialize the client.

        Args:
            fullnode_url: Fullnode REST base URL, including ``/v1``
            indexer_url: GraphQL indexer endpoint
            commit_timeout_s: How long ``wait_for_transaction`` waits
            commit_poll_interval_s: Delay between commit checks
            default_max_gas_amount: Max gas when the caller sets none
            default_expiration_s: Expiry offset when the caller sets none
            timeout: Per-request HTTP timeout
            http_client: Optional preconfigured client (used by tests)
            clock: Wall clock used for default expiry timestamps
        """
        self.fullnode_url = fullnode_url.rstrip("/")
        self.indexer_url = indexer_url
        self.commit_timeout_s = commit_timeout_s
        self.commit_poll_interval_s = commit_poll_interval_s
        self.default_max_gas_amount = default_max_gas_amount
        self.default_expiration_s = default_expiration_s
        self._clock = clock
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(timeout=timeout)
        self._chain_id: Optional[int] = None

    # ======================
    # HTTP helpers
    # ======================

    async def _send(self, service: str, method: str, url: str, **kwargs) -> httpx.Response:
        try:
            return await self._client.request(method, url, **kwargs)
        except httpx.HTTPError as e:
            raise RemoteCallError(service, f"{method} {url}: {e}") from e

    @staticmethod
    def _json(service: str, response: httpx.Response) -> Any:
        if response.status_code >= 400:
            raise RemoteCallError(
                service,
                f"{response.request.method} {response.request.url} returned "
                f"{response.status_code}: {response.text[:300]}",
                status_code=response.status_code,
            )
        try:
            return response.json()
        except ValueError as e:
            raise RemoteCallError(service, f"{response.request.url}: invalid JSON response") from e

    async def _get_fullnode(self, path: str) -> Any:
        response = await self._send(FULLNODE_SERVICE, "GET", f"{self.fullnode_url}{path}")
        return self._json(FULLNODE_SERVICE, response)

    async def _query_indexer(self, query: str, variables: dict) -> dict:
        response = await self._send(
            INDEXER_SERVICE,
            "POST",
            self.indexer_url,
            json={"query": query, "variables": variables},
        )
        data = self._json(INDEXER_SERVICE, response)
        if not isinstance(data, dict):
            raise RemoteCallError(INDEXER_SERVICE, "unexpected GraphQL response")
        if data.get("errors"):
            raise RemoteCallError(INDEXER_SERVICE, f"GraphQL error: {data['errors']}")
        result = data.get("data") or {}
        if not isinstance(result, dict):
            raise RemoteCallError(INDEXER_SERVICE, "unexpected GraphQL data")
        return result

    # ======================
    # Chain state
    # ======================

    async def get_chain_id(self) -> int:
        """Chain id of the connected network (cached after first lookup)."""
        if self._chain_id is None:
            info = await self._get_fullnode("")
            try:
                self._chain_id = int(info["chain_id"])
            except (KeyError, TypeError, ValueError) as e:
                raise RemoteCallError(FULLNODE_SERVICE, "ledger info has no chain_id") from e
        return self._chain_id

    async def get_sequence_number(self, address: str) -> int:
        account = await self._get_fullnode(f"/accounts/{address}")
        try:
            return int(account["sequence_number"])
        except (KeyError, TypeError, ValueError) as e:
            raise RemoteCallError(FULLNODE_SERVICE, f"account {address} has no sequence_number") from e

    async def estimate_gas_price(self) -> int:
        estimate = await self._get_fullnode("/estimate_gas_price")
        try:
            return int(estimate["gas_estimate"])
        except (KeyError, TypeError, ValueError) as e:
            raise RemoteCallError(FULLNODE_SERVICE, "gas estimate missing") from e

    # ======================
    # Transactions
    # ======================

    async def build_transaction(
        self,
        sender: str,
        call: EntryFunctionCall,
        options: Optional[GasOptions] = None,
    ) -> RawTransaction:
        sender_address = AccountAddress.from_str(sender)
        payload = encode_entry_function(call)
        options = options or GasOptions()

        chain_id = await self.get_chain_id()
        sequence_number = options.sequence_number
        if sequence_number is None:
            sequence_number = await self.get_sequence_number(str(sender_address))
        gas_unit_price = options.gas_unit_price
        if gas_unit_price is None:
            gas_unit_price = await self.estimate_gas_price()
        max_gas_amount = options.max_gas_amount
        if max_gas_amount is None:
            max_gas_amount = self.default_max_gas_amount
        expiration = options.expire_timestamp
        if expiration is None:
            expiration = int(self._clock()) + self.default_expiration_s

        return RawTransaction(
            sender=sender_address,
            sequence_number=int(sequence_number),
            payload=payload,
            max_gas_amount=int(max_gas_amount),
            gas_unit_price=int(gas_unit_price),
            expiration_timestamp_secs=int(expiration),
            chain_id=chain_id,
        )

    async def submit_transaction(
        self,
        raw_transaction: RawTransaction,
        authenticator: Ed25519Authenticator,
    ) -> dict:
        signed = SignedTransaction(raw_transaction, authenticator)
        response = await self._send(
            FULLNODE_SERVICE,
            "POST",
            f"{self.fullnode_url}/transactions",
            content=signed.to_bytes(),
            headers={"Content-Type": SIGNED_TRANSACTION_CONTENT_TYPE},
        )
        if response.status_code >= 400:
            try:
                detail = str(response.json().get("message") or response.text)
            except (AttributeError, ValueError):
                detail = response.text
            raise SubmissionError(
                f"Ledger rejected transaction ({response.status_code}): {detail[:300]}"
            )

        pending = self._json(FULLNODE_SERVICE, response)
        if not isinstance(pending, dict) or not pending.get("hash"):
            raise RemoteCallError(FULLNODE_SERVICE, "submission response has no hash")
        logger.info(f"Submitted transaction {pending['hash']} from {raw_transaction.sender}")
        return pending

    async def wait_for_transaction(self, transaction_hash: str) -> dict:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.commit_timeout_s

        while True:
            response = await self._send(
                FULLNODE_SERVICE, "GET", f"{self.fullnode_url}/transactions/by_hash/{transaction_hash}"
            )
            # 404 until the node has seen the transaction
            if response.status_code != 404:
                transaction = self._json(FULLNODE_SERVICE, response)
                if not isinstance(transaction, dict):
                    raise RemoteCallError(FULLNODE_SERVICE, f"unexpected response for {transaction_hash}")
                if transaction.get("type") != "pending_transaction":
                    logger.info(
                        f"Transaction {transaction_hash} committed "
                        f"(success={transaction.get('success')}, vm_status={transaction.get('vm_status')})"
                    )
                    return transaction

            if loop.time() >= deadline:
                raise CommitError(
                    f"Transaction {transaction_hash} not committed within {self.commit_timeout_s}s"
                )
            await asyncio.sleep(self.commit_poll_interval_s)

    # ======================
    # Account queries
    # ======================

    async def get_account_coins_data(self, address: str) -> list[dict]:
        data = await self._query_indexer(ACCOUNT_COINS_QUERY, {"address": address})
        coins = data.get("current_fungible_asset_balances") or []
        if not isinstance(coins, list):
            raise RemoteCallError(INDEXER_SERVICE, "current_fungible_asset_balances is not a list")
        return coins

    async def get_balances(self, address: str) -> list[CoinBalance]:
        return [_to_coin_balance(coin) for coin in await self.get_account_coins_data(address)]

    async def get_move_balance(self, address: str) -> MoveBalance:
        move_coins = [
            coin for coin in await self.get_balances(address) if coin.symbol == NATIVE_COIN_SYMBOL
        ]
        return MoveBalance(
            move_coins=move_coins,
            total_in_octas=sum(coin.amount_in_octas for coin in move_coins),
            total=sum(coin.amount for coin in move_coins),
        )

    async def get_transaction_history(
        self,
        address: str,
        limit: int = DEFAULT_HISTORY_LIMIT,
        offset: int = DEFAULT_HISTORY_OFFSET,
    ) -> list[TransactionHistoryEntry]:
        data = await self._query_indexer(
            ACCOUNT_TRANSACTIONS_QUERY,
            {"address": address, "limit": limit or DEFAULT_HISTORY_LIMIT, "offset": offset or DEFAULT_HISTORY_OFFSET},
        )
        rows = data.get("account_transactions")
        if not isinstance(rows, list):
            raise RemoteCallError(INDEXER_SERVICE, "No account_transactions found in response")

        history = []
        for row in rows:
            try:
                version = int(row["transaction_version"])
            except (KeyError, TypeError, ValueError) as e:
                raise RemoteCallError(INDEXER_SERVICE, f"Malformed account transaction row: {row!r}") from e
            try:
                details = await self._get_fullnode(f"/transactions/by_version/{version}")
                history.append(TransactionHistoryEntry(transaction_version=version, details=details))
            except RemoteCallError as e:
                logger.error(f"Error fetching transaction version {version}: {e}")
                history.append(TransactionHistoryEntry(transaction_version=version, error=str(e)))
        return history

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()
