"""Fireblocks raw-signing backend.

Ed25519 keys live in Fireblocks MPC vaults; this backend only ever sees
public keys and finished signatures.

Every API call is authenticated with:
- X-API-Key header: the API user key
- Authorization: Bearer JWT signed (RS256) with the API user's secret key.
  The JWT binds the request URI and a SHA-256 hash of the exact body.

Reference:
- https://developers.fireblocks.com/reference/signing-a-request-jwt-structure
- https://developers.fireblocks.com/docs/raw-signing
"""

import hashlib
import json
import logging
import time
import uuid
from typing import Any, Optional
from urllib.parse import urlencode

import httpx
import jwt

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

SERVICE_NAME = "Fireblocks"
EDDSA_ALGORITHM = "MPC_EDDSA_ED25519"
JWT_TTL_SECONDS = 55

# Fireblocks transaction states that map 1:1 onto our statuses.
# Everything else (QUEUED, PENDING_SIGNATURE, PENDING_AUTHORIZATION,
# BROADCASTING, CONFIRMING, CANCELLING, ...) is still in flight.
_STATUS_MAP = {
    "SUBMITTED": SigningStatus.SUBMITTED,
    "COMPLETED": SigningStatus.COMPLETED,
    "BLOCKED": SigningStatus.BLOCKED,
    "CANCELLED": SigningStatus.CANCELLED,
    "FAILED": SigningStatus.FAILED,
    "REJECTED": SigningStatus.REJECTED,
}


def map_fireblocks_status(raw_status: Optional[str]) -> SigningStatus:
    """Normalise a Fireblocks transaction state."""
    if not raw_status:
        return SigningStatus.PENDING
    return _STATUS_MAP.get(raw_status.upper(), SigningStatus.PENDING)


def _decode_hex(value: Any, what: str) -> bytes:
    if not isinstance(value, str):
        raise RemoteCallError(SERVICE_NAME, f"{what} is not a hex string: {value!r}")
    try:
        return bytes.fromhex(value.removeprefix("0x"))
    except ValueError as e:
        raise RemoteCallError(SERVICE_NAME, f"{what} is not hex: {value}") from e


class FireblocksSigner(CustodySigner):
    """Raw-signing backend backed by the Fireblocks REST API."""

    def __init__(
        self,
        api_key: str,
        secret_key: str,
        base_url: str = "https://api.fireblocks.io",
        timeout: float = 30.0,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        """Initialize Fireblocks signer.

        Args:
            api_key: Fireblocks API user key
            secret_key: PEM encoded RSA private key of the API user
            base_url: API base URL (sandbox or production)
            timeout: Per-request timeout in seconds
            http_client: Optional preconfigured client (used by tests)
        """
        super().__init__(SignerType.FIREBLOCKS)
        if not api_key:
            raise ValueError("Fireblocks API key is required")
        if not secret_key:
            raise ValueError("Fireblocks secret key is required")
        self.api_key = api_key
        self._secret_key = secret_key
        self.base_url = base_url.rstrip("/")
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(base_url=self.base_url, timeout=timeout)

    def _sign_jwt(self, uri: str, body: bytes) -> str:
        now = int(time.time())
        claims = {
            "uri": uri,
            "nonce": uuid.uuid4().hex,
            "iat": now,
            "exp": now + JWT_TTL_SECONDS,
            "sub": self.api_key,
            "bodyHash": hashlib.sha256(body).hexdigest(),
        }
        return jwt.encode(claims, self._secret_key, algorithm="RS256")

    async def _request(self, method: str, uri: str, payload: Optional[dict] = None) -> Any:
        body = json.dumps(payload, separators=(",", ":")).encode() if payload is not None else b""
        headers = {
            "X-API-Key": self.api_key,
            "Authorization": f"Bearer {self._sign_jwt(uri, body)}",
        }
        if payload is not None:
            headers["Content-Type"] = "application/json"

        try:
            response = await self._client.request(
                method, f"{self.base_url}{uri}", content=body or None, headers=headers
            )
        except httpx.HTTPError as e:
            raise RemoteCallError(SERVICE_NAME, f"{method} {uri}: {e}") from e

        if response.status_code >= 400:
            raise RemoteCallError(
                SERVICE_NAME,
                f"{method} {uri} returned {response.status_code}: {response.text[:300]}",
                status_code=response.status_code,
            )

        try:
            return response.json()
        except ValueError as e:
            raise RemoteCallError(SERVICE_NAME, f"{method} {uri}: invalid JSON response") from e

    async def get_public_key(self, derivation_path: DerivationPath) -> bytes:
        """Look up the Ed25519 public key of a vault key slot."""
        query = urlencode({
            "derivationPath": json.dumps(derivation_path.as_list()),
            "algorithm": EDDSA_ALGORITHM,
        })
        data = await self._request("GET", f"/v1/vault/public_key_info?{query}")

        public_key_hex = data.get("publicKey") if isinstance(data, dict) else None
        if not public_key_hex:
            raise RemoteCallError(SERVICE_NAME, f"No public key returned for path {derivation_path}")

        public_key = _decode_hex(public_key_hex, f"Public key for path {derivation_path}")

        if len(public_key) != 32:
            raise RemoteCallError(
                SERVICE_NAME,
                f"Invalid public key length {len(public_key)} for path {derivation_path}, expected 32",
            )
        return public_key

    async def create_raw_sign_request(self, request: SigningRequest) -> str:
        """Create a RAW signing transaction and return its id."""
        payload_hex = request.payload_hex
        body = {
            "operation": "RAW",
            "source": {
                "type": "VAULT_ACCOUNT",
                "id": str(request.derivation_path.account_index),
            },
            "note": request.note or f"Movement transaction: {payload_hex}",
            "extraParameters": {
                "rawMessageData": {
                    "messages": [
                        {
                            "content": payload_hex,
                            "derivationPath": request.derivation_path.as_list(),
                        }
                    ],
                    "algorithm": EDDSA_ALGORITHM,
                }
            },
        }
        data = await self._request("POST", "/v1/transactions", body)

        request_id = data.get("id") if isinstance(data, dict) else None
        if not request_id:
            raise RemoteCallError(SERVICE_NAME, "Raw sign request returned no transaction id")

        logger.info(
            f"Created Fireblocks raw sign request {request_id} for vault "
            f"{request.derivation_path.account_index}"
        )
        return str(request_id)

    async def get_request_status(self, request_id: str) -> SigningRequestStatus:
        """Fetch a RAW signing transaction and extract its signature if done."""
        data = await self._request("GET", f"/v1/transactions/{request_id}")
        if not isinstance(data, dict):
            raise RemoteCallError(SERVICE_NAME, f"Unexpected response for request {request_id}")

        raw_status = data.get("status")
        if raw_status is not None and not isinstance(raw_status, str):
            raise RemoteCallError(SERVICE_NAME, f"Unexpected status for request {request_id}: {raw_status!r}")
        status = map_fireblocks_status(raw_status)

        signature = None
        if status is SigningStatus.COMPLETED:
            signature = self._extract_signature(request_id, data)

        return SigningRequestStatus(
            request_id=request_id,
            status=status,
            signature=signature,
            raw_status=raw_status,
        )

    @staticmethod
    def _extract_signature(request_id: str, data: dict) -> Optional[bytes]:
        signed_messages = data.get("signedMessages") or []
        if not signed_messages:
            return None
        try:
            full_sig = (signed_messages[0].get("signature") or {}).get("fullSig")
        except (AttributeError, KeyError, TypeError) as e:
            raise RemoteCallError(
                SERVICE_NAME, f"Malformed signedMessages for request {request_id}"
            ) from e
        if not full_sig:
            return None
        return _decode_hex(full_sig, f"Signature for request {request_id}")

    async def health_check(self) -> bool:
        """Check the API is reachable with our credentials."""
        try:
            await self._request("GET", "/v1/supported_assets")
            return True
        except RemoteCallError as e:
            logger.warning(f"Fireblocks health check failed: {e}")
            return False

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()
