"""Account address derivation for single-key Ed25519 accounts."""

import hashlib

from movement_custody.movement.types import ED25519_PUBLIC_KEY_LENGTH

# Authentication key scheme byte for single Ed25519 keys
ED25519_SCHEME = b"\x00"


def derive_address(public_key: bytes) -> str:
    """Derive the account address owned by an Ed25519 public key.

    The address is the authentication key: ``sha3_256(public_key || 0x00)``.

    Returns:
        ``0x`` followed by 64 lowercase hex characters
    """
    if len(public_key) != ED25519_PUBLIC_KEY_LENGTH:
        raise ValueError(
            f"Ed25519 public key must be {ED25519_PUBLIC_KEY_LENGTH} bytes, got {len(public_key)}"
        )
    return "0x" + hashlib.sha3_256(public_key + ED25519_SCHEME).hexdigest()


def is_valid_address(address: str) -> bool:
    """Check for the long form ``0x`` + 64 hex characters."""
    if not isinstance(address, str) or not address.startswith("0x") or len(address) != 66:
        return False
    try:
        int(address[2:], 16)
        return True
    except ValueError:
        return False
