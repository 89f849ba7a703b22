"""Move transaction types and their BCS encoding.

Only the subset needed to build, sign and submit entry-function
transactions with an Ed25519 sender is modelled here.
"""

import hashlib
from dataclasses import dataclass
from typing import Optional

from movement_custody.movement.bcs import Serializer

# Domain separator hashed and prepended to every raw transaction before signing
RAW_TRANSACTION_SALT = b"APTOS::RawTransaction"
RAW_TRANSACTION_PREFIX = hashlib.sha3_256(RAW_TRANSACTION_SALT).digest()

ADDRESS_LENGTH = 32
ED25519_PUBLIC_KEY_LENGTH = 32
ED25519_SIGNATURE_LENGTH = 64

# TransactionPayload::EntryFunction variant index
_ENTRY_FUNCTION_VARIANT = 2
# TransactionAuthenticator::Ed25519 variant index
_ED25519_AUTHENTICATOR_VARIANT = 0


@dataclass(frozen=True)
class AccountAddress:
    """32-byte account address."""
    value: bytes

    def __post_init__(self):
        if len(self.value) != ADDRESS_LENGTH:
            raise ValueError(f"Address must be {ADDRESS_LENGTH} bytes, got {len(self.value)}")

    @classmethod
    def from_str(cls, address: str) -> "AccountAddress":
        """Parse ``0x``-prefixed hex, accepting short forms such as ``0x1``."""
        text = address.strip()
        if text.startswith(("0x", "0X")):
            text = text[2:]
        if not text or len(text) > ADDRESS_LENGTH * 2:
            raise ValueError(f"Invalid account address: {address!r}")
        try:
            return cls(bytes.fromhex(text.zfill(ADDRESS_LENGTH * 2)))
        except ValueError as e:
            raise ValueError(f"Invalid account address: {address!r}") from e

    def serialize(self, serializer: Serializer) -> None:
        serializer.fixed_bytes(self.value)

    def __str__(self) -> str:
        return "0x" + self.value.hex()


# ======================
# Type tags
# ======================

_PRIMITIVE_TAGS = {
    "bool": 0,
    "u8": 1,
    "u64": 2,
    "u128": 3,
    "address": 4,
    "signer": 5,
    "u16": 8,
    "u32": 9,
    "u256": 10,
}
_VECTOR_TAG = 6
_STRUCT_TAG = 7


@dataclass(frozen=True)
class StructTag:
    address: AccountAddress
    module: str
    name: str
    type_args: tuple["TypeTag", ...] = ()

    def serialize(self, serializer: Serializer) -> None:
        self.address.serialize(serializer)
        serializer.str(self.module)
        serializer.str(self.name)
        serializer.sequence(self.type_args, lambda s, tag: tag.serialize(s))

    def __str__(self) -> str:
        text = f"{self.address}::{self.module}::{self.name}"
        if self.type_args:
            text += "<" + ", ".join(str(arg) for arg in self.type_args) + ">"
        return text


@dataclass(frozen=True)
class TypeTag:
    """A Move type: primitive name, ``vector<T>``, or a struct tag."""
    kind: str
    inner: Optional["TypeTag"] = None
    struct: Optional[StructTag] = None

    @classmethod
    def parse(cls, text: str) -> "TypeTag":
        parser = _TypeTagParser(text)
        tag = parser.parse_type()
        parser.expect_end()
        return tag

    def serialize(self, serializer: Serializer) -> None:
        if self.kind == "vector":
            serializer.uleb128(_VECTOR_TAG)
            self.inner.serialize(serializer)
        elif self.kind == "struct":
            serializer.uleb128(_STRUCT_TAG)
            self.struct.serialize(serializer)
        else:
            serializer.uleb128(_PRIMITIVE_TAGS[self.kind])

    def __str__(self) -> str:
        if self.kind == "vector":
            return f"vector<{self.inner}>"
        if self.kind == "struct":
            return str(self.struct)
        return self.kind


class _TypeTagParser:
    """Recursive descent parser for Move type strings."""

    def __init__(self, text: str):
        self.text = text
        self.pos = 0

    def _skip_ws(self) -> None:
        while self.pos < len(self.text) and self.text[self.pos].isspace():
            self.pos += 1

    def _peek(self, token: str) -> bool:
        self._skip_ws()
        return self.text.startswith(token, self.pos)

    def _consume(self, token: str) -> None:
        if not self._peek(token):
            raise ValueError(f"Expected {token!r} at {self.pos} in type {self.text!r}")
        self.pos += len(token)

    def _identifier(self) -> str:
        self._skip_ws()
        start = self.pos
        while self.pos < len(self.text) and (self.text[self.pos].isalnum() or self.text[self.pos] == "_"):
            self.pos += 1
        if start == self.pos:
            raise ValueError(f"Expected identifier at {start} in type {self.text!r}")
        return self.text[start:self.pos]

    def expect_end(self) -> None:
        self._skip_ws()
        if self.pos != len(self.text):
            raise ValueError(f"Unexpected trailing input in type {self.text!r}")

    def parse_type(self) -> TypeTag:
        head = self._identifier()
        if head == "vector":
            self._consume("<")
            inner = self.parse_type()
            self._consume(">")
            return TypeTag(kind="vector", inner=inner)
        if head in _PRIMITIVE_TAGS and not self._peek("::"):
            return TypeTag(kind=head)

        address = AccountAddress.from_str(head)
        self._consume("::")
        module = self._identifier()
        self._consume("::")
        name = self._identifier()
        type_args: list[TypeTag] = []
        if self._peek("<"):
            self._consume("<")
            type_args.append(self.parse_type())
            while self._peek(","):
                self._consume(",")
                type_args.append(self.parse_type())
            self._consume(">")
        return TypeTag(
            kind="struct",
            struct=StructTag(address=address, module=module, name=name, type_args=tuple(type_args)),
        )


# ======================
# Transactions
# ======================


@dataclass(frozen=True)
class EntryFunction:
    """Call of a public entry function ``address::module::function``."""
    module_address: AccountAddress
    module_name: str
    function_name: str
    type_args: tuple[TypeTag, ...]
    args: tuple[bytes, ...]

    @classmethod
    def natural(
        cls,
        function_id: str,
        type_args: list[TypeTag],
        args: list[bytes],
    ) -> "EntryFunction":
        """Build from ``0x1::module::function`` and BCS encoded arguments."""
        parts = function_id.split("::")
        if len(parts) != 3:
            raise ValueError(f"Invalid function id: {function_id!r}")
        address, module, function = parts
        return cls(
            module_address=AccountAddress.from_str(address),
            module_name=module,
            function_name=function,
            type_args=tuple(type_args),
            args=tuple(args),
        )

    @property
    def function_id(self) -> str:
        return f"{self.module_address}::{self.module_name}::{self.function_name}"

    def serialize(self, serializer: Serializer) -> None:
        serializer.uleb128(_ENTRY_FUNCTION_VARIANT)
        self.module_address.serialize(serializer)
        serializer.str(self.module_name)
        serializer.str(self.function_name)
        serializer.sequence(self.type_args, lambda s, tag: tag.serialize(s))
        serializer.sequence(self.args, lambda s, arg: s.bytes(arg))


@dataclass(frozen=True)
class RawTransaction:
    """Unsigned user transaction."""
    sender: AccountAddress
    sequence_number: int
    payload: EntryFunction
    max_gas_amount: int
    gas_unit_price: int
    expiration_timestamp_secs: int
    chain_id: int

    def serialize(self, serializer: Serializer) -> None:
        self.sender.serialize(serializer)
        serializer.u64(self.sequence_number)
        self.payload.serialize(serializer)
        serializer.u64(self.max_gas_amount)
        serializer.u64(self.gas_unit_price)
        serializer.u64(self.expiration_timestamp_secs)
        serializer.u8(self.chain_id)

    def to_bytes(self) -> bytes:
        serializer = Serializer()
        self.serialize(serializer)
        return serializer.output()


def signing_message(raw_transaction: RawTransaction) -> bytes:
    """Exact bytes the sender must sign: domain prefix + BCS transaction."""
    return RAW_TRANSACTION_PREFIX + raw_transaction.to_bytes()


@dataclass(frozen=True)
class Ed25519Authenticator:
    """Sender authenticator made of an Ed25519 public key and signature."""
    public_key: bytes
    signature: bytes

    def __post_init__(self):
        if len(self.public_key) != ED25519_PUBLIC_KEY_LENGTH:
            raise ValueError(
                f"Ed25519 public key must be {ED25519_PUBLIC_KEY_LENGTH} bytes, got {len(self.public_key)}"
            )
        if len(self.signature) != ED25519_SIGNATURE_LENGTH:
            raise ValueError(
                f"Ed25519 signature must be {ED25519_SIGNATURE_LENGTH} bytes, got {len(self.signature)}"
            )

    def serialize(self, serializer: Serializer) -> None:
        serializer.uleb128(_ED25519_AUTHENTICATOR_VARIANT)
        serializer.bytes(self.public_key)
        serializer.bytes(self.signature)


@dataclass(frozen=True)
class SignedTransaction:
    raw_transaction: RawTransaction
    authenticator: Ed25519Authenticator

    def to_bytes(self) -> bytes:
        serializer = Serializer()
        self.raw_transaction.serialize(serializer)
        self.authenticator.serialize(serializer)
        return serializer.output()
