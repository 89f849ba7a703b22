"""Transaction intents and the entry-function calls they map to."""

from dataclasses import dataclass, field
from typing import Optional

from movement_custody.movement.base import EntryFunctionCall, GasOptions

# Native coin transfer: transfer(recipient: address, amount: u64)
COIN_TRANSFER_FUNCTION = "0x1::aptos_account::transfer"
COIN_TRANSFER_ARGUMENT_TYPES = ("address", "u64")

# Fungible asset transfer: transfer<T>(metadata: Object<T>, recipient: address, amount: u64)
TOKEN_TRANSFER_FUNCTION = "0x1::primary_fungible_store::transfer"
TOKEN_TRANSFER_TYPE_ARGUMENTS = ("0x1::fungible_asset::Metadata",)
TOKEN_TRANSFER_ARGUMENT_TYPES = (
    "0x1::object::Object<0x1::fungible_asset::Metadata>",
    "address",
    "u64",
)


@dataclass(frozen=True)
class AssetSpec:
    """Fungible asset to transfer instead of the native coin.

    ``extra_type_args`` replaces the default ``Metadata`` type argument.
    """
    type: str
    extra_type_args: tuple[str, ...] = ()


@dataclass
class TransactionIntent:
    """What the caller wants to happen on chain. Never persisted."""
    sender: str
    recipient: str
    amount: int
    asset: Optional[AssetSpec] = None
    gas_options: Optional[GasOptions] = field(default=None)

    @property
    def is_token_transfer(self) -> bool:
        return self.asset is not None


def build_call(intent: TransactionIntent) -> EntryFunctionCall:
    """Map an intent onto its fixed entry-function selector and arguments."""
    if intent.amount < 0:
        raise ValueError(f"Amount must be non-negative, got {intent.amount}")

    if intent.asset is None:
        return EntryFunctionCall(
            function=COIN_TRANSFER_FUNCTION,
            type_arguments=(),
            argument_types=COIN_TRANSFER_ARGUMENT_TYPES,
            arguments=(intent.recipient, intent.amount),
        )

    return EntryFunctionCall(
        function=TOKEN_TRANSFER_FUNCTION,
        type_arguments=tuple(intent.asset.extra_type_args) or TOKEN_TRANSFER_TYPE_ARGUMENTS,
        argument_types=TOKEN_TRANSFER_ARGUMENT_TYPES,
        arguments=(intent.asset.type, intent.recipient, intent.amount),
    )


def effective_gas_options(gas_options: Optional[GasOptions]) -> Optional[GasOptions]:
    """Drop an all-empty options object so the ledger applies its defaults."""
    if gas_options is None or gas_options.is_empty():
        return None
    return gas_options
