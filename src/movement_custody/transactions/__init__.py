"""Transaction intents and the custody signing pipeline."""

from movement_custody.transactions.intent import (
    COIN_TRANSFER_FUNCTION,
    TOKEN_TRANSFER_FUNCTION,
    AssetSpec,
    TransactionIntent,
    build_call,
)
from movement_custody.transactions.pipeline import PipelineConfig, TransactionPipeline

__all__ = [
    "COIN_TRANSFER_FUNCTION",
    "TOKEN_TRANSFER_FUNCTION",
    "AssetSpec",
    "PipelineConfig",
    "TransactionIntent",
    "TransactionPipeline",
    "build_call",
]
