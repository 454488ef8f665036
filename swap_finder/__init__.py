"""Swap Finder - atomic swap discovery and UTXO funding primitives."""

__version__ = "0.1.0"

from .coin_selection import select_coins
from .errors import (
    CollaboratorError,
    DecodeError,
    InsufficientFunds,
    PendingTransaction,
    SwapFinderError,
    UnexpectedInstruction,
)
from .fees import calculate_fee
from .swap_matcher import SwapMatcher, batch_signatures
from .transactions import (
    decode_raw_transaction,
    normalize_transaction_object,
    witness_stack_to_script_witness,
)

__all__ = [
    "SwapMatcher",
    "batch_signatures",
    "select_coins",
    "calculate_fee",
    "decode_raw_transaction",
    "normalize_transaction_object",
    "witness_stack_to_script_witness",
    "SwapFinderError",
    "DecodeError",
    "InsufficientFunds",
    "PendingTransaction",
    "CollaboratorError",
    "UnexpectedInstruction",
]
