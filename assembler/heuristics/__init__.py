"""Heuristics settings and receiver/sender selection strategies."""

from .settings import HeuristicsMode, HeuristicsSettings, ReceiverMode, SenderMode
from .selection import (
    compute_receiver_value,
    compute_sender_value,
    density_value,
    select_receiver,
    select_sender,
    weighted_random_choice,
)

__all__ = [
    "HeuristicsMode",
    "HeuristicsSettings",
    "ReceiverMode",
    "SenderMode",
    "compute_receiver_value",
    "compute_sender_value",
    "density_value",
    "select_receiver",
    "select_sender",
    "weighted_random_choice",
]
