"""Reconciliation of off-chain gift state with escrow history."""

from __future__ import annotations

from .reconciler import CHECKPOINT_NAME, ReconcileResult, Reconciler
from .repair import GiftRepairer, RepairReport

__all__ = [
    "CHECKPOINT_NAME",
    "GiftRepairer",
    "ReconcileResult",
    "Reconciler",
    "RepairReport",
]
