"""
Trading engine

Signal evaluation, risk gating, the command channel and the per-account
trade lifecycle state machine.
"""

from aurum.trading_engine.command_channel import CommandChannel, DispatchOutcome
from aurum.trading_engine.lifecycle_manager import CycleResult, TradeLifecycleManager
from aurum.trading_engine.reconciliation import ReconciliationReport, reconcile_account
from aurum.trading_engine.risk_gate import GateOutcome, compute_bracket, gate
from aurum.trading_engine.signal_evaluator import evaluate

__all__ = [
    "CommandChannel",
    "DispatchOutcome",
    "CycleResult",
    "TradeLifecycleManager",
    "ReconciliationReport",
    "reconcile_account",
    "GateOutcome",
    "compute_bracket",
    "gate",
    "evaluate",
]
