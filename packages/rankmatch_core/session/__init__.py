"""In-session bookkeeping: substitutions, turn timers, outcomes, and scores."""

from .drop_in import DropInQueueTracker, pick_substitute
from .outcome_ledger import OutcomeLedger, OutcomeLedgerEntry, parse_result_line
from .registry import SessionRecord, SessionRegistry, get_session_registry, reset_session_registry_for_tests
from .scoring import apply_score_delta, compute_session_score
from .turn_timer import TurnTimerService, TurnTimerState

__all__ = [
    "DropInQueueTracker",
    "pick_substitute",
    "OutcomeLedger",
    "OutcomeLedgerEntry",
    "parse_result_line",
    "SessionRecord",
    "SessionRegistry",
    "get_session_registry",
    "reset_session_registry_for_tests",
    "apply_score_delta",
    "compute_session_score",
    "TurnTimerService",
    "TurnTimerState",
]
