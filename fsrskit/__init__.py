from fsrskit.card import Card, ReviewLog
from fsrskit.core import (
    CardState,
    EvaluationResult,
    ItemOutcome,
    MemoryState,
    NextStates,
    OptimizationResult,
    Rating,
    ReviewCorpus,
    ReviewEvent,
    ValidationError,
)
from fsrskit.engine import initial_state, next_state, repeat_all
from fsrskit.evaluation import evaluate
from fsrskit.fsrs_defaults import DEFAULT_PARAMETERS, PARAMETER_COUNT
from fsrskit.history import memory_state_from_history, memory_state_from_sm2
from fsrskit.intervals import next_interval
from fsrskit.math.fsrs import retrievability
from fsrskit.optimizer import OptimizerConfig, optimize
from fsrskit.scheduler import Scheduler, simulate_reviews

__all__ = [
    "Card",
    "CardState",
    "DEFAULT_PARAMETERS",
    "EvaluationResult",
    "ItemOutcome",
    "MemoryState",
    "NextStates",
    "OptimizationResult",
    "OptimizerConfig",
    "PARAMETER_COUNT",
    "Rating",
    "ReviewCorpus",
    "ReviewEvent",
    "ReviewLog",
    "Scheduler",
    "ValidationError",
    "evaluate",
    "initial_state",
    "memory_state_from_history",
    "memory_state_from_sm2",
    "next_interval",
    "next_state",
    "optimize",
    "repeat_all",
    "retrievability",
    "simulate_reviews",
]
