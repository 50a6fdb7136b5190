"""Core execution components"""

from .engine import WorkflowEngine
from .activities import ActivityDispatcher, ActivityOutcome
from .conditions import ConditionEvaluator
from .crowds import Crowd, Gate, CrowdResolver, QuorumEvaluator
from .expression import ExpressionEvaluator
from .lock import ExecutionLock
from .parser import WorkflowParser
from .scanner import TimeoutScanner
from .transitions import TransitionResolver

__all__ = [
    "WorkflowEngine",
    "ActivityDispatcher",
    "ActivityOutcome",
    "ConditionEvaluator",
    "Crowd",
    "Gate",
    "CrowdResolver",
    "QuorumEvaluator",
    "ExpressionEvaluator",
    "ExecutionLock",
    "WorkflowParser",
    "TimeoutScanner",
    "TransitionResolver",
]
