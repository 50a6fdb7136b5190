"""
Workflow Orchestrator - 工作流实例执行引擎
"""

__version__ = "0.1.0"

from .core.engine import WorkflowEngine
from .core.scanner import TimeoutScanner
from .core.parser import WorkflowParser
from .models.workflow import WorkflowDefinition, Activity, Transition
from .models.instance import WorkflowInstance, InstanceTask, InstanceStatus, TaskStatus

__all__ = [
    "WorkflowEngine",
    "TimeoutScanner",
    "WorkflowParser",
    "WorkflowDefinition",
    "Activity",
    "Transition",
    "WorkflowInstance",
    "InstanceTask",
    "InstanceStatus",
    "TaskStatus"
]
