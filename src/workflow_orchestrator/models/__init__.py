"""
数据模型
"""
from .workflow import (
    ActivityType,
    PortType,
    JoinOperator,
    VariableType,
    TaskType,
    CrowdType,
    AdjustmentType,
    ConditionSource,
    NotificationType,
    VariableDefinition,
    Activity,
    Transition,
    ReminderPolicy,
    WorkflowDefinition,
)
from .instance import (
    InstanceStatus,
    TaskStatus,
    EventType,
    WorkflowInstance,
    InstanceVariable,
    InstanceTask,
    InstanceEvent,
    OPEN_INSTANCE_STATUSES,
    FINAL_INSTANCE_STATUSES,
    OPEN_TASK_STATUSES,
    COMPLETED_TASK_STATUSES,
)

__all__ = [
    "ActivityType",
    "PortType",
    "JoinOperator",
    "VariableType",
    "TaskType",
    "CrowdType",
    "AdjustmentType",
    "ConditionSource",
    "NotificationType",
    "VariableDefinition",
    "Activity",
    "Transition",
    "ReminderPolicy",
    "WorkflowDefinition",
    "InstanceStatus",
    "TaskStatus",
    "EventType",
    "WorkflowInstance",
    "InstanceVariable",
    "InstanceTask",
    "InstanceEvent",
    "OPEN_INSTANCE_STATUSES",
    "FINAL_INSTANCE_STATUSES",
    "OPEN_TASK_STATUSES",
    "COMPLETED_TASK_STATUSES",
]
