"""
工作流实例运行时模型
"""
from dataclasses import dataclass, field
from typing import Optional
from enum import Enum
from datetime import datetime
from uuid import uuid4

from ..utils import utcnow


class InstanceStatus(Enum):
    """实例状态"""
    PENDING = "pending"
    ACTIVE = "active"
    SUSPENDED = "suspended"
    COMPLETE = "complete"
    ABORTED = "aborted"


# 未结束的状态
OPEN_INSTANCE_STATUSES = (
    InstanceStatus.PENDING,
    InstanceStatus.ACTIVE,
    InstanceStatus.SUSPENDED,
)

# 终态，不允许继续推进
FINAL_INSTANCE_STATUSES = (InstanceStatus.COMPLETE, InstanceStatus.ABORTED)


class TaskStatus(Enum):
    """人工任务状态"""
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    DONE = "done"
    APPROVED = "approved"
    REJECTED = "rejected"
    OBSOLETE = "obsolete"


OPEN_TASK_STATUSES = (TaskStatus.PENDING, TaskStatus.IN_PROGRESS)

COMPLETED_TASK_STATUSES = (TaskStatus.DONE, TaskStatus.APPROVED, TaskStatus.REJECTED)


class EventType(Enum):
    """审计事件类型"""
    START = "start"
    FINISH = "finish"
    SUSPEND = "suspend"
    RESUME = "resume"
    ACTIVITY = "activity"
    TRANSITION = "transition"
    REMINDER = "reminder"


@dataclass
class WorkflowInstance:
    """工作流实例"""
    id: str = field(default_factory=lambda: str(uuid4()))
    workflow_id: str = ""
    primary_key_value: str = ""
    status: InstanceStatus = InstanceStatus.PENDING
    activity_id: Optional[str] = None
    activity_executed: bool = False
    visit_number: int = 0  # 每次跳转加一，用于区分同一活动的多次访问
    timeout_date: Optional[datetime] = None
    semaphore: Optional[str] = None  # 执行锁持有者
    input_user_id: Optional[str] = None
    result_code: Optional[str] = None
    created_date: datetime = field(default_factory=utcnow)
    last_update_date: datetime = field(default_factory=utcnow)

    def is_final(self) -> bool:
        return self.status in FINAL_INSTANCE_STATUSES


@dataclass
class InstanceVariable:
    """实例变量（以文本形式存储）"""
    instance_id: str
    variable_id: str
    name: str
    type: str = "text"
    value: Optional[str] = None


@dataclass
class InstanceTask:
    """人工任务"""
    id: str = field(default_factory=lambda: str(uuid4()))
    instance_id: str = ""
    activity_id: str = ""
    visit_number: int = 0
    assigned_user_id: str = ""
    task_type: str = "manual"
    variable_id: Optional[str] = None
    status: TaskStatus = TaskStatus.PENDING
    summary: Optional[str] = None
    description: Optional[str] = None
    remark: Optional[str] = None
    completion_date: Optional[datetime] = None
    created_date: datetime = field(default_factory=utcnow)


@dataclass
class InstanceEvent:
    """审计事件"""
    id: str = field(default_factory=lambda: str(uuid4()))
    instance_id: str = ""
    event_type: EventType = EventType.ACTIVITY
    source_name: Optional[str] = None
    description: str = ""
    was_error: bool = False
    event_date: datetime = field(default_factory=utcnow)
