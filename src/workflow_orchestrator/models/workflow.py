"""
工作流定义模型
"""
from dataclasses import dataclass, field
from typing import List, Dict, Any, Optional
from enum import Enum
from datetime import datetime

from ..utils import utcnow


class ActivityType(Enum):
    """活动类型"""
    ENTER = "enter"
    EXIT = "exit"
    CONDITION = "condition"
    USER = "user"
    ADJUST = "adjust"
    SERVICE = "service"
    NOTIFY = "notify"


class PortType(Enum):
    """活动端口"""
    INPUT = "input"
    SUCCESS = "success"
    FAILURE = "failure"
    TIMEOUT = "timeout"

    @property
    def description(self) -> str:
        return self.value.capitalize()


class JoinOperator(Enum):
    """多条件/多审批组的连接方式"""
    AND = "and"
    OR = "or"


class VariableType(Enum):
    """实例变量类型"""
    TEXT = "text"
    NUMBER = "number"


class TaskType(Enum):
    """人工任务类型"""
    APPROVAL = "approval"
    MANUAL = "manual"
    VARIABLE = "variable"


class CrowdType(Enum):
    """人群类型"""
    USER = "user"
    USER_GROUP = "user_group"
    INITIATOR = "initiator"


class AdjustmentType(Enum):
    """调整活动类型"""
    STATUS = "status"
    VARIABLE = "variable"


class ConditionSource(Enum):
    """条件左操作数来源"""
    FIELD = "field"
    VARIABLE = "variable"
    SCRIPT = "script"


class NotificationType(Enum):
    """通知渠道"""
    EMAIL = "email"
    SMS = "sms"
    PUSH = "push"


@dataclass
class VariableDefinition:
    """工作流变量定义"""
    id: str
    name: str
    type: VariableType = VariableType.TEXT
    default_value: Optional[str] = None
    description: Optional[str] = None


@dataclass
class Activity:
    """工作流活动"""
    id: str
    type: ActivityType
    name: Optional[str] = None
    config: Dict[str, Any] = field(default_factory=dict)
    timeout_interval: Optional[int] = None  # 仅 USER 活动使用
    timeout_uom: Optional[str] = None  # 时间单位，例如 TF_hr

    @property
    def label(self) -> str:
        """审计日志中使用的活动名称"""
        return self.name or self.type.value.capitalize()


@dataclass
class Transition:
    """活动间的有向边"""
    id: str
    from_activity_id: str
    to_activity_id: str
    from_port: PortType = PortType.SUCCESS
    to_port: PortType = PortType.INPUT


@dataclass
class ReminderPolicy:
    """提醒策略"""
    interval: Optional[int] = None
    uom: Optional[str] = None


@dataclass
class WorkflowDefinition:
    """工作流定义"""
    id: str
    name: str = ""
    description: Optional[str] = None
    primary_entity: str = ""  # 被跟踪的业务实体名
    primary_key_field: str = "id"
    disabled: bool = False
    reminder: ReminderPolicy = field(default_factory=ReminderPolicy)
    variables: List[VariableDefinition] = field(default_factory=list)
    activities: List[Activity] = field(default_factory=list)
    transitions: List[Transition] = field(default_factory=list)
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    def get_activity(self, activity_id: str) -> Optional[Activity]:
        """根据ID获取活动"""
        for activity in self.activities:
            if activity.id == activity_id:
                return activity
        return None

    def get_enter_activity(self) -> Optional[Activity]:
        """获取入口活动"""
        for activity in self.activities:
            if activity.type == ActivityType.ENTER:
                return activity
        return None

    def get_variable(self, variable_id: str) -> Optional[VariableDefinition]:
        """根据ID获取变量定义"""
        for variable in self.variables:
            if variable.id == variable_id:
                return variable
        return None

    def find_transitions(self, activity_id: str, port: PortType) -> List[Transition]:
        """查找从指定活动端口出发的边（保持定义顺序）"""
        return [
            transition for transition in self.transitions
            if transition.from_activity_id == activity_id and transition.from_port == port
        ]
