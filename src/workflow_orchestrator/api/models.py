"""
API 请求和响应模型
"""
from pydantic import BaseModel, Field
from typing import Optional, List, Dict, Any
from datetime import datetime
from enum import Enum

from ..models.instance import InstanceEvent, InstanceTask, InstanceVariable, WorkflowInstance
from ..models.workflow import WorkflowDefinition


class InstanceStatusEnum(str, Enum):
    """实例状态枚举（API）"""
    PENDING = "pending"
    ACTIVE = "active"
    SUSPENDED = "suspended"
    COMPLETE = "complete"
    ABORTED = "aborted"


class TaskStatusEnum(str, Enum):
    """任务状态枚举（API）"""
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    DONE = "done"
    APPROVED = "approved"
    REJECTED = "rejected"
    OBSOLETE = "obsolete"


# 工作流定义

class WorkflowLoadRequest(BaseModel):
    """加载工作流定义请求（二选一）"""
    definition: Optional[Dict[str, Any]] = Field(None, description="工作流定义文档（JSON 对象）")
    document: Optional[str] = Field(None, description="YAML 或 JSON 文本")


class WorkflowResponse(BaseModel):
    """工作流定义摘要"""
    id: str = Field(..., description="工作流ID")
    name: str = Field(..., description="工作流名称")
    description: Optional[str] = Field(None, description="描述")
    primary_entity: str = Field("", description="被跟踪的业务实体")
    primary_key_field: str = Field("id", description="业务实体主键字段")
    disabled: bool = Field(False, description="是否禁用")
    activity_count: int = Field(0, description="活动数")
    transition_count: int = Field(0, description="转移数")

    @classmethod
    def from_workflow(cls, workflow: WorkflowDefinition) -> "WorkflowResponse":
        return cls(
            id=workflow.id,
            name=workflow.name,
            description=workflow.description,
            primary_entity=workflow.primary_entity,
            primary_key_field=workflow.primary_key_field,
            disabled=workflow.disabled,
            activity_count=len(workflow.activities),
            transition_count=len(workflow.transitions),
        )


# 实例

class InstanceCreateRequest(BaseModel):
    """创建实例请求"""
    workflow_id: str = Field(..., description="工作流ID")
    primary_key_value: str = Field(..., description="业务记录主键值")
    input_user_id: Optional[str] = Field(None, description="发起人用户ID")
    start: bool = Field(False, description="创建后立即启动")


class VariableResponse(BaseModel):
    """实例变量"""
    variable_id: str = Field(..., description="变量ID")
    name: str = Field(..., description="变量名")
    type: str = Field(..., description="变量类型")
    value: Optional[str] = Field(None, description="变量值")

    @classmethod
    def from_variable(cls, variable: InstanceVariable) -> "VariableResponse":
        return cls(
            variable_id=variable.variable_id,
            name=variable.name,
            type=variable.type,
            value=variable.value,
        )


class InstanceResponse(BaseModel):
    """实例响应"""
    id: str = Field(..., description="实例ID")
    workflow_id: str = Field(..., description="工作流ID")
    primary_key_value: str = Field(..., description="业务记录主键值")
    status: InstanceStatusEnum = Field(..., description="实例状态")
    activity_id: Optional[str] = Field(None, description="当前活动ID")
    activity_executed: bool = Field(False, description="当前活动是否已执行")
    visit_number: int = Field(0, description="活动访问序号")
    timeout_date: Optional[datetime] = Field(None, description="等待期限")
    semaphore: Optional[str] = Field(None, description="执行锁持有者")
    input_user_id: Optional[str] = Field(None, description="发起人")
    result_code: Optional[str] = Field(None, description="结果码")
    created_date: datetime = Field(..., description="创建时间")
    last_update_date: datetime = Field(..., description="最后更新时间")

    @classmethod
    def from_instance(cls, instance: WorkflowInstance) -> "InstanceResponse":
        return cls(
            id=instance.id,
            workflow_id=instance.workflow_id,
            primary_key_value=instance.primary_key_value,
            status=InstanceStatusEnum(instance.status.value),
            activity_id=instance.activity_id,
            activity_executed=instance.activity_executed,
            visit_number=instance.visit_number,
            timeout_date=instance.timeout_date,
            semaphore=instance.semaphore,
            input_user_id=instance.input_user_id,
            result_code=instance.result_code,
            created_date=instance.created_date,
            last_update_date=instance.last_update_date,
        )


class InstanceDetailResponse(InstanceResponse):
    """实例详情（含变量）"""
    variables: List[VariableResponse] = Field(default_factory=list, description="实例变量")


class InstanceOperationResponse(BaseModel):
    """实例操作结果"""
    success: bool = Field(..., description="操作是否生效（未获得执行锁时为 false）")
    message: str = Field(..., description="说明")
    instance: Optional[InstanceResponse] = Field(None, description="操作后的实例")


class VariableUpdateRequest(BaseModel):
    """更新变量请求"""
    expression: str = Field(..., description="表达式")


class EventResponse(BaseModel):
    """审计事件"""
    id: str = Field(..., description="事件ID")
    event_type: str = Field(..., description="事件类型")
    source_name: Optional[str] = Field(None, description="来源")
    description: str = Field("", description="描述")
    was_error: bool = Field(False, description="是否错误")
    event_date: datetime = Field(..., description="发生时间")

    @classmethod
    def from_event(cls, event: InstanceEvent) -> "EventResponse":
        return cls(
            id=event.id,
            event_type=event.event_type.value,
            source_name=event.source_name,
            description=event.description,
            was_error=event.was_error,
            event_date=event.event_date,
        )


# 任务

class TaskResponse(BaseModel):
    """人工任务"""
    id: str = Field(..., description="任务ID")
    instance_id: str = Field(..., description="实例ID")
    activity_id: str = Field(..., description="活动ID")
    visit_number: int = Field(..., description="活动访问序号")
    assigned_user_id: str = Field(..., description="处理人")
    task_type: str = Field(..., description="任务类型")
    variable_id: Optional[str] = Field(None, description="关联变量")
    status: TaskStatusEnum = Field(..., description="任务状态")
    summary: Optional[str] = Field(None, description="摘要")
    description: Optional[str] = Field(None, description="描述")
    remark: Optional[str] = Field(None, description="备注")
    completion_date: Optional[datetime] = Field(None, description="完成时间")
    created_date: datetime = Field(..., description="创建时间")

    @classmethod
    def from_task(cls, task: InstanceTask) -> "TaskResponse":
        return cls(
            id=task.id,
            instance_id=task.instance_id,
            activity_id=task.activity_id,
            visit_number=task.visit_number,
            assigned_user_id=task.assigned_user_id,
            task_type=task.task_type,
            variable_id=task.variable_id,
            status=TaskStatusEnum(task.status.value),
            summary=task.summary,
            description=task.description,
            remark=task.remark,
            completion_date=task.completion_date,
            created_date=task.created_date,
        )


class TaskUpdateRequest(BaseModel):
    """更新任务请求"""
    status: TaskStatusEnum = Field(..., description="新状态")
    value: Optional[str] = Field(None, description="提交给关联变量的值")
    remark: Optional[str] = Field(None, description="备注")
    user_id: Optional[str] = Field(None, description="操作人（须为任务处理人）")
    advance: bool = Field(True, description="任务完成后继续推进实例")


class TaskListResponse(BaseModel):
    """任务列表"""
    items: List[TaskResponse] = Field(default_factory=list, description="任务")
    offset: int = Field(0, description="偏移")
    limit: int = Field(100, description="条数")


class TaskCountResponse(BaseModel):
    """任务计数"""
    count: int = Field(..., description="任务数")


# 维护

class SweepResponse(BaseModel):
    """超时扫描结果"""
    started: int = Field(..., description="重新启动的实例数")


class HealthResponse(BaseModel):
    """健康检查"""
    status: str = Field(..., description="服务状态")
    version: str = Field(..., description="版本")
    worker_id: Optional[str] = Field(None, description="工作进程标识")
