"""
存储仓库接口定义
"""
import copy
from abc import ABC, abstractmethod
from typing import Optional, List, Dict, Iterable, Any
from datetime import datetime

from ..exceptions import InstanceNotFoundError, TaskNotFoundError, VariableNotFoundError
from ..models.workflow import WorkflowDefinition
from ..models.instance import (
    WorkflowInstance,
    InstanceStatus,
    InstanceVariable,
    InstanceTask,
    TaskStatus,
    InstanceEvent,
)
from ..utils import utcnow


class WorkflowRepository(ABC):
    """工作流定义存储仓库接口"""

    @abstractmethod
    def save(self, workflow: WorkflowDefinition) -> str:
        """保存（新增或覆盖）工作流定义"""
        pass

    @abstractmethod
    def get(self, workflow_id: str) -> Optional[WorkflowDefinition]:
        """获取工作流定义"""
        pass

    @abstractmethod
    def list(self, offset: int = 0, limit: int = 100) -> List[WorkflowDefinition]:
        """列出工作流定义"""
        pass

    @abstractmethod
    def delete(self, workflow_id: str) -> bool:
        """删除工作流定义"""
        pass


class InstanceRepository(ABC):
    """工作流实例存储仓库接口

    所有更新操作返回写入后重新读取的快照，调用方必须使用返回值替换手中的旧对象。
    """

    # 实例

    @abstractmethod
    def create_instance(self, instance: WorkflowInstance) -> str:
        """新增实例"""
        pass

    @abstractmethod
    def get_instance(self, instance_id: str) -> Optional[WorkflowInstance]:
        """读取实例当前快照"""
        pass

    @abstractmethod
    def update_instance(self, instance_id: str, **changes) -> WorkflowInstance:
        """更新实例字段并返回最新快照"""
        pass

    @abstractmethod
    def find_instances(
        self,
        workflow_id: str = None,
        primary_key_value: str = None,
        statuses: Iterable[InstanceStatus] = None,
        timeout_before: datetime = None,
        offset: int = 0,
        limit: int = 100
    ) -> List[WorkflowInstance]:
        """按条件列出实例（按创建时间排序）"""
        pass

    # 变量

    @abstractmethod
    def create_variable(self, variable: InstanceVariable):
        """新增实例变量"""
        pass

    @abstractmethod
    def get_variable(self, instance_id: str, variable_id: str) -> Optional[InstanceVariable]:
        """获取实例变量"""
        pass

    @abstractmethod
    def list_variables(self, instance_id: str) -> List[InstanceVariable]:
        """列出实例变量"""
        pass

    @abstractmethod
    def update_variable(self, instance_id: str, variable_id: str,
                        value: Optional[str]) -> InstanceVariable:
        """更新实例变量值"""
        pass

    # 任务

    @abstractmethod
    def create_task(self, task: InstanceTask) -> str:
        """新增任务"""
        pass

    @abstractmethod
    def get_task(self, task_id: str) -> Optional[InstanceTask]:
        """获取任务"""
        pass

    @abstractmethod
    def update_task(self, task_id: str, **changes) -> InstanceTask:
        """更新任务字段并返回最新快照"""
        pass

    @abstractmethod
    def find_tasks(
        self,
        instance_id: str = None,
        activity_id: str = None,
        visit_number: int = None,
        statuses: Iterable[TaskStatus] = None,
        user_ids: Iterable[str] = None,
        offset: int = 0,
        limit: int = None
    ) -> List[InstanceTask]:
        """按条件列出任务（按创建时间排序）"""
        pass

    @abstractmethod
    def count_tasks(
        self,
        instance_id: str = None,
        activity_id: str = None,
        visit_number: int = None,
        statuses: Iterable[TaskStatus] = None,
        user_ids: Iterable[str] = None
    ) -> int:
        """按条件统计任务数"""
        pass

    # 事件

    @abstractmethod
    def record_event(self, event: InstanceEvent) -> str:
        """追加审计事件"""
        pass

    @abstractmethod
    def list_events(self, instance_id: str) -> List[InstanceEvent]:
        """列出实例的审计事件"""
        pass


# 内存实现（用于测试）
class InMemoryWorkflowRepository(WorkflowRepository):
    """内存工作流定义仓库实现"""

    def __init__(self):
        self.workflows: Dict[str, WorkflowDefinition] = {}

    def save(self, workflow: WorkflowDefinition) -> str:
        workflow.updated_at = utcnow()
        self.workflows[workflow.id] = workflow
        return workflow.id

    def get(self, workflow_id: str) -> Optional[WorkflowDefinition]:
        return self.workflows.get(workflow_id)

    def list(self, offset: int = 0, limit: int = 100) -> List[WorkflowDefinition]:
        workflows = list(self.workflows.values())
        return workflows[offset:offset + limit]

    def delete(self, workflow_id: str) -> bool:
        return self.workflows.pop(workflow_id, None) is not None


class InMemoryInstanceRepository(InstanceRepository):
    """内存实例仓库实现

    读取时返回副本，模拟数据库中“写入后重新读取”的快照语义。
    """

    def __init__(self):
        self.instances: Dict[str, WorkflowInstance] = {}
        self.variables: Dict[tuple, InstanceVariable] = {}
        self.tasks: Dict[str, InstanceTask] = {}
        self.events: List[InstanceEvent] = []

    def create_instance(self, instance: WorkflowInstance) -> str:
        self.instances[instance.id] = copy.deepcopy(instance)
        return instance.id

    def get_instance(self, instance_id: str) -> Optional[WorkflowInstance]:
        instance = self.instances.get(instance_id)
        return copy.deepcopy(instance) if instance else None

    def update_instance(self, instance_id: str, **changes) -> WorkflowInstance:
        instance = self.instances.get(instance_id)
        if instance is None:
            raise InstanceNotFoundError(instance_id)
        _apply_changes(instance, changes)
        instance.last_update_date = utcnow()
        return copy.deepcopy(instance)

    def find_instances(
        self,
        workflow_id: str = None,
        primary_key_value: str = None,
        statuses: Iterable[InstanceStatus] = None,
        timeout_before: datetime = None,
        offset: int = 0,
        limit: int = 100
    ) -> List[WorkflowInstance]:
        statuses = set(statuses) if statuses is not None else None
        matched = []
        for instance in sorted(self.instances.values(), key=lambda i: i.created_date):
            if workflow_id is not None and instance.workflow_id != workflow_id:
                continue
            if primary_key_value is not None and instance.primary_key_value != primary_key_value:
                continue
            if statuses is not None and instance.status not in statuses:
                continue
            if timeout_before is not None and (
                instance.timeout_date is None or instance.timeout_date >= timeout_before
            ):
                continue
            matched.append(copy.deepcopy(instance))
        return matched[offset:offset + limit]

    def create_variable(self, variable: InstanceVariable):
        self.variables[(variable.instance_id, variable.variable_id)] = copy.deepcopy(variable)

    def get_variable(self, instance_id: str, variable_id: str) -> Optional[InstanceVariable]:
        variable = self.variables.get((instance_id, variable_id))
        return copy.deepcopy(variable) if variable else None

    def list_variables(self, instance_id: str) -> List[InstanceVariable]:
        return [
            copy.deepcopy(variable) for (owner, _), variable in self.variables.items()
            if owner == instance_id
        ]

    def update_variable(self, instance_id: str, variable_id: str,
                        value: Optional[str]) -> InstanceVariable:
        variable = self.variables.get((instance_id, variable_id))
        if variable is None:
            raise VariableNotFoundError(instance_id, variable_id)
        variable.value = value
        return copy.deepcopy(variable)

    def create_task(self, task: InstanceTask) -> str:
        self.tasks[task.id] = copy.deepcopy(task)
        return task.id

    def get_task(self, task_id: str) -> Optional[InstanceTask]:
        task = self.tasks.get(task_id)
        return copy.deepcopy(task) if task else None

    def update_task(self, task_id: str, **changes) -> InstanceTask:
        task = self.tasks.get(task_id)
        if task is None:
            raise TaskNotFoundError(task_id)
        _apply_changes(task, changes)
        return copy.deepcopy(task)

    def find_tasks(
        self,
        instance_id: str = None,
        activity_id: str = None,
        visit_number: int = None,
        statuses: Iterable[TaskStatus] = None,
        user_ids: Iterable[str] = None,
        offset: int = 0,
        limit: int = None
    ) -> List[InstanceTask]:
        matched = [
            copy.deepcopy(task)
            for task in self._match_tasks(instance_id, activity_id, visit_number, statuses, user_ids)
        ]
        end = None if limit is None else offset + limit
        return matched[offset:end]

    def count_tasks(
        self,
        instance_id: str = None,
        activity_id: str = None,
        visit_number: int = None,
        statuses: Iterable[TaskStatus] = None,
        user_ids: Iterable[str] = None
    ) -> int:
        return len(self._match_tasks(instance_id, activity_id, visit_number, statuses, user_ids))

    def _match_tasks(self, instance_id, activity_id, visit_number, statuses, user_ids) -> List[InstanceTask]:
        statuses = set(statuses) if statuses is not None else None
        user_ids = set(user_ids) if user_ids is not None else None
        matched = []
        for task in sorted(self.tasks.values(), key=lambda t: t.created_date):
            if instance_id is not None and task.instance_id != instance_id:
                continue
            if activity_id is not None and task.activity_id != activity_id:
                continue
            if visit_number is not None and task.visit_number != visit_number:
                continue
            if statuses is not None and task.status not in statuses:
                continue
            if user_ids is not None and task.assigned_user_id not in user_ids:
                continue
            matched.append(task)
        return matched

    def record_event(self, event: InstanceEvent) -> str:
        self.events.append(copy.deepcopy(event))
        return event.id

    def list_events(self, instance_id: str) -> List[InstanceEvent]:
        return [copy.deepcopy(event) for event in self.events if event.instance_id == instance_id]


def _apply_changes(record: Any, changes: Dict[str, Any]):
    """将字段修改应用到数据对象"""
    for key, value in changes.items():
        if not hasattr(record, key):
            raise AttributeError(f"{type(record).__name__} has no field '{key}'")
        setattr(record, key, value)
