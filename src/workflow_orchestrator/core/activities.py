"""
活动分发

每种活动类型对应一个执行器，分发表是封闭的：ActivityType 的每个取值恰好注册一个执行器。
执行器在一次活动访问中只被调用一次，调用后引擎立即将实例标记为已执行。
"""
import logging
from abc import ABC, abstractmethod
from datetime import timedelta
from enum import Enum
from typing import Any, Callable, Dict

from ..exceptions import ActivityExecutionError, WorkflowEngineError
from ..integrations.entities import EntityGateway
from ..integrations.notifications import Notifier
from ..integrations.services import ServiceRegistry
from ..integrations.units import UnitConverter
from ..models.instance import (
    EventType,
    InstanceStatus,
    InstanceTask,
    TaskStatus,
    WorkflowInstance,
)
from ..models.workflow import (
    Activity,
    ActivityType,
    AdjustmentType,
    ConditionSource,
    JoinOperator,
    NotificationType,
    TaskType,
    WorkflowDefinition,
)
from ..storage.repository import InstanceRepository
from ..utils import utcnow
from .conditions import ConditionData, ConditionEvaluator
from .crowds import Crowd, CrowdResolver, Gate
from .events import EventRecorder
from .variables import VariableUpdater, variable_environment


logger = logging.getLogger(__name__)


class ActivityOutcome(Enum):
    """活动执行结果"""
    SUCCESS = "success"
    FAILURE = "failure"
    PENDING = "pending"


def _enum_value(enum_cls, value: Any, default=None):
    """读取配置中的枚举值（不区分大小写）"""
    if value is None or value == "":
        if default is None:
            raise ValueError(f"Missing {enum_cls.__name__}")
        return default
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(str(value).lower())
    except ValueError:
        raise ValueError(f"Unknown {enum_cls.__name__} '{value}'")


def user_task_settings(activity: Activity):
    """解析 USER 活动配置：任务类型、审批组与连接方式"""
    config = activity.config
    task_type = _enum_value(TaskType, config.get("task_type"), TaskType.MANUAL)
    gates = [Gate.from_config(gate) for gate in config.get("crowds") or []]
    join_operator = _enum_value(JoinOperator, config.get("join_operator"), JoinOperator.AND)
    return task_type, gates, join_operator


class ActivityExecutor(ABC):
    """活动执行器基类"""

    @abstractmethod
    def execute(self, activity: Activity, instance: WorkflowInstance,
                workflow: WorkflowDefinition) -> ActivityOutcome:
        """执行活动"""
        pass

    def after_recorded(self, activity: Activity, instance: WorkflowInstance):
        """活动事件写入之后调用"""
        pass


class EnterActivityExecutor(ActivityExecutor):
    """入口活动"""

    def __init__(self, events: EventRecorder):
        self.events = events

    def execute(self, activity, instance, workflow) -> ActivityOutcome:
        self.events.record(instance.id, EventType.START, "Workflow started")
        return ActivityOutcome.SUCCESS


class ExitActivityExecutor(ActivityExecutor):
    """出口活动：实例完成"""

    def __init__(self, repository: InstanceRepository, events: EventRecorder):
        self.repository = repository
        self.events = events

    def execute(self, activity, instance, workflow) -> ActivityOutcome:
        self.repository.update_instance(
            instance.id,
            status=InstanceStatus.COMPLETE,
            result_code=activity.config.get("result_code"),
            timeout_date=None,
        )
        logger.info(f"Workflow instance {instance.id} completed at activity {activity.id}")
        return ActivityOutcome.SUCCESS

    def after_recorded(self, activity, instance):
        self.events.record(instance.id, EventType.FINISH, "Workflow finished")


class AdjustActivityExecutor(ActivityExecutor):
    """调整活动：更新业务记录状态或实例变量"""

    def __init__(self, variables: VariableUpdater, entity_gateway: EntityGateway = None):
        self.variables = variables
        self.entity_gateway = entity_gateway

    def execute(self, activity, instance, workflow) -> ActivityOutcome:
        config = activity.config
        if not config.get("adjustment_type"):
            logger.warning(f"Adjust activity {activity.id} has no adjustment_type, nothing to do")
            return ActivityOutcome.SUCCESS

        adjustment_type = _enum_value(AdjustmentType, config.get("adjustment_type"))
        try:
            if adjustment_type == AdjustmentType.STATUS:
                status_id = config.get("status_id")
                if not status_id:
                    raise ValueError("status_id is required")
                if self.entity_gateway is None:
                    raise ValueError("No entity gateway configured")
                self.entity_gateway.update_status(
                    workflow.primary_entity,
                    workflow.primary_key_field,
                    instance.primary_key_value,
                    status_id
                )
            else:
                variable_id = config.get("variable_id")
                if not variable_id:
                    raise ValueError("variable_id is required")
                self.variables.update(instance.id, variable_id, config.get("expression"))
        except Exception as e:
            raise ActivityExecutionError(activity.id, str(e), e)

        return ActivityOutcome.SUCCESS


class ConditionActivityExecutor(ActivityExecutor):
    """条件活动"""

    def __init__(self, repository: InstanceRepository, evaluator: ConditionEvaluator,
                 entity_gateway: EntityGateway = None):
        self.repository = repository
        self.evaluator = evaluator
        self.entity_gateway = entity_gateway

    def execute(self, activity, instance, workflow) -> ActivityOutcome:
        config = activity.config
        source = _enum_value(ConditionSource, config.get("condition_source"), ConditionSource.SCRIPT)
        join_operator = _enum_value(JoinOperator, config.get("join_operator"), JoinOperator.AND)
        items = config.get("conditions") or []

        data = ConditionData()
        if source == ConditionSource.FIELD:
            if self.entity_gateway is None:
                raise ValueError("No entity gateway configured")
            data.record = self.entity_gateway.get_record(
                workflow.primary_entity, workflow.primary_key_field, instance.primary_key_value
            )
            for item in items:
                field_name = item.get("field")
                field_type = self.entity_gateway.get_field_type(workflow.primary_entity, field_name)
                if field_type is not None:
                    data.field_types[field_name] = field_type
        else:
            variables = self.repository.list_variables(instance.id)
            data.variables = {variable.variable_id: variable for variable in variables}
            data.environment = variable_environment(variables)

        met = self.evaluator.evaluate(source, items, join_operator, data)
        logger.debug(f"Condition activity {activity.id} of instance {instance.id} evaluated to {met}")
        return ActivityOutcome.SUCCESS if met else ActivityOutcome.FAILURE


class UserActivityExecutor(ActivityExecutor):
    """人工活动：为人群中的每个用户创建任务并设置超时"""

    def __init__(self, repository: InstanceRepository, resolver: CrowdResolver,
                 units: UnitConverter, clock: Callable = utcnow):
        self.repository = repository
        self.resolver = resolver
        self.units = units
        self.clock = clock

    def execute(self, activity, instance, workflow) -> ActivityOutcome:
        config = activity.config
        task_type, gates, _ = user_task_settings(activity)

        existing = self.repository.count_tasks(
            instance_id=instance.id,
            activity_id=activity.id,
            visit_number=instance.visit_number,
        )
        if existing == 0:
            user_ids = self.resolver.resolve_all([gate.crowd for gate in gates], instance)
            if not user_ids:
                logger.warning(f"User activity {activity.id} of instance {instance.id} resolved no users")
            for user_id in user_ids:
                self.repository.create_task(InstanceTask(
                    instance_id=instance.id,
                    activity_id=activity.id,
                    visit_number=instance.visit_number,
                    assigned_user_id=user_id,
                    task_type=task_type.value,
                    variable_id=config.get("variable_id"),
                    status=TaskStatus.PENDING,
                    summary=config.get("summary"),
                    description=config.get("description"),
                ))
            logger.info(f"Created {len(user_ids)} task(s) for activity {activity.id} of instance {instance.id}")

        if activity.timeout_interval and activity.timeout_interval > 0 and activity.timeout_uom:
            minutes = self.units.convert(activity.timeout_interval, activity.timeout_uom, "TF_min")
            self.repository.update_instance(
                instance.id,
                timeout_date=self.clock() + timedelta(minutes=int(minutes))
            )

        return ActivityOutcome.PENDING


class ServiceActivityExecutor(ActivityExecutor):
    """服务活动：调用已注册的外部服务"""

    def __init__(self, services: ServiceRegistry):
        self.services = services

    def execute(self, activity, instance, workflow) -> ActivityOutcome:
        service_name = activity.config.get("service_name")
        if not service_name:
            raise ValueError("service_name is required")

        parameters = dict(activity.config.get("parameters") or {})
        parameters.update(
            instance_id=instance.id,
            workflow_id=workflow.id,
            primary_key_value=instance.primary_key_value,
        )
        try:
            result = self.services.invoke(service_name, parameters)
        except Exception as e:
            raise ActivityExecutionError(activity.id, f"service {service_name} failed: {e}", e)

        if result is False:
            return ActivityOutcome.FAILURE
        return ActivityOutcome.SUCCESS


class NotifyActivityExecutor(ActivityExecutor):
    """通知活动：向人群发送模板消息"""

    def __init__(self, resolver: CrowdResolver, notifier: Notifier, default_template: str):
        self.resolver = resolver
        self.notifier = notifier
        self.default_template = default_template

    def execute(self, activity, instance, workflow) -> ActivityOutcome:
        config = activity.config
        crowd = Crowd.from_config(config)
        notification_type = _enum_value(
            NotificationType, config.get("notification_type"), NotificationType.EMAIL
        )
        template = config.get("template") or self.default_template
        parameters = {
            "message": config.get("message", ""),
            "instance_id": instance.id,
            "notification_type": notification_type.value,
        }

        recipients = self.resolver.resolve_profiles(crowd, instance)
        try:
            for recipient in recipients:
                self.notifier.send_templated_message(recipient, template, parameters)
        except Exception as e:
            raise ActivityExecutionError(activity.id, f"notification failed: {e}", e)

        logger.info(
            f"Sent {notification_type.value} notification '{template}' to {len(recipients)} user(s) "
            f"for instance {instance.id}"
        )
        return ActivityOutcome.SUCCESS


class ActivityDispatcher:
    """按活动类型分发到对应执行器"""

    def __init__(self, executors: Dict[ActivityType, ActivityExecutor], events: EventRecorder):
        missing = [activity_type.value for activity_type in ActivityType if activity_type not in executors]
        if missing:
            raise ValueError(f"No executor registered for activity types: {missing}")
        self.executors = executors
        self.events = events

    def execute(self, activity: Activity, instance: WorkflowInstance,
                workflow: WorkflowDefinition) -> ActivityOutcome:
        executor = self.executors[activity.type]
        try:
            outcome = executor.execute(activity, instance, workflow)
        except (WorkflowEngineError, ValueError, KeyError, TypeError) as e:
            logger.error(
                f"Error executing {activity.label} activity ({activity.id}) "
                f"of workflow instance {instance.id}: {e}"
            )
            self.events.record(
                instance.id,
                EventType.ACTIVITY,
                f"Error executing {activity.label} activity ({activity.id}): {e}",
                was_error=True
            )
            return ActivityOutcome.FAILURE

        self.events.record(
            instance.id, EventType.ACTIVITY, f"Executed {activity.label} activity ({activity.id})"
        )
        executor.after_recorded(activity, instance)
        return outcome
