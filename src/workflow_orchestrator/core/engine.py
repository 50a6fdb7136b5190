"""
工作流实例执行引擎
"""
import logging
from typing import Callable, List, Optional, Tuple, Union

from ..config import Settings
from ..exceptions import (
    DuplicateInstanceError,
    EntityNotFoundError,
    InstanceNotFoundError,
    InstanceStateError,
    TaskAccessDeniedError,
    TaskNotFoundError,
    VariableNotFoundError,
    WorkflowDisabledError,
    WorkflowNotFoundError,
    WorkflowValidationError,
)
from ..integrations.directory import UserDirectory
from ..integrations.entities import EntityGateway
from ..integrations.notifications import LoggingNotifier, Notifier
from ..integrations.services import LocalServiceRegistry, ServiceRegistry
from ..integrations.units import TimeUnitConverter, UnitConverter
from ..models.instance import (
    COMPLETED_TASK_STATUSES,
    OPEN_INSTANCE_STATUSES,
    OPEN_TASK_STATUSES,
    EventType,
    InstanceEvent,
    InstanceStatus,
    InstanceTask,
    InstanceVariable,
    TaskStatus,
    WorkflowInstance,
)
from ..models.workflow import (
    Activity,
    ActivityType,
    PortType,
    TaskType,
    Transition,
    WorkflowDefinition,
)
from ..storage.repository import InstanceRepository, WorkflowRepository
from ..utils import is_blank, utcnow
from .activities import (
    ActivityDispatcher,
    ActivityOutcome,
    AdjustActivityExecutor,
    ConditionActivityExecutor,
    EnterActivityExecutor,
    ExitActivityExecutor,
    NotifyActivityExecutor,
    ServiceActivityExecutor,
    UserActivityExecutor,
    user_task_settings,
)
from .conditions import ConditionEvaluator
from .crowds import CrowdResolver, QuorumEvaluator
from .events import EventRecorder
from .expression import ExpressionEvaluator
from .lock import ExecutionLock
from .scanner import TimeoutScanner
from .transitions import TransitionResolver
from .variables import VariableUpdater, format_value


logger = logging.getLogger(__name__)


# 单次运行最多跳转的活动数，防止畸形的环路无限执行
MAX_STEPS_PER_RUN = 1000


class WorkflowEngine:
    """工作流实例执行引擎"""

    def __init__(
        self,
        workflow_repository: WorkflowRepository,
        instance_repository: InstanceRepository,
        directory: UserDirectory,
        entity_gateway: EntityGateway = None,
        notifier: Notifier = None,
        unit_converter: UnitConverter = None,
        service_registry: ServiceRegistry = None,
        settings: Settings = None,
        worker_id: str = None,
        clock: Callable = utcnow,
        expression_evaluator: ExpressionEvaluator = None
    ):
        self.settings = settings or Settings()
        self.worker_id = worker_id or self.settings.worker_id
        self.clock = clock

        self.workflow_repository = workflow_repository
        self.instance_repository = instance_repository
        self.directory = directory
        self.entity_gateway = entity_gateway
        self.notifier = notifier or LoggingNotifier()
        self.unit_converter = unit_converter or TimeUnitConverter()
        self.service_registry = service_registry or LocalServiceRegistry()

        self.expressions = expression_evaluator or ExpressionEvaluator()
        self.events = EventRecorder(instance_repository, self.worker_id)
        self.lock = ExecutionLock(instance_repository, self.worker_id)
        self.variables = VariableUpdater(instance_repository, self.expressions)
        self.resolver = CrowdResolver(directory, clock)
        self.quorum = QuorumEvaluator(self.resolver, instance_repository)
        self.transitions = TransitionResolver()

        # 注册活动执行器
        self.dispatcher = ActivityDispatcher({
            ActivityType.ENTER: EnterActivityExecutor(self.events),
            ActivityType.EXIT: ExitActivityExecutor(instance_repository, self.events),
            ActivityType.ADJUST: AdjustActivityExecutor(self.variables, entity_gateway),
            ActivityType.CONDITION: ConditionActivityExecutor(
                instance_repository, ConditionEvaluator(self.expressions), entity_gateway
            ),
            ActivityType.USER: UserActivityExecutor(
                instance_repository, self.resolver, self.unit_converter, clock
            ),
            ActivityType.SERVICE: ServiceActivityExecutor(self.service_registry),
            ActivityType.NOTIFY: NotifyActivityExecutor(
                self.resolver, self.notifier, self.settings.notification_template
            ),
        }, self.events)

    # 实例生命周期

    def create_instance(self, workflow_id: str, primary_key_value: str,
                        input_user_id: str = None) -> str:
        """为业务记录创建工作流实例（PENDING）"""
        if is_blank(workflow_id):
            raise WorkflowValidationError("workflow_id is required")
        if is_blank(primary_key_value):
            raise WorkflowValidationError("primary_key_value is required")

        workflow = self._get_workflow(workflow_id)

        if self.entity_gateway is not None and workflow.primary_entity:
            record = self.entity_gateway.get_record(
                workflow.primary_entity, workflow.primary_key_field, primary_key_value
            )
            if record is None:
                raise EntityNotFoundError(workflow.primary_entity, primary_key_value)

        existing = self.instance_repository.find_instances(
            workflow_id=workflow_id,
            primary_key_value=primary_key_value,
            statuses=OPEN_INSTANCE_STATUSES,
            limit=1
        )
        if existing:
            raise DuplicateInstanceError(workflow_id, primary_key_value, existing[0].id)

        instance = WorkflowInstance(
            workflow_id=workflow_id,
            primary_key_value=str(primary_key_value),
            status=InstanceStatus.PENDING,
            input_user_id=input_user_id,
        )
        self.instance_repository.create_instance(instance)

        # 按定义默认值初始化实例变量
        for definition in workflow.variables:
            self.instance_repository.create_variable(InstanceVariable(
                instance_id=instance.id,
                variable_id=definition.id,
                name=definition.name,
                type=definition.type.value,
                value=definition.default_value,
            ))

        logger.info(
            f"Created workflow instance {instance.id} of {workflow_id} for record {primary_key_value}"
        )
        return instance.id

    def start(self, instance_id: str) -> Optional[WorkflowInstance]:
        """推进实例直到阻塞或结束；未获得执行锁时返回 None"""
        instance, workflow = self._load_operable(instance_id, "start")

        if instance.status == InstanceStatus.SUSPENDED:
            logger.info(f"Workflow instance {instance_id} is suspended, not advancing")
            return instance

        if not instance.activity_id and workflow.get_enter_activity() is None:
            raise WorkflowValidationError(f"Workflow {workflow.id} has no enter activity")

        with self.lock.hold(instance_id) as locked:
            if locked is None:
                return None
            if locked.status in (InstanceStatus.PENDING, InstanceStatus.ACTIVE):
                self._run(locked, workflow)
            else:
                logger.info(
                    f"Workflow instance {instance_id} changed to {locked.status.value} before "
                    f"acquiring the lock, not advancing"
                )

        return self.instance_repository.get_instance(instance_id)

    def suspend(self, instance_id: str) -> bool:
        """暂停实例"""
        return self._change_status(
            instance_id, "suspend",
            allowed=(InstanceStatus.PENDING, InstanceStatus.ACTIVE),
            target=InstanceStatus.SUSPENDED,
            event_type=EventType.SUSPEND,
            description="Workflow suspended"
        )

    def resume(self, instance_id: str) -> bool:
        """恢复已暂停的实例"""
        return self._change_status(
            instance_id, "resume",
            allowed=(InstanceStatus.SUSPENDED,),
            target=InstanceStatus.ACTIVE,
            event_type=EventType.RESUME,
            description="Workflow resumed"
        )

    def abort(self, instance_id: str) -> bool:
        """终止实例，未完成的任务作废"""
        return self._change_status(
            instance_id, "abort",
            allowed=OPEN_INSTANCE_STATUSES,
            target=InstanceStatus.ABORTED,
            event_type=EventType.FINISH,
            description="Workflow aborted"
        )

    def sweep_elapsed_instances(self) -> int:
        """重新启动超时已到期的实例"""
        return TimeoutScanner(self).sweep()

    # 变量与任务

    def update_instance_variable(self, instance_id: str, variable_id: str,
                                 expression: str) -> InstanceVariable:
        """对表达式求值并写入实例变量，求值失败时抛出 ExpressionError"""
        if is_blank(instance_id):
            raise WorkflowValidationError("instance_id is required")
        if is_blank(variable_id):
            raise WorkflowValidationError("variable_id is required")
        if is_blank(expression):
            raise WorkflowValidationError("expression is required")

        if self.instance_repository.get_instance(instance_id) is None:
            raise InstanceNotFoundError(instance_id)
        return self.variables.update(instance_id, variable_id, expression)

    def update_task(
        self,
        task_id: str,
        status: Union[TaskStatus, str],
        value: str = None,
        remark: str = None,
        user_id: str = None,
        advance: bool = True
    ) -> InstanceTask:
        """更新人工任务；任务完成时默认继续推进实例"""
        if is_blank(task_id):
            raise WorkflowValidationError("task_id is required")
        status = self._task_status(status)

        task = self.instance_repository.get_task(task_id)
        if task is None:
            raise TaskNotFoundError(task_id)
        if user_id is not None and task.assigned_user_id != user_id:
            raise TaskAccessDeniedError(task_id, user_id)
        if task.status not in OPEN_TASK_STATUSES:
            raise WorkflowValidationError(f"Task {task_id} is already {task.status.value}")

        if not is_blank(value):
            self._capture_task_value(task, value)

        changes = {"status": status}
        if remark is not None:
            changes["remark"] = remark
        if status in COMPLETED_TASK_STATUSES:
            changes["completion_date"] = self.clock()
        task = self.instance_repository.update_task(task_id, **changes)
        logger.info(f"Task {task_id} of workflow instance {task.instance_id} set to {status.value}")

        if advance and status in COMPLETED_TASK_STATUSES:
            self._advance_after_task(task)
        return task

    # 查询

    def get_instance(self, instance_id: str) -> WorkflowInstance:
        instance = self.instance_repository.get_instance(instance_id)
        if instance is None:
            raise InstanceNotFoundError(instance_id)
        return instance

    def list_variables(self, instance_id: str) -> List[InstanceVariable]:
        self.get_instance(instance_id)
        return self.instance_repository.list_variables(instance_id)

    def list_events(self, instance_id: str) -> List[InstanceEvent]:
        self.get_instance(instance_id)
        return self.instance_repository.list_events(instance_id)

    def find_tasks(self, user_id: str = None, statuses: List[TaskStatus] = None,
                   instance_id: str = None, offset: int = 0, limit: int = 100) -> List[InstanceTask]:
        """任务收件箱"""
        return self.instance_repository.find_tasks(
            instance_id=instance_id,
            statuses=statuses,
            user_ids=[user_id] if user_id else None,
            offset=offset,
            limit=limit
        )

    def count_tasks(self, user_id: str = None, statuses: List[TaskStatus] = None,
                    instance_id: str = None) -> int:
        """统计收件箱任务数"""
        return self.instance_repository.count_tasks(
            instance_id=instance_id,
            statuses=statuses,
            user_ids=[user_id] if user_id else None
        )

    def set_workflow_disabled(self, workflow_id: str, disabled: bool = True) -> WorkflowDefinition:
        """禁用或重新启用工作流定义，禁用后不能创建或推进实例"""
        workflow = self.workflow_repository.get(workflow_id)
        if workflow is None:
            raise WorkflowNotFoundError(workflow_id)
        workflow.disabled = disabled
        self.workflow_repository.save(workflow)
        logger.info(f"Workflow {workflow_id} {'disabled' if disabled else 'enabled'}")
        return workflow

    # 执行循环

    def _run(self, instance: WorkflowInstance, workflow: WorkflowDefinition):
        """执行循环：分发当前活动并沿转移前进，直到没有可走的转移"""
        if not instance.activity_id:
            enter = workflow.get_enter_activity()
            instance = self.instance_repository.update_instance(
                instance.id,
                activity_id=enter.id,
                activity_executed=False,
                status=InstanceStatus.ACTIVE
            )
        elif instance.status != InstanceStatus.ACTIVE:
            instance = self.instance_repository.update_instance(instance.id, status=InstanceStatus.ACTIVE)

        for _ in range(MAX_STEPS_PER_RUN):
            activity = workflow.get_activity(instance.activity_id)
            if activity is None:
                logger.error(
                    f"Activity {instance.activity_id} not found in workflow {workflow.id}; "
                    f"instance {instance.id} may be stuck"
                )
                return

            outcome = None
            if not instance.activity_executed:
                outcome = self.dispatcher.execute(activity, instance, workflow)
                instance = self.instance_repository.update_instance(instance.id, activity_executed=True)

            if activity.type == ActivityType.EXIT:
                return

            port = self._resolve_port(activity, instance, outcome)
            if port is None:
                return

            transition = self.transitions.resolve(workflow, activity, port)
            if transition is None:
                return

            instance = self._follow(workflow, activity, instance, transition, port)

        logger.error(
            f"Workflow instance {instance.id} exceeded {MAX_STEPS_PER_RUN} steps in one run, "
            f"stopping at activity {instance.activity_id}"
        )

    def _resolve_port(self, activity: Activity, instance: WorkflowInstance,
                      outcome: Optional[ActivityOutcome]) -> Optional[PortType]:
        """根据活动类型确定出口端口，None 表示停在当前活动"""
        if activity.type == ActivityType.USER and outcome != ActivityOutcome.FAILURE:
            return self._user_port(activity, instance)

        if outcome == ActivityOutcome.SUCCESS:
            return PortType.SUCCESS
        if outcome == ActivityOutcome.FAILURE:
            return PortType.FAILURE

        logger.error(
            f"{activity.label} activity ({activity.id}) of instance {instance.id} was already "
            f"executed but has no outcome; instance may be stuck"
        )
        return None

    def _user_port(self, activity: Activity, instance: WorkflowInstance) -> Optional[PortType]:
        """人工活动：超时优先，其次审批法定人数或任务全部关闭"""
        if instance.timeout_date is not None and instance.timeout_date < self.clock():
            logger.info(f"User activity {activity.id} of instance {instance.id} timed out")
            return PortType.TIMEOUT

        try:
            task_type, gates, join_operator = user_task_settings(activity)
        except ValueError as e:
            logger.error(f"Invalid configuration of user activity {activity.id}: {e}")
            return None

        if task_type == TaskType.APPROVAL:
            return self.quorum.evaluate(gates, join_operator, instance)
        if self.quorum.all_tasks_closed(instance):
            return PortType.SUCCESS
        return None

    def _follow(self, workflow: WorkflowDefinition, activity: Activity, instance: WorkflowInstance,
                transition: Transition, port: PortType) -> WorkflowInstance:
        """沿转移前进到下一个活动"""
        if activity.type == ActivityType.USER:
            self._obsolete_open_tasks(instance, activity_id=activity.id, visit_number=instance.visit_number)

        instance = self.instance_repository.update_instance(
            instance.id,
            activity_id=transition.to_activity_id,
            activity_executed=False,
            visit_number=instance.visit_number + 1,
            timeout_date=None
        )
        self.events.record(
            instance.id,
            EventType.TRANSITION,
            self.transitions.describe(workflow, activity, transition, port)
        )
        return instance

    # 内部方法

    def _change_status(self, instance_id: str, operation: str, allowed: Tuple[InstanceStatus, ...],
                       target: InstanceStatus, event_type: EventType, description: str) -> bool:
        instance, _ = self._load_operable(instance_id, operation)
        if instance.status not in allowed:
            raise InstanceStateError(instance_id, instance.status.value, operation)

        with self.lock.hold(instance_id) as locked:
            if locked is None:
                return False
            if locked.status not in allowed:
                raise InstanceStateError(instance_id, locked.status.value, operation)

            self.instance_repository.update_instance(instance_id, status=target)
            if target == InstanceStatus.ABORTED:
                self._obsolete_open_tasks(locked)
            self.events.record(instance_id, event_type, description)

        logger.info(f"Workflow instance {instance_id} {target.value}")
        return True

    def _load_operable(self, instance_id: str, operation: str) -> Tuple[WorkflowInstance, WorkflowDefinition]:
        """校验实例可操作并返回实例与定义"""
        if is_blank(instance_id):
            raise WorkflowValidationError("instance_id is required")
        instance = self.instance_repository.get_instance(instance_id)
        if instance is None:
            raise InstanceNotFoundError(instance_id)
        if instance.is_final():
            raise InstanceStateError(instance_id, instance.status.value, operation)
        return instance, self._get_workflow(instance.workflow_id)

    def _get_workflow(self, workflow_id: str) -> WorkflowDefinition:
        workflow = self.workflow_repository.get(workflow_id)
        if workflow is None:
            raise WorkflowNotFoundError(workflow_id)
        if workflow.disabled:
            raise WorkflowDisabledError(workflow_id)
        return workflow

    def _obsolete_open_tasks(self, instance: WorkflowInstance, activity_id: str = None,
                             visit_number: int = None):
        tasks = self.instance_repository.find_tasks(
            instance_id=instance.id,
            activity_id=activity_id,
            visit_number=visit_number,
            statuses=OPEN_TASK_STATUSES
        )
        for task in tasks:
            self.instance_repository.update_task(task.id, status=TaskStatus.OBSOLETE)
        if tasks:
            logger.debug(f"Marked {len(tasks)} task(s) of instance {instance.id} obsolete")

    def _task_status(self, status: Union[TaskStatus, str]) -> TaskStatus:
        if isinstance(status, TaskStatus):
            task_status = status
        else:
            try:
                task_status = TaskStatus(str(status or "").lower())
            except ValueError:
                raise WorkflowValidationError(f"Unknown task status '{status}'")
        if task_status == TaskStatus.OBSOLETE:
            raise WorkflowValidationError("Tasks cannot be marked obsolete directly")
        return task_status

    def _capture_task_value(self, task: InstanceTask, value: str):
        """将任务提交的值写入任务关联的实例变量"""
        if not task.variable_id:
            logger.warning(f"Task {task.id} has no variable, ignoring submitted value")
            return
        variable = self.instance_repository.get_variable(task.instance_id, task.variable_id)
        if variable is None:
            raise VariableNotFoundError(task.instance_id, task.variable_id)
        try:
            formatted = format_value(value, variable.type)
        except ValueError as e:
            raise WorkflowValidationError(f"Invalid value for variable {task.variable_id}: {e}")
        self.instance_repository.update_variable(task.instance_id, task.variable_id, formatted)

    def _advance_after_task(self, task: InstanceTask):
        instance = self.instance_repository.get_instance(task.instance_id)
        if instance is None or instance.status != InstanceStatus.ACTIVE:
            return
        try:
            self.start(instance.id)
        except WorkflowValidationError as e:
            logger.warning(f"Could not advance workflow instance {instance.id} after task {task.id}: {e}")
