"""
SQLAlchemy 仓库实现
"""
import logging
from typing import Optional, List, Iterable
from datetime import datetime
from contextlib import contextmanager

from sqlalchemy import create_engine, select, func, or_
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool

from ..exceptions import InstanceNotFoundError, TaskNotFoundError, VariableNotFoundError
from ..core.parser import WorkflowParser
from ..integrations.directory import UserDirectory, UserProfile
from ..models.workflow import WorkflowDefinition
from ..models.instance import (
    WorkflowInstance,
    InstanceStatus,
    InstanceVariable,
    InstanceTask,
    TaskStatus,
    InstanceEvent,
    EventType,
)
from ..utils import utcnow
from .repository import WorkflowRepository, InstanceRepository
from .sqlalchemy_models import (
    Base,
    WorkflowDefinitionRecord,
    WorkflowInstanceRecord,
    InstanceVariableRecord,
    InstanceTaskRecord,
    InstanceEventRecord,
    UserAccountRecord,
    UserGroupMemberRecord,
)


logger = logging.getLogger(__name__)


class DatabaseManager:
    """数据库管理器"""

    def __init__(self, database_url: str):
        self.database_url = database_url
        self.engine: Optional[Engine] = None
        self.session_maker = None

    def initialize(self, create_tables: bool = True):
        """初始化数据库连接"""
        options = {"echo": False, "pool_pre_ping": True}
        if self.database_url.startswith("sqlite"):
            options["connect_args"] = {"check_same_thread": False}
            if self.database_url in ("sqlite://", "sqlite:///:memory:"):
                # 内存库需要共享同一个连接
                options["poolclass"] = StaticPool

        self.engine = create_engine(self.database_url, **options)
        self.session_maker = sessionmaker(self.engine, expire_on_commit=False)

        if create_tables:
            Base.metadata.create_all(self.engine)
        logger.info(f"Database initialized: {self.engine.url.render_as_string(hide_password=True)}")

    def close(self):
        """关闭数据库连接"""
        if self.engine:
            self.engine.dispose()

    @contextmanager
    def get_session(self) -> Session:
        """获取数据库会话（退出时提交，异常时回滚）"""
        session = self.session_maker()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()


class SQLAlchemyWorkflowRepository(WorkflowRepository):
    """SQLAlchemy 工作流定义仓库实现"""

    def __init__(self, db_manager: DatabaseManager):
        self.db = db_manager
        self.parser = WorkflowParser()

    def save(self, workflow: WorkflowDefinition) -> str:
        with self.db.get_session() as session:
            record = session.get(WorkflowDefinitionRecord, workflow.id)
            if record is None:
                record = WorkflowDefinitionRecord(id=workflow.id)
                session.add(record)
            record.name = workflow.name
            record.primary_entity = workflow.primary_entity
            record.primary_key_field = workflow.primary_key_field
            record.disabled = workflow.disabled
            record.definition = self.parser.to_dict(workflow)
            record.updated_at = utcnow()
            return workflow.id

    def get(self, workflow_id: str) -> Optional[WorkflowDefinition]:
        with self.db.get_session() as session:
            record = session.get(WorkflowDefinitionRecord, workflow_id)
            if record is None:
                return None
            return self._record_to_workflow(record)

    def list(self, offset: int = 0, limit: int = 100) -> List[WorkflowDefinition]:
        with self.db.get_session() as session:
            records = session.execute(
                select(WorkflowDefinitionRecord)
                .order_by(WorkflowDefinitionRecord.created_at)
                .offset(offset)
                .limit(limit)
            ).scalars().all()
            return [self._record_to_workflow(record) for record in records]

    def delete(self, workflow_id: str) -> bool:
        with self.db.get_session() as session:
            record = session.get(WorkflowDefinitionRecord, workflow_id)
            if record is None:
                return False
            session.delete(record)
            return True

    def _record_to_workflow(self, record: WorkflowDefinitionRecord) -> WorkflowDefinition:
        workflow = self.parser.parse_dict(record.definition)
        # 表字段优先（禁用标志可单独修改）
        workflow.disabled = record.disabled
        workflow.created_at = record.created_at
        workflow.updated_at = record.updated_at
        return workflow


class SQLAlchemyInstanceRepository(InstanceRepository):
    """SQLAlchemy 实例仓库实现"""

    def __init__(self, db_manager: DatabaseManager):
        self.db = db_manager

    def create_instance(self, instance: WorkflowInstance) -> str:
        with self.db.get_session() as session:
            session.add(WorkflowInstanceRecord(
                id=instance.id,
                workflow_id=instance.workflow_id,
                primary_key_value=instance.primary_key_value,
                status=instance.status.value,
                activity_id=instance.activity_id,
                activity_executed=instance.activity_executed,
                visit_number=instance.visit_number,
                timeout_date=instance.timeout_date,
                semaphore=instance.semaphore,
                input_user_id=instance.input_user_id,
                result_code=instance.result_code,
                created_date=instance.created_date,
                last_update_date=instance.last_update_date,
            ))
            return instance.id

    def get_instance(self, instance_id: str) -> Optional[WorkflowInstance]:
        with self.db.get_session() as session:
            record = session.get(WorkflowInstanceRecord, instance_id)
            return _record_to_instance(record) if record else None

    def update_instance(self, instance_id: str, **changes) -> WorkflowInstance:
        with self.db.get_session() as session:
            record = session.get(WorkflowInstanceRecord, instance_id)
            if record is None:
                raise InstanceNotFoundError(instance_id)
            for key, value in changes.items():
                if not hasattr(record, key):
                    raise AttributeError(f"WorkflowInstance has no field '{key}'")
                if key == "status" and isinstance(value, InstanceStatus):
                    value = value.value
                setattr(record, key, value)
            record.last_update_date = utcnow()
            session.flush()
            session.refresh(record)
            return _record_to_instance(record)

    def find_instances(
        self,
        workflow_id: str = None,
        primary_key_value: str = None,
        statuses: Iterable[InstanceStatus] = None,
        timeout_before: datetime = None,
        offset: int = 0,
        limit: int = 100
    ) -> List[WorkflowInstance]:
        query = select(WorkflowInstanceRecord)
        if workflow_id is not None:
            query = query.where(WorkflowInstanceRecord.workflow_id == workflow_id)
        if primary_key_value is not None:
            query = query.where(WorkflowInstanceRecord.primary_key_value == primary_key_value)
        if statuses is not None:
            query = query.where(WorkflowInstanceRecord.status.in_([s.value for s in statuses]))
        if timeout_before is not None:
            query = query.where(
                WorkflowInstanceRecord.timeout_date.is_not(None),
                WorkflowInstanceRecord.timeout_date < timeout_before
            )
        query = query.order_by(WorkflowInstanceRecord.created_date).offset(offset).limit(limit)

        with self.db.get_session() as session:
            return [_record_to_instance(record) for record in session.execute(query).scalars()]

    def create_variable(self, variable: InstanceVariable):
        with self.db.get_session() as session:
            session.add(InstanceVariableRecord(
                instance_id=variable.instance_id,
                variable_id=variable.variable_id,
                name=variable.name,
                type=variable.type,
                value=variable.value,
            ))

    def get_variable(self, instance_id: str, variable_id: str) -> Optional[InstanceVariable]:
        with self.db.get_session() as session:
            record = session.get(InstanceVariableRecord, (instance_id, variable_id))
            return _record_to_variable(record) if record else None

    def list_variables(self, instance_id: str) -> List[InstanceVariable]:
        with self.db.get_session() as session:
            records = session.execute(
                select(InstanceVariableRecord).where(InstanceVariableRecord.instance_id == instance_id)
            ).scalars()
            return [_record_to_variable(record) for record in records]

    def update_variable(self, instance_id: str, variable_id: str,
                        value: Optional[str]) -> InstanceVariable:
        with self.db.get_session() as session:
            record = session.get(InstanceVariableRecord, (instance_id, variable_id))
            if record is None:
                raise VariableNotFoundError(instance_id, variable_id)
            record.value = value
            session.flush()
            return _record_to_variable(record)

    def create_task(self, task: InstanceTask) -> str:
        with self.db.get_session() as session:
            session.add(InstanceTaskRecord(
                id=task.id,
                instance_id=task.instance_id,
                activity_id=task.activity_id,
                visit_number=task.visit_number,
                assigned_user_id=task.assigned_user_id,
                task_type=task.task_type,
                variable_id=task.variable_id,
                status=task.status.value,
                summary=task.summary,
                description=task.description,
                remark=task.remark,
                completion_date=task.completion_date,
                created_date=task.created_date,
            ))
            return task.id

    def get_task(self, task_id: str) -> Optional[InstanceTask]:
        with self.db.get_session() as session:
            record = session.get(InstanceTaskRecord, task_id)
            return _record_to_task(record) if record else None

    def update_task(self, task_id: str, **changes) -> InstanceTask:
        with self.db.get_session() as session:
            record = session.get(InstanceTaskRecord, task_id)
            if record is None:
                raise TaskNotFoundError(task_id)
            for key, value in changes.items():
                if not hasattr(record, key):
                    raise AttributeError(f"InstanceTask has no field '{key}'")
                if key == "status" and isinstance(value, TaskStatus):
                    value = value.value
                setattr(record, key, value)
            session.flush()
            return _record_to_task(record)

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
        query = self._task_query(
            select(InstanceTaskRecord), instance_id, activity_id, visit_number, statuses, user_ids
        ).order_by(InstanceTaskRecord.created_date).offset(offset)
        if limit is not None:
            query = query.limit(limit)

        with self.db.get_session() as session:
            return [_record_to_task(record) for record in session.execute(query).scalars()]

    def count_tasks(
        self,
        instance_id: str = None,
        activity_id: str = None,
        visit_number: int = None,
        statuses: Iterable[TaskStatus] = None,
        user_ids: Iterable[str] = None
    ) -> int:
        query = self._task_query(
            select(func.count()).select_from(InstanceTaskRecord),
            instance_id, activity_id, visit_number, statuses, user_ids
        )
        with self.db.get_session() as session:
            return session.execute(query).scalar_one()

    def _task_query(self, query, instance_id, activity_id, visit_number, statuses, user_ids):
        """拼接任务过滤条件"""
        if instance_id is not None:
            query = query.where(InstanceTaskRecord.instance_id == instance_id)
        if activity_id is not None:
            query = query.where(InstanceTaskRecord.activity_id == activity_id)
        if visit_number is not None:
            query = query.where(InstanceTaskRecord.visit_number == visit_number)
        if statuses is not None:
            query = query.where(InstanceTaskRecord.status.in_([s.value for s in statuses]))
        if user_ids is not None:
            query = query.where(InstanceTaskRecord.assigned_user_id.in_(list(user_ids)))
        return query

    def record_event(self, event: InstanceEvent) -> str:
        with self.db.get_session() as session:
            session.add(InstanceEventRecord(
                id=event.id,
                instance_id=event.instance_id,
                event_type=event.event_type.value,
                source_name=event.source_name,
                description=event.description,
                was_error=event.was_error,
                event_date=event.event_date,
            ))
            return event.id

    def list_events(self, instance_id: str) -> List[InstanceEvent]:
        with self.db.get_session() as session:
            records = session.execute(
                select(InstanceEventRecord)
                .where(InstanceEventRecord.instance_id == instance_id)
                .order_by(InstanceEventRecord.sequence_id)
            ).scalars()
            return [
                InstanceEvent(
                    id=record.id,
                    instance_id=record.instance_id,
                    event_type=EventType(record.event_type),
                    source_name=record.source_name,
                    description=record.description,
                    was_error=record.was_error,
                    event_date=record.event_date,
                )
                for record in records
            ]


class SQLAlchemyUserDirectory(UserDirectory):
    """基于用户表与用户组成员表的目录实现"""

    def __init__(self, db_manager: DatabaseManager):
        self.db = db_manager

    def get_user(self, user_id: str) -> Optional[UserProfile]:
        with self.db.get_session() as session:
            record = session.get(UserAccountRecord, user_id)
            if record is None:
                return None
            return UserProfile(
                user_id=record.id,
                username=record.username,
                email=record.email,
                full_name=record.full_name,
            )

    def get_group_member_ids(self, group_id: str, at: datetime = None) -> List[str]:
        at = at or utcnow()
        query = (
            select(UserGroupMemberRecord.user_id)
            .where(UserGroupMemberRecord.group_id == group_id)
            .where(or_(UserGroupMemberRecord.from_date.is_(None), UserGroupMemberRecord.from_date <= at))
            .where(or_(UserGroupMemberRecord.thru_date.is_(None), UserGroupMemberRecord.thru_date >= at))
            .order_by(UserGroupMemberRecord.id)
        )
        with self.db.get_session() as session:
            return list(dict.fromkeys(session.execute(query).scalars()))

    def add_user(self, profile: UserProfile):
        """新增或更新用户"""
        with self.db.get_session() as session:
            session.merge(UserAccountRecord(
                id=profile.user_id,
                username=profile.username,
                email=profile.email,
                full_name=profile.full_name,
            ))

    def add_membership(self, group_id: str, user_id: str,
                       from_date: datetime = None, thru_date: datetime = None):
        """新增用户组成员关系"""
        with self.db.get_session() as session:
            session.add(UserGroupMemberRecord(
                group_id=group_id,
                user_id=user_id,
                from_date=from_date,
                thru_date=thru_date,
            ))


def _record_to_instance(record: WorkflowInstanceRecord) -> WorkflowInstance:
    return WorkflowInstance(
        id=record.id,
        workflow_id=record.workflow_id,
        primary_key_value=record.primary_key_value,
        status=InstanceStatus(record.status),
        activity_id=record.activity_id,
        activity_executed=bool(record.activity_executed),
        visit_number=record.visit_number or 0,
        timeout_date=record.timeout_date,
        semaphore=record.semaphore,
        input_user_id=record.input_user_id,
        result_code=record.result_code,
        created_date=record.created_date,
        last_update_date=record.last_update_date,
    )


def _record_to_variable(record: InstanceVariableRecord) -> InstanceVariable:
    return InstanceVariable(
        instance_id=record.instance_id,
        variable_id=record.variable_id,
        name=record.name,
        type=record.type,
        value=record.value,
    )


def _record_to_task(record: InstanceTaskRecord) -> InstanceTask:
    return InstanceTask(
        id=record.id,
        instance_id=record.instance_id,
        activity_id=record.activity_id,
        visit_number=record.visit_number or 0,
        assigned_user_id=record.assigned_user_id,
        task_type=record.task_type,
        variable_id=record.variable_id,
        status=TaskStatus(record.status),
        summary=record.summary,
        description=record.description,
        remark=record.remark,
        completion_date=record.completion_date,
        created_date=record.created_date,
    )
