"""
SQLAlchemy 数据库模型定义
"""
from sqlalchemy import (
    Column, String, Text, Boolean, Integer, DateTime, ForeignKey,
    UniqueConstraint, CheckConstraint, Index, JSON
)
from sqlalchemy.orm import declarative_base
import uuid

from ..utils import utcnow


Base = declarative_base()


def generate_uuid():
    return str(uuid.uuid4())


class WorkflowDefinitionRecord(Base):
    """工作流定义模型"""
    __tablename__ = 'workflow_definitions'

    id = Column(String(64), primary_key=True)
    name = Column(String(255), nullable=False, default="")
    primary_entity = Column(String(255), nullable=False, default="")
    primary_key_field = Column(String(255), nullable=False, default="id")
    disabled = Column(Boolean, nullable=False, default=False)
    definition = Column(JSON, nullable=False)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        Index('idx_workflow_definitions_entity', 'primary_entity'),
    )


class WorkflowInstanceRecord(Base):
    """工作流实例模型"""
    __tablename__ = 'workflow_instances'

    id = Column(String(64), primary_key=True, default=generate_uuid)
    workflow_id = Column(String(64), ForeignKey('workflow_definitions.id'), nullable=False)
    primary_key_value = Column(String(255), nullable=False)
    status = Column(String(20), nullable=False, default='pending')
    activity_id = Column(String(255))
    activity_executed = Column(Boolean, nullable=False, default=False)
    visit_number = Column(Integer, nullable=False, default=0)
    timeout_date = Column(DateTime)
    semaphore = Column(String(255))
    input_user_id = Column(String(255))
    result_code = Column(String(255))
    created_date = Column(DateTime, default=utcnow)
    last_update_date = Column(DateTime, default=utcnow)

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'active', 'suspended', 'complete', 'aborted')",
            name='check_instance_status'
        ),
        Index('idx_workflow_instances_record', 'workflow_id', 'primary_key_value'),
        Index('idx_workflow_instances_status_timeout', 'status', 'timeout_date'),
    )


class InstanceVariableRecord(Base):
    """实例变量模型"""
    __tablename__ = 'workflow_instance_variables'

    instance_id = Column(
        String(64), ForeignKey('workflow_instances.id', ondelete='CASCADE'), primary_key=True
    )
    variable_id = Column(String(255), primary_key=True)
    name = Column(String(255), nullable=False)
    type = Column(String(20), nullable=False, default='text')
    value = Column(Text)

    __table_args__ = (
        CheckConstraint("type IN ('text', 'number')", name='check_variable_type'),
    )


class InstanceTaskRecord(Base):
    """人工任务模型"""
    __tablename__ = 'workflow_instance_tasks'

    id = Column(String(64), primary_key=True, default=generate_uuid)
    instance_id = Column(
        String(64), ForeignKey('workflow_instances.id', ondelete='CASCADE'), nullable=False
    )
    activity_id = Column(String(255), nullable=False)
    visit_number = Column(Integer, nullable=False, default=0)
    assigned_user_id = Column(String(255), nullable=False)
    task_type = Column(String(20), nullable=False, default='manual')
    variable_id = Column(String(255))
    status = Column(String(20), nullable=False, default='pending')
    summary = Column(String(255))
    description = Column(Text)
    remark = Column(Text)
    completion_date = Column(DateTime)
    created_date = Column(DateTime, default=utcnow)

    __table_args__ = (
        UniqueConstraint(
            'instance_id', 'activity_id', 'visit_number', 'assigned_user_id',
            name='unique_task_per_visit_user'
        ),
        Index('idx_instance_tasks_visit', 'instance_id', 'activity_id', 'visit_number'),
        Index('idx_instance_tasks_user_status', 'assigned_user_id', 'status'),
    )


class InstanceEventRecord(Base):
    """审计事件模型"""
    __tablename__ = 'workflow_instance_events'

    sequence_id = Column(Integer, primary_key=True, autoincrement=True)
    id = Column(String(64), nullable=False, unique=True, default=generate_uuid)
    instance_id = Column(
        String(64), ForeignKey('workflow_instances.id', ondelete='CASCADE'), nullable=False
    )
    event_type = Column(String(20), nullable=False)
    source_name = Column(String(255))
    description = Column(Text, nullable=False, default="")
    was_error = Column(Boolean, nullable=False, default=False)
    event_date = Column(DateTime, default=utcnow)

    __table_args__ = (
        Index('idx_instance_events_instance', 'instance_id', 'event_date'),
    )


class UserAccountRecord(Base):
    """用户账户模型"""
    __tablename__ = 'user_accounts'

    id = Column(String(255), primary_key=True)
    username = Column(String(255))
    email = Column(String(255))
    full_name = Column(String(255))


class UserGroupMemberRecord(Base):
    """用户组成员（带有效期）"""
    __tablename__ = 'user_group_members'

    id = Column(Integer, primary_key=True, autoincrement=True)
    group_id = Column(String(255), nullable=False)
    user_id = Column(String(255), ForeignKey('user_accounts.id'), nullable=False)
    from_date = Column(DateTime)
    thru_date = Column(DateTime)

    __table_args__ = (
        Index('idx_user_group_members_group', 'group_id'),
    )
