"""
Pytest 配置和公共 fixtures
"""
import copy
from datetime import date, datetime, timedelta

import pytest

from workflow_orchestrator.config import Settings
from workflow_orchestrator.core.engine import WorkflowEngine
from workflow_orchestrator.core.parser import WorkflowParser
from workflow_orchestrator.integrations import (
    InMemoryEntityGateway,
    InMemoryUserDirectory,
    LocalServiceRegistry,
    RecordingNotifier,
    UserProfile,
)
from workflow_orchestrator.storage.repository import (
    InMemoryInstanceRepository,
    InMemoryWorkflowRepository,
)


FIXED_NOW = datetime(2024, 1, 15, 9, 0, 0)


class FakeClock:
    """可手动推进的时钟"""

    def __init__(self, now: datetime = FIXED_NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)


PURCHASE_APPROVAL = {
    "workflow": {
        "id": "purchase-approval",
        "name": "Purchase approval",
        "primary_entity": "purchase_order",
        "primary_key_field": "id",
        "variables": [
            {"id": "approval_note", "name": "note", "type": "text"},
            {"id": "amount_limit", "name": "limit", "type": "number", "default": 1000},
        ],
        "activities": [
            {"id": "enter", "type": "enter"},
            {
                "id": "check_amount",
                "type": "condition",
                "name": "Check amount",
                "config": {
                    "condition_source": "field",
                    "conditions": [
                        {"field": "amount", "operator": "greater_than_equals", "value": 1000}
                    ],
                },
            },
            {
                "id": "manager_approval",
                "type": "user",
                "name": "Manager approval",
                "config": {
                    "task_type": "approval",
                    "variable_id": "approval_note",
                    "summary": "Approve purchase order",
                    "crowds": [
                        {"crowd_type": "user_group", "user_group_id": "managers", "min_approvals": 1}
                    ],
                },
                "timeout": {"interval": 2, "uom": "TF_day"},
            },
            {"id": "mark_approved", "type": "adjust",
             "config": {"adjustment_type": "status", "status_id": "approved"}},
            {"id": "mark_rejected", "type": "adjust",
             "config": {"adjustment_type": "status", "status_id": "rejected"}},
            {"id": "notify_initiator", "type": "notify",
             "config": {"crowd_type": "initiator", "message": "Your purchase order was approved"}},
            {"id": "finish", "type": "exit", "config": {"result_code": "done"}},
            {"id": "expired", "type": "exit", "config": {"result_code": "timed_out"}},
        ],
        "transitions": [
            {"from": "enter", "to": "check_amount"},
            {"from": "check_amount", "to": "manager_approval"},
            {"from": "check_amount", "port": "failure", "to": "mark_approved"},
            {"from": "manager_approval", "to": "mark_approved"},
            {"from": "manager_approval", "port": "failure", "to": "mark_rejected"},
            {"from": "manager_approval", "port": "timeout", "to": "expired"},
            {"from": "mark_approved", "to": "notify_initiator"},
            {"from": "notify_initiator", "to": "finish"},
            {"from": "mark_rejected", "to": "finish"},
        ],
    }
}


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def directory(clock) -> InMemoryUserDirectory:
    """alice 与 bob 为 managers 成员，carol 属于 finance，dave 为发起人"""
    directory = InMemoryUserDirectory()
    for user_id in ("alice", "bob", "carol", "dave", "erin"):
        directory.add_user(UserProfile(
            user_id=user_id,
            username=user_id,
            email=f"{user_id}@example.com",
            full_name=user_id.capitalize(),
        ))
    directory.add_membership("managers", "alice")
    directory.add_membership("managers", "bob")
    directory.add_membership("finance", "carol")
    # 已过期的成员关系
    directory.add_membership("managers", "erin", thru_date=clock() - timedelta(days=1))
    return directory


@pytest.fixture
def entities() -> InMemoryEntityGateway:
    gateway = InMemoryEntityGateway()
    gateway.add_record("purchase_order", "PO-1", {
        "id": "PO-1", "amount": 1500, "status_id": "draft", "urgent": True,
        "due_date": date(2024, 2, 1), "vendor": "Acme Corp",
    })
    gateway.add_record("purchase_order", "PO-2", {
        "id": "PO-2", "amount": 500, "status_id": "draft", "urgent": False,
        "due_date": date(2024, 1, 10), "vendor": "Globex",
    })
    return gateway


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def services() -> LocalServiceRegistry:
    return LocalServiceRegistry()


@pytest.fixture
def workflow_repository() -> InMemoryWorkflowRepository:
    return InMemoryWorkflowRepository()


@pytest.fixture
def instance_repository() -> InMemoryInstanceRepository:
    return InMemoryInstanceRepository()


@pytest.fixture
def settings() -> Settings:
    return Settings(database_url="sqlite://", worker_id="worker-a")


@pytest.fixture
def engine(workflow_repository, instance_repository, directory, entities, notifier,
           services, settings, clock) -> WorkflowEngine:
    """使用内存存储与固定时钟的引擎"""
    return WorkflowEngine(
        workflow_repository=workflow_repository,
        instance_repository=instance_repository,
        directory=directory,
        entity_gateway=entities,
        notifier=notifier,
        service_registry=services,
        settings=settings,
        clock=clock,
    )


@pytest.fixture
def purchase_document() -> dict:
    return copy.deepcopy(PURCHASE_APPROVAL)


@pytest.fixture
def load_workflow(workflow_repository):
    """解析并保存工作流定义"""
    parser = WorkflowParser()

    def _load(document):
        workflow = parser.parse(document)
        workflow_repository.save(workflow)
        return workflow

    return _load


@pytest.fixture
def purchase_workflow(load_workflow, purchase_document):
    return load_workflow(purchase_document)
