"""
执行引擎测试
"""
import logging
from datetime import timedelta

import pytest

from workflow_orchestrator.core.activities import ActivityExecutor
from workflow_orchestrator.core.engine import WorkflowEngine
from workflow_orchestrator.exceptions import (
    DuplicateInstanceError,
    EntityNotFoundError,
    ExpressionError,
    InstanceNotFoundError,
    InstanceStateError,
    TaskAccessDeniedError,
    TaskNotFoundError,
    VariableNotFoundError,
    WorkflowDisabledError,
    WorkflowNotFoundError,
    WorkflowValidationError,
)
from workflow_orchestrator.models.instance import EventType, InstanceStatus, TaskStatus
from workflow_orchestrator.storage.repository import InMemoryInstanceRepository

from .conftest import FIXED_NOW


def _task_for(engine, instance_id, user_id):
    tasks = engine.find_tasks(user_id=user_id, instance_id=instance_id)
    assert len(tasks) == 1
    return tasks[0]


@pytest.fixture
def waiting_instance(engine, purchase_workflow):
    """已停在经理审批活动的实例"""
    instance_id = engine.create_instance("purchase-approval", "PO-1", input_user_id="dave")
    engine.start(instance_id)
    return instance_id


class TestCreateInstance:
    """创建实例测试"""

    def test_create_initializes_pending_instance_and_variables(self, engine, purchase_workflow):
        instance_id = engine.create_instance("purchase-approval", "PO-1", input_user_id="dave")

        instance = engine.get_instance(instance_id)
        assert instance.status == InstanceStatus.PENDING
        assert instance.activity_id is None
        assert instance.input_user_id == "dave"

        variables = {v.variable_id: v for v in engine.list_variables(instance_id)}
        assert variables["amount_limit"].value == "1000"
        assert variables["amount_limit"].type == "number"
        assert variables["approval_note"].value is None

    def test_blank_primary_key_is_rejected(self, engine, purchase_workflow):
        with pytest.raises(WorkflowValidationError):
            engine.create_instance("purchase-approval", "  ")

    def test_unknown_workflow_is_rejected(self, engine):
        with pytest.raises(WorkflowNotFoundError):
            engine.create_instance("no-such-workflow", "PO-1")

    def test_disabled_workflow_is_rejected(self, engine, load_workflow, purchase_document):
        purchase_document["workflow"]["disabled"] = True
        load_workflow(purchase_document)

        with pytest.raises(WorkflowDisabledError):
            engine.create_instance("purchase-approval", "PO-1")

    def test_disabling_blocks_instances_until_enabled(self, engine, purchase_workflow, workflow_repository):
        instance_id = engine.create_instance("purchase-approval", "PO-1")

        workflow = engine.set_workflow_disabled("purchase-approval")

        assert workflow.disabled is True
        assert workflow_repository.get("purchase-approval").disabled is True
        with pytest.raises(WorkflowDisabledError):
            engine.start(instance_id)
        with pytest.raises(WorkflowDisabledError):
            engine.create_instance("purchase-approval", "PO-2")

        engine.set_workflow_disabled("purchase-approval", False)

        assert engine.start(instance_id).activity_id == "manager_approval"

    def test_disabling_unknown_workflow(self, engine):
        with pytest.raises(WorkflowNotFoundError):
            engine.set_workflow_disabled("no-such-workflow")

    def test_missing_record_is_rejected(self, engine, purchase_workflow):
        with pytest.raises(EntityNotFoundError):
            engine.create_instance("purchase-approval", "PO-404")

    def test_second_open_instance_is_rejected(self, engine, purchase_workflow):
        first = engine.create_instance("purchase-approval", "PO-1")

        with pytest.raises(DuplicateInstanceError) as exc_info:
            engine.create_instance("purchase-approval", "PO-1")
        assert exc_info.value.instance_id == first

    def test_new_instance_allowed_after_previous_one_finished(self, engine, purchase_workflow):
        first = engine.create_instance("purchase-approval", "PO-2")
        engine.start(first)
        assert engine.get_instance(first).status == InstanceStatus.COMPLETE

        second = engine.create_instance("purchase-approval", "PO-2")
        assert second != first


class TestApprovalScenario:
    """ENTER → CONDITION → USER → ADJUST → NOTIFY → EXIT"""

    def test_start_parks_at_user_activity_with_tasks(self, engine, waiting_instance):
        instance = engine.get_instance(waiting_instance)

        assert instance.status == InstanceStatus.ACTIVE
        assert instance.activity_id == "manager_approval"
        assert instance.activity_executed is True
        assert instance.visit_number == 2
        assert instance.semaphore is None

        tasks = engine.find_tasks(instance_id=waiting_instance)
        assert sorted(task.assigned_user_id for task in tasks) == ["alice", "bob"]
        assert all(task.status == TaskStatus.PENDING for task in tasks)
        assert all(task.task_type == "approval" for task in tasks)
        assert all(task.visit_number == 2 for task in tasks)

    def test_user_activity_sets_timeout(self, engine, waiting_instance):
        instance = engine.get_instance(waiting_instance)
        assert instance.timeout_date == FIXED_NOW.replace(day=17)

    def test_audit_trail_of_first_run(self, engine, waiting_instance):
        events = engine.list_events(waiting_instance)

        assert [event.event_type for event in events] == [
            EventType.START,
            EventType.ACTIVITY,
            EventType.TRANSITION,
            EventType.ACTIVITY,
            EventType.TRANSITION,
            EventType.ACTIVITY,
        ]
        assert events[2].description == (
            "Advanced from Enter activity (enter) to Check amount activity (check_amount) "
            "via Success port and transition enter-success-check_amount"
        )
        assert all(event.source_name == "worker-a" for event in events)
        assert not any(event.was_error for event in events)

    def test_restart_while_waiting_is_idempotent(self, engine, waiting_instance):
        events_before = len(engine.list_events(waiting_instance))
        tasks_before = len(engine.find_tasks(instance_id=waiting_instance))

        instance = engine.start(waiting_instance)

        assert instance.activity_id == "manager_approval"
        assert len(engine.list_events(waiting_instance)) == events_before
        assert len(engine.find_tasks(instance_id=waiting_instance)) == tasks_before

    def test_approval_completes_instance(self, engine, waiting_instance, entities, notifier):
        task = _task_for(engine, waiting_instance, "alice")

        updated = engine.update_task(task.id, "approved", value="Looks good", user_id="alice")

        assert updated.status == TaskStatus.APPROVED
        assert updated.completion_date == FIXED_NOW

        instance = engine.get_instance(waiting_instance)
        assert instance.status == InstanceStatus.COMPLETE
        assert instance.activity_id == "finish"
        assert instance.result_code == "done"
        assert instance.timeout_date is None

        assert entities.get_record("purchase_order", "id", "PO-1")["status_id"] == "approved"
        assert [message.recipient.user_id for message in notifier.sent] == ["dave"]
        assert notifier.sent[0].template == "WF_EMAIL"
        assert notifier.sent[0].parameters["message"] == "Your purchase order was approved"

        bob_task = _task_for(engine, waiting_instance, "bob")
        assert bob_task.status == TaskStatus.OBSOLETE

        variables = {v.variable_id: v.value for v in engine.list_variables(waiting_instance)}
        assert variables["approval_note"] == "Looks good"

        event_types = [event.event_type for event in engine.list_events(waiting_instance)]
        assert event_types.count(EventType.FINISH) == 1

    def test_rejection_follows_failure_port(self, engine, waiting_instance, entities, notifier):
        task = _task_for(engine, waiting_instance, "bob")

        engine.update_task(task.id, "rejected", remark="Too expensive")

        instance = engine.get_instance(waiting_instance)
        assert instance.status == InstanceStatus.COMPLETE
        assert entities.get_record("purchase_order", "id", "PO-1")["status_id"] == "rejected"
        assert notifier.sent == []
        assert _task_for(engine, waiting_instance, "bob").remark == "Too expensive"
        assert _task_for(engine, waiting_instance, "alice").status == TaskStatus.OBSOLETE

    def test_elapsed_timeout_follows_timeout_port(self, engine, waiting_instance, clock):
        clock.advance(days=3)

        started = engine.sweep_elapsed_instances()

        assert started == 1
        instance = engine.get_instance(waiting_instance)
        assert instance.status == InstanceStatus.COMPLETE
        assert instance.result_code == "timed_out"
        tasks = engine.find_tasks(instance_id=waiting_instance)
        assert all(task.status == TaskStatus.OBSOLETE for task in tasks)

    def test_timeout_wins_over_pending_approval(self, engine, waiting_instance, clock):
        clock.advance(days=2, seconds=1)
        task = _task_for(engine, waiting_instance, "alice")

        engine.update_task(task.id, "approved")

        assert engine.get_instance(waiting_instance).result_code == "timed_out"

    def test_sweep_before_deadline_does_nothing(self, engine, waiting_instance, clock):
        clock.advance(days=1)

        assert engine.sweep_elapsed_instances() == 0
        assert engine.get_instance(waiting_instance).activity_id == "manager_approval"

    def test_condition_failure_skips_approval(self, engine, purchase_workflow, entities):
        instance_id = engine.create_instance("purchase-approval", "PO-2")

        instance = engine.start(instance_id)

        assert instance.status == InstanceStatus.COMPLETE
        assert engine.find_tasks(instance_id=instance_id) == []
        assert entities.get_record("purchase_order", "id", "PO-2")["status_id"] == "approved"


class TestLockContention:
    """执行锁测试"""

    class ContendedRepository(InMemoryInstanceRepository):
        """模拟另一工作进程在本进程写入之后立刻写入自己的标识"""

        def __init__(self, rival: str):
            super().__init__()
            self.rival = rival

        def update_instance(self, instance_id, **changes):
            instance = super().update_instance(instance_id, **changes)
            if changes.get("semaphore") not in (None, self.rival):
                instance = super().update_instance(instance_id, semaphore=self.rival)
            return instance

    @pytest.fixture
    def contended_engine(self, workflow_repository, directory, entities, settings, clock):
        return WorkflowEngine(
            workflow_repository=workflow_repository,
            instance_repository=self.ContendedRepository(rival="worker-b"),
            directory=directory,
            entity_gateway=entities,
            settings=settings,
            clock=clock,
        )

    def test_losing_worker_backs_off_without_mutation(self, contended_engine, purchase_workflow):
        instance_id = contended_engine.create_instance("purchase-approval", "PO-1")

        assert contended_engine.start(instance_id) is None

        instance = contended_engine.get_instance(instance_id)
        assert instance.status == InstanceStatus.PENDING
        assert instance.activity_id is None
        assert instance.semaphore == "worker-b"
        assert contended_engine.list_events(instance_id) == []
        assert contended_engine.find_tasks(instance_id=instance_id) == []

    def test_losing_worker_does_not_change_status(self, contended_engine, purchase_workflow):
        instance_id = contended_engine.create_instance("purchase-approval", "PO-1")

        assert contended_engine.suspend(instance_id) is False
        assert contended_engine.get_instance(instance_id).status == InstanceStatus.PENDING


class TestLifecycle:
    """暂停、恢复与终止测试"""

    def test_suspend_and_resume(self, engine, waiting_instance):
        assert engine.suspend(waiting_instance) is True
        assert engine.get_instance(waiting_instance).status == InstanceStatus.SUSPENDED

        # 暂停的实例不会被推进
        instance = engine.start(waiting_instance)
        assert instance.status == InstanceStatus.SUSPENDED

        assert engine.resume(waiting_instance) is True
        assert engine.get_instance(waiting_instance).status == InstanceStatus.ACTIVE

        event_types = [event.event_type for event in engine.list_events(waiting_instance)]
        assert event_types[-2:] == [EventType.SUSPEND, EventType.RESUME]

    def test_task_completed_while_suspended_advances_after_resume(self, engine, waiting_instance):
        engine.suspend(waiting_instance)
        task = _task_for(engine, waiting_instance, "alice")

        engine.update_task(task.id, "approved")
        assert engine.get_instance(waiting_instance).activity_id == "manager_approval"

        engine.resume(waiting_instance)
        instance = engine.start(waiting_instance)
        assert instance.status == InstanceStatus.COMPLETE

    def test_resume_requires_suspended_instance(self, engine, waiting_instance):
        with pytest.raises(InstanceStateError):
            engine.resume(waiting_instance)

    def test_abort_obsoletes_open_tasks(self, engine, waiting_instance):
        assert engine.abort(waiting_instance) is True

        assert engine.get_instance(waiting_instance).status == InstanceStatus.ABORTED
        tasks = engine.find_tasks(instance_id=waiting_instance)
        assert all(task.status == TaskStatus.OBSOLETE for task in tasks)
        last_event = engine.list_events(waiting_instance)[-1]
        assert last_event.event_type == EventType.FINISH
        assert last_event.description == "Workflow aborted"

    def test_final_instances_cannot_be_operated(self, engine, waiting_instance):
        engine.abort(waiting_instance)

        for operation in (engine.start, engine.suspend, engine.resume, engine.abort):
            with pytest.raises(InstanceStateError):
                operation(waiting_instance)

    def test_unknown_instance(self, engine):
        with pytest.raises(InstanceNotFoundError):
            engine.start("missing")
        with pytest.raises(WorkflowValidationError):
            engine.start("")


class TestVariablesAndTasks:
    """变量与任务更新测试"""

    def test_update_variable_from_expression(self, engine, purchase_workflow):
        instance_id = engine.create_instance("purchase-approval", "PO-1")

        variable = engine.update_instance_variable(instance_id, "amount_limit", "limit * 2 + 1")
        assert variable.value == "2001"

        variable = engine.update_instance_variable(instance_id, "approval_note", "'limit ' + str(limit)")
        assert variable.value == "limit 2001"

    def test_failed_expression_leaves_variable_unchanged(self, engine, purchase_workflow):
        instance_id = engine.create_instance("purchase-approval", "PO-1")

        with pytest.raises(ExpressionError):
            engine.update_instance_variable(instance_id, "amount_limit", "limit +")

        variables = {v.variable_id: v.value for v in engine.list_variables(instance_id)}
        assert variables["amount_limit"] == "1000"

    def test_unknown_variable(self, engine, purchase_workflow):
        instance_id = engine.create_instance("purchase-approval", "PO-1")

        with pytest.raises(VariableNotFoundError):
            engine.update_instance_variable(instance_id, "missing", "1")

    def test_update_task_validations(self, engine, waiting_instance):
        task = _task_for(engine, waiting_instance, "alice")

        with pytest.raises(TaskNotFoundError):
            engine.update_task("missing", "done")
        with pytest.raises(TaskAccessDeniedError):
            engine.update_task(task.id, "approved", user_id="bob")
        with pytest.raises(WorkflowValidationError):
            engine.update_task(task.id, "obsolete")
        with pytest.raises(WorkflowValidationError):
            engine.update_task(task.id, "maybe")

    def test_closed_task_cannot_be_updated_again(self, engine, waiting_instance):
        task = _task_for(engine, waiting_instance, "alice")
        engine.update_task(task.id, "in_progress")
        engine.update_task(task.id, "approved")

        with pytest.raises(WorkflowValidationError):
            engine.update_task(task.id, "rejected")

    def test_in_progress_does_not_advance(self, engine, waiting_instance):
        task = _task_for(engine, waiting_instance, "alice")

        updated = engine.update_task(task.id, "in_progress")

        assert updated.status == TaskStatus.IN_PROGRESS
        assert updated.completion_date is None
        assert engine.get_instance(waiting_instance).activity_id == "manager_approval"

    def test_update_without_advance(self, engine, waiting_instance):
        task = _task_for(engine, waiting_instance, "alice")

        engine.update_task(task.id, "approved", advance=False)

        assert engine.get_instance(waiting_instance).activity_id == "manager_approval"
        assert engine.start(waiting_instance).status == InstanceStatus.COMPLETE

    def test_task_inbox(self, engine, waiting_instance):
        assert len(engine.find_tasks(user_id="alice")) == 1
        assert engine.find_tasks(user_id="carol") == []
        assert len(engine.find_tasks(statuses=[TaskStatus.PENDING])) == 2

    def test_task_inbox_count(self, engine, waiting_instance):
        assert engine.count_tasks(user_id="alice") == 1
        assert engine.count_tasks(user_id="carol") == 0
        assert engine.count_tasks(instance_id=waiting_instance) == 2

        engine.update_task(_task_for(engine, waiting_instance, "alice").id, "in_progress")

        assert engine.count_tasks(statuses=[TaskStatus.PENDING]) == 1
        assert engine.count_tasks(statuses=[TaskStatus.PENDING, TaskStatus.IN_PROGRESS]) == 2


class TestActivities:
    """各类活动测试"""

    def test_missing_transition_parks_instance(self, engine, load_workflow, caplog):
        load_workflow({
            "id": "parked",
            "activities": [
                {"id": "enter", "type": "enter"},
                {"id": "gate", "type": "condition", "config": {
                    "condition_source": "script", "conditions": [{"script": "1 > 2"}]
                }},
                {"id": "done", "type": "exit"},
            ],
            "transitions": [
                {"from": "enter", "to": "gate"},
                {"from": "gate", "to": "done"},
            ],
        })
        instance_id = engine.create_instance("parked", "R-1")

        with caplog.at_level(logging.ERROR):
            instance = engine.start(instance_id)

        assert instance.status == InstanceStatus.ACTIVE
        assert instance.activity_id == "gate"
        assert instance.activity_executed is True
        assert any("No failure transition" in record.getMessage() for record in caplog.records)

        events = engine.list_events(instance_id)
        assert not any(event.was_error for event in events)

        engine.start(instance_id)
        assert len(engine.list_events(instance_id)) == len(events)

    def test_adjust_loop_revisits_activities(self, engine, load_workflow):
        load_workflow({
            "id": "counter",
            "variables": [{"id": "counter", "type": "number", "default": 0}],
            "activities": [
                {"id": "enter", "type": "enter"},
                {"id": "increment", "type": "adjust", "config": {
                    "adjustment_type": "variable", "variable_id": "counter", "expression": "counter + 1"
                }},
                {"id": "again", "type": "condition", "config": {
                    "condition_source": "variable",
                    "conditions": [{"variable_id": "counter", "operator": "<", "value": 3}]
                }},
                {"id": "done", "type": "exit"},
            ],
            "transitions": [
                {"from": "enter", "to": "increment"},
                {"from": "increment", "to": "again"},
                {"from": "again", "to": "increment"},
                {"from": "again", "port": "failure", "to": "done"},
            ],
        })
        instance_id = engine.create_instance("counter", "R-1")

        instance = engine.start(instance_id)

        assert instance.status == InstanceStatus.COMPLETE
        variables = {v.variable_id: v.value for v in engine.list_variables(instance_id)}
        assert variables["counter"] == "3"
        assert instance.visit_number == 7

    def test_adjust_expression_error_follows_failure_port(self, engine, load_workflow):
        load_workflow({
            "id": "broken-adjust",
            "variables": [{"id": "total", "type": "number", "default": 1}],
            "activities": [
                {"id": "enter", "type": "enter"},
                {"id": "divide", "type": "adjust", "config": {
                    "adjustment_type": "variable", "variable_id": "total", "expression": "total / 0"
                }},
                {"id": "ok", "type": "exit", "config": {"result_code": "ok"}},
                {"id": "failed", "type": "exit", "config": {"result_code": "failed"}},
            ],
            "transitions": [
                {"from": "enter", "to": "divide"},
                {"from": "divide", "to": "ok"},
                {"from": "divide", "port": "failure", "to": "failed"},
            ],
        })
        instance_id = engine.create_instance("broken-adjust", "R-1")

        instance = engine.start(instance_id)

        assert instance.result_code == "failed"
        assert any(event.was_error for event in engine.list_events(instance_id))
        variables = {v.variable_id: v.value for v in engine.list_variables(instance_id)}
        assert variables["total"] == "1"

    @pytest.fixture
    def service_workflow(self, load_workflow):
        return load_workflow({
            "id": "reserve",
            "activities": [
                {"id": "enter", "type": "enter"},
                {"id": "call", "type": "service", "config": {
                    "service_name": "reserve_budget", "parameters": {"amount": 10}
                }},
                {"id": "ok", "type": "exit", "config": {"result_code": "ok"}},
                {"id": "failed", "type": "exit", "config": {"result_code": "failed"}},
            ],
            "transitions": [
                {"from": "enter", "to": "call"},
                {"from": "call", "to": "ok"},
                {"from": "call", "port": "failure", "to": "failed"},
            ],
        })

    def test_service_activity_receives_parameters(self, engine, services, service_workflow):
        calls = []

        def reserve_budget(amount, instance_id, workflow_id, primary_key_value):
            calls.append((amount, instance_id, workflow_id, primary_key_value))
            return {"reserved": amount}

        services.register("reserve_budget", reserve_budget)
        instance_id = engine.create_instance("reserve", "R-7")

        assert engine.start(instance_id).result_code == "ok"
        assert calls == [(10, instance_id, "reserve", "R-7")]

    def test_service_returning_false_fails(self, engine, services, service_workflow):
        services.register("reserve_budget", lambda **params: False)
        instance_id = engine.create_instance("reserve", "R-7")

        assert engine.start(instance_id).result_code == "failed"

    def test_unknown_service_fails_with_error_event(self, engine, service_workflow):
        instance_id = engine.create_instance("reserve", "R-7")

        assert engine.start(instance_id).result_code == "failed"
        error_events = [event for event in engine.list_events(instance_id) if event.was_error]
        assert len(error_events) == 1
        assert "reserve_budget" in error_events[0].description

    def test_manual_task_captures_value(self, engine, load_workflow):
        load_workflow({
            "id": "collect",
            "variables": [{"id": "comment", "type": "text"}],
            "activities": [
                {"id": "enter", "type": "enter"},
                {"id": "ask", "type": "user", "config": {
                    "task_type": "variable", "variable_id": "comment",
                    "crowds": [{"crowd_type": "user", "user_id": "carol"}]
                }},
                {"id": "done", "type": "exit"},
            ],
            "transitions": [
                {"from": "enter", "to": "ask"},
                {"from": "ask", "to": "done"},
            ],
        })
        instance_id = engine.create_instance("collect", "R-1")
        engine.start(instance_id)
        task = _task_for(engine, instance_id, "carol")
        assert engine.get_instance(instance_id).timeout_date is None

        engine.update_task(task.id, "done", value="Ship it")

        assert engine.get_instance(instance_id).status == InstanceStatus.COMPLETE
        variables = {v.variable_id: v.value for v in engine.list_variables(instance_id)}
        assert variables["comment"] == "Ship it"

    def test_notify_group_members(self, engine, load_workflow, notifier):
        load_workflow({
            "id": "announce",
            "activities": [
                {"id": "enter", "type": "enter"},
                {"id": "tell", "type": "notify", "config": {
                    "crowd_type": "user_group", "user_group_id": "managers",
                    "notification_type": "sms", "template": "WF_SMS", "message": "Heads up"
                }},
                {"id": "done", "type": "exit"},
            ],
            "transitions": [
                {"from": "enter", "to": "tell"},
                {"from": "tell", "to": "done"},
            ],
        })
        instance_id = engine.create_instance("announce", "R-1")

        engine.start(instance_id)

        assert [message.recipient.user_id for message in notifier.sent] == ["alice", "bob"]
        assert all(message.template == "WF_SMS" for message in notifier.sent)
        assert notifier.sent[0].parameters["notification_type"] == "sms"

    def test_boolean_condition_then_single_approver(self, engine, load_workflow):
        load_workflow({
            "id": "urgent-review",
            "primary_entity": "purchase_order",
            "activities": [
                {"id": "enter", "type": "enter"},
                {"id": "is_urgent", "type": "condition", "config": {
                    "condition_source": "field", "join_operator": "and",
                    "conditions": [{"field": "urgent", "operator": "true"}]
                }},
                {"id": "review", "type": "user", "config": {
                    "task_type": "approval",
                    "crowds": [{"crowd_type": "user", "user_id": "carol"}]
                }},
                {"id": "done", "type": "exit", "config": {"result_code": "reviewed"}},
            ],
            "transitions": [
                {"from": "enter", "to": "is_urgent"},
                {"from": "is_urgent", "to": "review"},
                {"from": "review", "to": "done"},
            ],
        })
        instance_id = engine.create_instance("urgent-review", "PO-1")
        assert engine.get_instance(instance_id).status == InstanceStatus.PENDING

        instance = engine.start(instance_id)
        assert instance.status == InstanceStatus.ACTIVE
        assert instance.activity_id == "review"
        task = _task_for(engine, instance_id, "carol")

        engine.update_task(task.id, TaskStatus.APPROVED, advance=False)
        instance = engine.start(instance_id)

        assert instance.status == InstanceStatus.COMPLETE
        assert instance.result_code == "reviewed"

    def test_fractional_timeout_is_truncated_to_whole_minutes(self, engine, load_workflow):
        load_workflow({
            "id": "quick-review",
            "activities": [
                {"id": "enter", "type": "enter"},
                {"id": "review", "type": "user", "config": {
                    "task_type": "manual",
                    "crowds": [{"crowd_type": "user", "user_id": "carol"}]
                }, "timeout": {"interval": 90, "uom": "TF_s"}},
                {"id": "done", "type": "exit"},
            ],
            "transitions": [
                {"from": "enter", "to": "review"},
                {"from": "review", "to": "done"},
            ],
        })
        instance_id = engine.create_instance("quick-review", "R-1")

        instance = engine.start(instance_id)

        assert instance.activity_id == "review"
        assert engine.get_instance(instance_id).timeout_date == FIXED_NOW + timedelta(minutes=1)

    def test_finish_event_follows_exit_activity_event(self, engine, purchase_workflow):
        instance_id = engine.create_instance("purchase-approval", "PO-2")

        engine.start(instance_id)

        events = engine.list_events(instance_id)
        assert events[-2].event_type == EventType.ACTIVITY
        assert events[-2].description == "Executed Exit activity (finish)"
        assert events[-1].event_type == EventType.FINISH

    def test_activity_executor_base_is_abstract(self):
        with pytest.raises(TypeError):
            ActivityExecutor()
