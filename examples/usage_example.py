"""
工作流引擎使用示例
"""
from pathlib import Path
import logging

from workflow_orchestrator import WorkflowEngine, WorkflowParser, TimeoutScanner
from workflow_orchestrator.config import LOG_FORMAT
from workflow_orchestrator.integrations import (
    InMemoryEntityGateway,
    InMemoryUserDirectory,
    LocalServiceRegistry,
    LoggingNotifier,
    UserProfile,
)
from workflow_orchestrator.models.instance import TaskStatus
from workflow_orchestrator.storage.repository import (
    InMemoryWorkflowRepository,
    InMemoryInstanceRepository,
)


# 配置日志
logging.basicConfig(level=logging.INFO, format=LOG_FORMAT)


def reserve_budget(cost_center: str, instance_id: str, workflow_id: str, primary_key_value: str):
    """示例服务：预留预算"""
    print(f"为 {primary_key_value} 在 {cost_center} 预留预算")
    return True


def setup_workflow_engine() -> WorkflowEngine:
    """设置工作流引擎"""
    directory = InMemoryUserDirectory()
    for user_id in ("alice", "bob", "dave"):
        directory.add_user(UserProfile(user_id, user_id, f"{user_id}@example.com", user_id.capitalize()))
    directory.add_membership("managers", "alice")
    directory.add_membership("managers", "bob")

    entities = InMemoryEntityGateway()
    entities.add_record("purchase_order", "PO-1001", {"id": "PO-1001", "amount": 2400, "status_id": "draft"})
    entities.add_record("purchase_order", "PO-1002", {"id": "PO-1002", "amount": 120, "status_id": "draft"})

    services = LocalServiceRegistry()
    services.register("reserve_budget", reserve_budget)

    engine = WorkflowEngine(
        workflow_repository=InMemoryWorkflowRepository(),
        instance_repository=InMemoryInstanceRepository(),
        directory=directory,
        entity_gateway=entities,
        notifier=LoggingNotifier(),
        service_registry=services,
    )

    workflow = WorkflowParser().parse(Path(__file__).parent / "purchase_approval.yaml")
    engine.workflow_repository.save(workflow)
    return engine


def example_manager_approval(engine: WorkflowEngine):
    """经理审批示例"""
    print("\n=== 经理审批示例 ===")

    instance_id = engine.create_instance("purchase-approval", "PO-1001", input_user_id="dave")
    instance = engine.start(instance_id)
    print(f"实例 {instance_id} 停在活动: {instance.activity_id}")

    for task in engine.find_tasks(instance_id=instance_id):
        print(f"待办任务: {task.id} -> {task.assigned_user_id}")

    task = engine.find_tasks(user_id="alice", instance_id=instance_id)[0]
    engine.update_task(task.id, TaskStatus.APPROVED, value="预算充足", user_id="alice")

    instance = engine.get_instance(instance_id)
    print(f"最终状态: {instance.status.value}, 结果码: {instance.result_code}")
    print(f"采购单状态: {engine.entity_gateway.get_record('purchase_order', 'id', 'PO-1001')['status_id']}")

    for event in engine.list_events(instance_id):
        print(f"  [{event.event_type.value}] {event.description}")


def example_small_purchase(engine: WorkflowEngine):
    """小额采购直接通过"""
    print("\n=== 小额采购示例 ===")

    instance_id = engine.create_instance("purchase-approval", "PO-1002", input_user_id="dave")
    instance = engine.start(instance_id)
    print(f"实例 {instance_id} 状态: {instance.status.value}, 结果码: {instance.result_code}")


def example_timeout_sweep(engine: WorkflowEngine):
    """超时扫描示例"""
    print("\n=== 超时扫描示例 ===")

    started = TimeoutScanner(engine).sweep()
    print(f"本轮重新启动 {started} 个超时实例")


def main():
    """主函数"""
    engine = setup_workflow_engine()

    example_manager_approval(engine)
    example_small_purchase(engine)
    example_timeout_sweep(engine)


if __name__ == "__main__":
    main()
