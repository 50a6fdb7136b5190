"""
组件装配：按配置创建数据库、仓库与引擎（API 与 CLI 共用）
"""
import logging
from dataclasses import dataclass

from .config import Settings
from .core.engine import WorkflowEngine
from .integrations.entities import SQLAlchemyEntityGateway
from .integrations.notifications import LoggingNotifier, Notifier
from .integrations.services import LocalServiceRegistry, ServiceRegistry
from .storage.sqlalchemy_repository import (
    DatabaseManager,
    SQLAlchemyInstanceRepository,
    SQLAlchemyUserDirectory,
    SQLAlchemyWorkflowRepository,
)


logger = logging.getLogger(__name__)


@dataclass
class Runtime:
    """已装配的运行时组件"""
    settings: Settings
    db_manager: DatabaseManager
    workflow_repository: SQLAlchemyWorkflowRepository
    instance_repository: SQLAlchemyInstanceRepository
    directory: SQLAlchemyUserDirectory
    entity_gateway: SQLAlchemyEntityGateway
    engine: WorkflowEngine

    def close(self):
        self.db_manager.close()


def build_runtime(settings: Settings = None, notifier: Notifier = None,
                  service_registry: ServiceRegistry = None, create_tables: bool = True) -> Runtime:
    """初始化数据库并装配引擎"""
    settings = settings or Settings.from_env()

    db_manager = DatabaseManager(settings.database_url)
    db_manager.initialize(create_tables=create_tables)

    workflow_repository = SQLAlchemyWorkflowRepository(db_manager)
    instance_repository = SQLAlchemyInstanceRepository(db_manager)
    directory = SQLAlchemyUserDirectory(db_manager)
    entity_gateway = SQLAlchemyEntityGateway(db_manager.engine, settings.entity_status_field)

    engine = WorkflowEngine(
        workflow_repository=workflow_repository,
        instance_repository=instance_repository,
        directory=directory,
        entity_gateway=entity_gateway,
        notifier=notifier or LoggingNotifier(),
        service_registry=service_registry or LocalServiceRegistry(),
        settings=settings,
    )
    logger.info(f"Workflow engine ready (worker {engine.worker_id})")

    return Runtime(
        settings=settings,
        db_manager=db_manager,
        workflow_repository=workflow_repository,
        instance_repository=instance_repository,
        directory=directory,
        entity_gateway=entity_gateway,
        engine=engine,
    )
