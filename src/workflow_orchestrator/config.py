"""
运行配置
"""
import os
import socket
import logging
from dataclasses import dataclass, field

from dotenv import load_dotenv


LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def default_worker_id() -> str:
    """默认工作进程标识：主机名:进程号"""
    return f"{socket.gethostname()}:{os.getpid()}"


@dataclass
class Settings:
    """引擎与服务配置"""
    database_url: str = "sqlite:///./workflow_orchestrator.db"
    worker_id: str = field(default_factory=default_worker_id)
    log_level: str = "INFO"
    notification_template: str = "WF_EMAIL"
    sweep_interval: float = 60.0
    entity_status_field: str = "status_id"
    api_host: str = "0.0.0.0"
    api_port: int = 8000

    @classmethod
    def from_env(cls, dotenv_path: str = None) -> "Settings":
        """从环境变量（及 .env 文件）加载配置"""
        load_dotenv(dotenv_path)
        defaults = cls()
        return cls(
            database_url=os.getenv("WORKFLOW_DATABASE_URL", defaults.database_url),
            worker_id=os.getenv("WORKFLOW_WORKER_ID") or defaults.worker_id,
            log_level=os.getenv("WORKFLOW_LOG_LEVEL", defaults.log_level),
            notification_template=os.getenv(
                "WORKFLOW_NOTIFICATION_TEMPLATE", defaults.notification_template
            ),
            sweep_interval=float(os.getenv("WORKFLOW_SWEEP_INTERVAL", defaults.sweep_interval)),
            entity_status_field=os.getenv(
                "WORKFLOW_ENTITY_STATUS_FIELD", defaults.entity_status_field
            ),
            api_host=os.getenv("WORKFLOW_API_HOST", defaults.api_host),
            api_port=int(os.getenv("WORKFLOW_API_PORT", defaults.api_port)),
        )


def configure_logging(level: str = "INFO"):
    """配置日志"""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT
    )
