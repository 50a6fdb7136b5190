"""
Workflow Orchestrator API 主入口
"""
import os
import uvicorn

from workflow_orchestrator.config import Settings, configure_logging


if __name__ == "__main__":
    # 读取 .env 与环境变量
    settings = Settings.from_env()
    configure_logging(settings.log_level)

    reload = os.getenv("API_RELOAD", "false").lower() == "true"

    if reload:
        # 开发模式
        uvicorn.run(
            "workflow_orchestrator.api:app",
            host=settings.api_host,
            port=settings.api_port,
            reload=True,
            log_level=settings.log_level.lower()
        )
    else:
        from workflow_orchestrator.api import app

        uvicorn.run(
            app,
            host=settings.api_host,
            port=settings.api_port,
            log_level=settings.log_level.lower()
        )
