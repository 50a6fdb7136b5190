"""
FastAPI 应用主文件
"""
from contextlib import asynccontextmanager
import logging
from typing import Callable, Optional

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .. import __version__
from ..bootstrap import Runtime, build_runtime
from ..exceptions import (
    InstanceNotFoundError,
    TaskAccessDeniedError,
    TaskNotFoundError,
    VariableNotFoundError,
    WorkflowEngineError,
    WorkflowNotFoundError,
)
from .dependencies import app_state, get_app_state
from .middleware import RequestLoggingMiddleware
from .models import HealthResponse
from .routers import instances, maintenance, tasks, workflows


logger = logging.getLogger(__name__)


_NOT_FOUND_ERRORS = (
    WorkflowNotFoundError,
    InstanceNotFoundError,
    TaskNotFoundError,
    VariableNotFoundError,
)


def create_app(runtime: Optional[Runtime] = None,
               runtime_factory: Callable[[], Runtime] = build_runtime) -> FastAPI:
    """
    创建 FastAPI 应用

    Args:
        runtime: 已装配的运行时（由调用方负责关闭）
        runtime_factory: 未提供 runtime 时在启动阶段调用
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """应用生命周期管理"""
        logger.info("Starting Workflow Orchestrator API...")
        current = runtime or runtime_factory()

        app_state.update({
            "runtime": current,
            "settings": current.settings,
            "db_manager": current.db_manager,
            "workflow_repository": current.workflow_repository,
            "instance_repository": current.instance_repository,
            "directory": current.directory,
            "engine": current.engine,
        })
        logger.info("Workflow Orchestrator API started successfully")

        yield

        logger.info("Shutting down Workflow Orchestrator API...")
        app_state.clear()
        if runtime is None:
            current.close()
        logger.info("Workflow Orchestrator API shut down successfully")

    app = FastAPI(
        title="Workflow Orchestrator API",
        description="工作流实例执行引擎 RESTful API",
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json"
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestLoggingMiddleware)

    app.include_router(workflows.router, prefix="/api/v1/workflows", tags=["workflows"])
    app.include_router(instances.router, prefix="/api/v1/instances", tags=["instances"])
    app.include_router(tasks.router, prefix="/api/v1/tasks", tags=["tasks"])
    app.include_router(maintenance.router, prefix="/api/v1/maintenance", tags=["maintenance"])

    app.add_exception_handler(WorkflowEngineError, workflow_error_handler)
    app.add_exception_handler(Exception, global_exception_handler)

    @app.get("/", tags=["root"])
    async def root():
        """API根路径"""
        return {
            "name": "Workflow Orchestrator API",
            "version": __version__,
            "status": "running",
            "docs": "/docs",
            "health": "/health"
        }

    @app.get("/health", response_model=HealthResponse, tags=["root"])
    async def health() -> HealthResponse:
        """健康检查"""
        engine = get_app_state().get("engine")
        return HealthResponse(
            status="healthy" if engine else "starting",
            version=__version__,
            worker_id=engine.worker_id if engine else None,
        )

    return app


def _request_id(request: Request) -> Optional[str]:
    return getattr(request.state, "request_id", None)


def error_status(exc: WorkflowEngineError) -> int:
    """将引擎异常映射为 HTTP 状态码"""
    if isinstance(exc, _NOT_FOUND_ERRORS):
        return status.HTTP_404_NOT_FOUND
    if isinstance(exc, TaskAccessDeniedError):
        return status.HTTP_403_FORBIDDEN
    return status.HTTP_400_BAD_REQUEST


async def workflow_error_handler(request: Request, exc: WorkflowEngineError):
    """引擎异常处理器"""
    status_code = error_status(exc)
    error = {
        status.HTTP_404_NOT_FOUND: "not_found",
        status.HTTP_403_FORBIDDEN: "forbidden",
    }.get(status_code, "validation_error")
    logger.warning(f"{request.method} {request.url.path} rejected: {exc}")

    return JSONResponse(
        status_code=status_code,
        content={
            "error": error,
            "message": str(exc),
            "request_id": _request_id(request)
        }
    )


async def global_exception_handler(request: Request, exc: Exception):
    """全局异常处理器"""
    logger.error(f"Unhandled exception: {exc}", exc_info=True)

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error": "internal_server_error",
            "message": "An unexpected error occurred",
            "request_id": _request_id(request)
        }
    )


app = create_app()
