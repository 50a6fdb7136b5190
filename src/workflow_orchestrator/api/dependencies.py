"""
API 依赖注入
"""
from typing import Any, Dict

from fastapi import HTTPException, status


# 全局实例（由应用生命周期填充）
app_state: Dict[str, Any] = {}


def get_app_state() -> Dict[str, Any]:
    """获取应用状态"""
    return app_state


def _service_unavailable(component: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail={
            "error": "service_unavailable",
            "message": f"{component} not initialized"
        }
    )


def get_workflow_engine():
    """获取工作流引擎实例"""
    engine = get_app_state().get("engine")
    if not engine:
        raise _service_unavailable("Workflow engine")
    return engine


def get_workflow_repository():
    """获取工作流定义仓库"""
    repository = get_app_state().get("workflow_repository")
    if not repository:
        raise _service_unavailable("Workflow repository")
    return repository
