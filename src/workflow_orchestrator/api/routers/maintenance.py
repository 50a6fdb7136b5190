"""
维护 API 路由
"""
from fastapi import APIRouter, Depends
import logging

from ..models import SweepResponse
from ..dependencies import get_workflow_engine


logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/sweep", response_model=SweepResponse)
def sweep_elapsed_instances(engine = Depends(get_workflow_engine)) -> SweepResponse:
    """重新启动等待期限已过的实例"""
    started = engine.sweep_elapsed_instances()
    logger.info(f"Manual timeout sweep started {started} instance(s)")
    return SweepResponse(started=started)
