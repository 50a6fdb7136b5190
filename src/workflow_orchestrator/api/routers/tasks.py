"""
人工任务 API 路由
"""
from fastapi import APIRouter, Depends, Query
from typing import List, Optional
import logging

from ..models import (
    TaskCountResponse,
    TaskListResponse,
    TaskResponse,
    TaskStatusEnum,
    TaskUpdateRequest,
)
from ..dependencies import get_workflow_engine
from ...models.instance import TaskStatus


logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("", response_model=TaskListResponse)
def list_tasks(
    user_id: Optional[str] = Query(None, description="处理人"),
    status: Optional[List[TaskStatusEnum]] = Query(None, description="任务状态"),
    instance_id: Optional[str] = Query(None, description="实例ID"),
    offset: int = Query(0, ge=0, description="偏移"),
    limit: int = Query(100, ge=1, le=1000, description="条数"),
    engine = Depends(get_workflow_engine)
) -> TaskListResponse:
    """任务收件箱"""
    statuses = [TaskStatus(item.value) for item in status] if status else None
    tasks = engine.find_tasks(
        user_id=user_id,
        statuses=statuses,
        instance_id=instance_id,
        offset=offset,
        limit=limit
    )
    return TaskListResponse(
        items=[TaskResponse.from_task(task) for task in tasks],
        offset=offset,
        limit=limit
    )


@router.get("/count", response_model=TaskCountResponse)
def count_tasks(
    user_id: Optional[str] = Query(None, description="处理人"),
    status: Optional[List[TaskStatusEnum]] = Query(None, description="任务状态"),
    instance_id: Optional[str] = Query(None, description="实例ID"),
    engine = Depends(get_workflow_engine)
) -> TaskCountResponse:
    """收件箱任务数"""
    statuses = [TaskStatus(item.value) for item in status] if status else None
    return TaskCountResponse(
        count=engine.count_tasks(user_id=user_id, statuses=statuses, instance_id=instance_id)
    )


@router.put("/{task_id}", response_model=TaskResponse)
def update_task(
    task_id: str,
    request: TaskUpdateRequest,
    engine = Depends(get_workflow_engine)
) -> TaskResponse:
    """更新任务状态，任务完成时继续推进实例"""
    task = engine.update_task(
        task_id,
        request.status.value,
        value=request.value,
        remark=request.remark,
        user_id=request.user_id,
        advance=request.advance
    )
    return TaskResponse.from_task(task)
