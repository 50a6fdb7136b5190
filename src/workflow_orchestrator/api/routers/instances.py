"""
工作流实例 API 路由
"""
from fastapi import APIRouter, Depends, status
from typing import List
import logging

from ..models import (
    EventResponse,
    InstanceCreateRequest,
    InstanceDetailResponse,
    InstanceOperationResponse,
    InstanceResponse,
    VariableResponse,
    VariableUpdateRequest,
)
from ..dependencies import get_workflow_engine


logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("", response_model=InstanceResponse, status_code=status.HTTP_201_CREATED)
def create_instance(
    request: InstanceCreateRequest,
    engine = Depends(get_workflow_engine)
) -> InstanceResponse:
    """为业务记录创建工作流实例"""
    instance_id = engine.create_instance(
        request.workflow_id,
        request.primary_key_value,
        input_user_id=request.input_user_id
    )
    if request.start:
        engine.start(instance_id)
    return InstanceResponse.from_instance(engine.get_instance(instance_id))


@router.get("/{instance_id}", response_model=InstanceDetailResponse)
def get_instance(
    instance_id: str,
    engine = Depends(get_workflow_engine)
) -> InstanceDetailResponse:
    """获取实例详情"""
    instance = engine.get_instance(instance_id)
    return InstanceDetailResponse(
        **InstanceResponse.from_instance(instance).model_dump(),
        variables=[VariableResponse.from_variable(v) for v in engine.list_variables(instance_id)]
    )


@router.post("/{instance_id}/start", response_model=InstanceOperationResponse)
def start_instance(
    instance_id: str,
    engine = Depends(get_workflow_engine)
) -> InstanceOperationResponse:
    """启动或继续推进实例"""
    instance = engine.start(instance_id)
    if instance is None:
        return InstanceOperationResponse(
            success=False,
            message=f"Workflow instance {instance_id} is being executed by another worker",
            instance=InstanceResponse.from_instance(engine.get_instance(instance_id))
        )
    return InstanceOperationResponse(
        success=True,
        message=f"Workflow instance {instance_id} is {instance.status.value}",
        instance=InstanceResponse.from_instance(instance)
    )


def _status_change(engine, instance_id: str, changed: bool, verb: str) -> InstanceOperationResponse:
    if changed:
        message = f"Workflow instance {instance_id} {verb}"
    else:
        message = f"Workflow instance {instance_id} is being executed by another worker"
    return InstanceOperationResponse(
        success=changed,
        message=message,
        instance=InstanceResponse.from_instance(engine.get_instance(instance_id))
    )


@router.post("/{instance_id}/suspend", response_model=InstanceOperationResponse)
def suspend_instance(instance_id: str, engine = Depends(get_workflow_engine)):
    """暂停实例"""
    return _status_change(engine, instance_id, engine.suspend(instance_id), "suspended")


@router.post("/{instance_id}/resume", response_model=InstanceOperationResponse)
def resume_instance(instance_id: str, engine = Depends(get_workflow_engine)):
    """恢复实例"""
    return _status_change(engine, instance_id, engine.resume(instance_id), "resumed")


@router.post("/{instance_id}/abort", response_model=InstanceOperationResponse)
def abort_instance(instance_id: str, engine = Depends(get_workflow_engine)):
    """终止实例"""
    return _status_change(engine, instance_id, engine.abort(instance_id), "aborted")


@router.put("/{instance_id}/variables/{variable_id}", response_model=VariableResponse)
def update_variable(
    instance_id: str,
    variable_id: str,
    request: VariableUpdateRequest,
    engine = Depends(get_workflow_engine)
) -> VariableResponse:
    """按表达式更新实例变量"""
    variable = engine.update_instance_variable(instance_id, variable_id, request.expression)
    return VariableResponse.from_variable(variable)


@router.get("/{instance_id}/events", response_model=List[EventResponse])
def list_events(
    instance_id: str,
    engine = Depends(get_workflow_engine)
) -> List[EventResponse]:
    """列出实例审计事件"""
    return [EventResponse.from_event(event) for event in engine.list_events(instance_id)]
