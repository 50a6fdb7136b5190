"""
工作流定义 API 路由
"""
from fastapi import APIRouter, HTTPException, Depends, Query, status
from typing import List
import logging

from ..models import WorkflowLoadRequest, WorkflowResponse
from ..dependencies import get_workflow_engine, get_workflow_repository
from ...core.parser import WorkflowParser


logger = logging.getLogger(__name__)
router = APIRouter()
parser = WorkflowParser()


@router.post("", response_model=WorkflowResponse, status_code=status.HTTP_201_CREATED)
def load_workflow(
    request: WorkflowLoadRequest,
    repository = Depends(get_workflow_repository)
) -> WorkflowResponse:
    """加载（新增或替换）工作流定义"""
    if (request.definition is None) == (request.document is None):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={
                "error": "validation_error",
                "message": "Exactly one of 'definition' or 'document' is required"
            }
        )

    if request.definition is not None:
        workflow = parser.parse_dict(request.definition)
    else:
        workflow = parser.parse_string(request.document)

    repository.save(workflow)
    logger.info(f"Loaded workflow definition {workflow.id}")
    return WorkflowResponse.from_workflow(workflow)


@router.get("", response_model=List[WorkflowResponse])
def list_workflows(
    offset: int = Query(0, ge=0, description="偏移"),
    limit: int = Query(100, ge=1, le=1000, description="条数"),
    repository = Depends(get_workflow_repository)
) -> List[WorkflowResponse]:
    """列出工作流定义"""
    return [WorkflowResponse.from_workflow(workflow) for workflow in repository.list(offset, limit)]


@router.get("/{workflow_id}", response_model=WorkflowResponse)
def get_workflow(
    workflow_id: str,
    repository = Depends(get_workflow_repository)
) -> WorkflowResponse:
    """获取工作流定义"""
    workflow = repository.get(workflow_id)
    if workflow is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={
                "error": "not_found",
                "message": f"Workflow {workflow_id} not found"
            }
        )
    return WorkflowResponse.from_workflow(workflow)


@router.post("/{workflow_id}/disable", response_model=WorkflowResponse)
def disable_workflow(
    workflow_id: str,
    engine = Depends(get_workflow_engine)
) -> WorkflowResponse:
    """禁用工作流定义"""
    return WorkflowResponse.from_workflow(engine.set_workflow_disabled(workflow_id, True))


@router.post("/{workflow_id}/enable", response_model=WorkflowResponse)
def enable_workflow(
    workflow_id: str,
    engine = Depends(get_workflow_engine)
) -> WorkflowResponse:
    """重新启用工作流定义"""
    return WorkflowResponse.from_workflow(engine.set_workflow_disabled(workflow_id, False))
