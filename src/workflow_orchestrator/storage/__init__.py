"""Storage and repository interfaces"""

from .repository import (
    WorkflowRepository,
    InstanceRepository,
    InMemoryWorkflowRepository,
    InMemoryInstanceRepository
)

__all__ = [
    "WorkflowRepository",
    "InstanceRepository",
    "InMemoryWorkflowRepository",
    "InMemoryInstanceRepository"
]
