"""
审计事件记录
"""
import logging

from ..models.instance import EventType, InstanceEvent
from ..storage.repository import InstanceRepository


logger = logging.getLogger(__name__)


class EventRecorder:
    """写入实例审计事件，来源为当前工作进程"""

    def __init__(self, repository: InstanceRepository, source_name: str):
        self.repository = repository
        self.source_name = source_name

    def record(self, instance_id: str, event_type: EventType, description: str,
               was_error: bool = False) -> InstanceEvent:
        event = InstanceEvent(
            instance_id=instance_id,
            event_type=event_type,
            source_name=self.source_name,
            description=description,
            was_error=was_error,
        )
        self.repository.record_event(event)
        if was_error:
            logger.warning(f"Workflow instance {instance_id}: {description}")
        return event
