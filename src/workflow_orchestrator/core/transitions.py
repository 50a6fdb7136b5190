"""
转移解析
"""
import logging
from typing import Optional

from ..models.workflow import Activity, PortType, Transition, WorkflowDefinition


logger = logging.getLogger(__name__)


class TransitionResolver:
    """根据活动与出口端口查找唯一的转移"""

    def resolve(self, workflow: WorkflowDefinition, activity: Activity,
                port: PortType) -> Optional[Transition]:
        transitions = workflow.find_transitions(activity.id, port)
        if not transitions:
            logger.error(
                f"No {port.value} transition from {activity.label} activity ({activity.id}) "
                f"in workflow {workflow.id}; instance will stay parked"
            )
            return None

        if len(transitions) > 1:
            logger.error(
                f"Found {len(transitions)} {port.value} transitions from activity {activity.id} "
                f"in workflow {workflow.id}; following {transitions[0].id}"
            )
        return transitions[0]

    def describe(self, workflow: WorkflowDefinition, activity: Activity,
                 transition: Transition, port: PortType) -> str:
        """转移审计事件描述"""
        target = workflow.get_activity(transition.to_activity_id)
        target_label = target.label if target else "Unknown"
        return (
            f"Advanced from {activity.label} activity ({activity.id}) to "
            f"{target_label} activity ({transition.to_activity_id}) via {port.description} port "
            f"and transition {transition.id}"
        )
