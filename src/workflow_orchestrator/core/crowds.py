"""
人群解析与审批法定人数
"""
import logging
from dataclasses import dataclass
from typing import Any, Callable, Iterable, List, Mapping, Optional

from ..integrations.directory import UserDirectory, UserProfile
from ..models.instance import WorkflowInstance, TaskStatus, OPEN_TASK_STATUSES
from ..models.workflow import CrowdType, JoinOperator, PortType
from ..storage.repository import InstanceRepository
from ..utils import utcnow


logger = logging.getLogger(__name__)


@dataclass
class Crowd:
    """人群：指定用户、用户组或发起人"""
    crowd_type: CrowdType
    user_id: Optional[str] = None
    user_group_id: Optional[str] = None

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> "Crowd":
        crowd_type = config.get("crowd_type")
        if not crowd_type:
            raise ValueError("Crowd has no crowd_type")
        return cls(
            crowd_type=CrowdType(str(crowd_type).lower()),
            user_id=config.get("user_id"),
            user_group_id=config.get("user_group_id"),
        )


@dataclass
class Gate:
    """审批组：人群加最少通过/驳回数"""
    crowd: Crowd
    min_approvals: int = 1
    min_rejections: int = 1

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> "Gate":
        # 阈值小于 1 时按 1 处理
        return cls(
            crowd=Crowd.from_config(config),
            min_approvals=max(1, int(config.get("min_approvals") or 1)),
            min_rejections=max(1, int(config.get("min_rejections") or 1)),
        )


@dataclass
class GateTally:
    """审批组计票结果"""
    gate: Gate
    approvals: int
    rejections: int

    @property
    def rejected(self) -> bool:
        return self.rejections >= self.gate.min_rejections

    @property
    def approved(self) -> bool:
        return self.approvals >= self.gate.min_approvals


class CrowdResolver:
    """将人群展开为用户集合（每次调用都重新解析，不缓存）"""

    def __init__(self, directory: UserDirectory, clock: Callable = utcnow):
        self.directory = directory
        self.clock = clock

    def resolve(self, crowd: Crowd, instance: WorkflowInstance) -> List[str]:
        """返回去重后保持顺序的用户ID列表"""
        if crowd.crowd_type == CrowdType.USER:
            if crowd.user_id and self.directory.get_user(crowd.user_id) is not None:
                return [crowd.user_id]
            logger.warning(f"Crowd user '{crowd.user_id}' not found in directory")
            return []

        if crowd.crowd_type == CrowdType.USER_GROUP:
            if not crowd.user_group_id:
                logger.warning("Crowd of type user_group has no user_group_id")
                return []
            return list(dict.fromkeys(self.directory.get_group_member_ids(crowd.user_group_id, self.clock())))

        # 发起人
        if instance.input_user_id and self.directory.get_user(instance.input_user_id) is not None:
            return [instance.input_user_id]
        logger.warning(f"Initiator of workflow instance {instance.id} not found in directory")
        return []

    def resolve_all(self, crowds: Iterable[Crowd], instance: WorkflowInstance) -> List[str]:
        """解析多个人群并合并去重"""
        user_ids = []
        for crowd in crowds:
            user_ids.extend(self.resolve(crowd, instance))
        return list(dict.fromkeys(user_ids))

    def resolve_profiles(self, crowd: Crowd, instance: WorkflowInstance) -> List[UserProfile]:
        """解析人群并返回用户资料"""
        profiles = []
        for user_id in self.resolve(crowd, instance):
            profile = self.directory.get_user(user_id)
            if profile is not None:
                profiles.append(profile)
        return profiles


class QuorumEvaluator:
    """根据当前任务记录计算审批结果（每次轮询都重新统计）"""

    def __init__(self, resolver: CrowdResolver, repository: InstanceRepository):
        self.resolver = resolver
        self.repository = repository

    def tally(self, gate: Gate, instance: WorkflowInstance) -> GateTally:
        """统计单个审批组在本次活动访问中的通过/驳回数"""
        user_ids = self.resolver.resolve(gate.crowd, instance)
        if not user_ids:
            return GateTally(gate, 0, 0)
        scope = dict(
            instance_id=instance.id,
            activity_id=instance.activity_id,
            visit_number=instance.visit_number,
            user_ids=user_ids,
        )
        return GateTally(
            gate=gate,
            approvals=self.repository.count_tasks(statuses=[TaskStatus.APPROVED], **scope),
            rejections=self.repository.count_tasks(statuses=[TaskStatus.REJECTED], **scope),
        )

    def evaluate(self, gates: List[Gate], join_operator: JoinOperator,
                 instance: WorkflowInstance) -> Optional[PortType]:
        """返回 SUCCESS / FAILURE，尚未决出时返回 None"""
        if not gates:
            return None

        tallies = [self.tally(gate, instance) for gate in gates]

        # 任一审批组达到驳回阈值即失败，与连接方式无关
        for tally in tallies:
            if tally.rejected:
                logger.debug(
                    f"Gate {tally.gate.crowd} rejected workflow instance {instance.id} "
                    f"({tally.rejections}/{tally.gate.min_rejections})"
                )
                return PortType.FAILURE

        if join_operator == JoinOperator.OR:
            if any(tally.approved for tally in tallies):
                return PortType.SUCCESS
            return None

        if all(tally.approved for tally in tallies):
            return PortType.SUCCESS
        return None

    def all_tasks_closed(self, instance: WorkflowInstance) -> bool:
        """非审批类任务：本次访问中不再有待处理任务"""
        return self.repository.count_tasks(
            instance_id=instance.id,
            activity_id=instance.activity_id,
            visit_number=instance.visit_number,
            statuses=OPEN_TASK_STATUSES,
        ) == 0
