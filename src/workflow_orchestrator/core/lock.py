"""
实例执行锁

锁持有者写在实例记录的 semaphore 字段上：先无条件写入自己的标识，再重新读取实例，
读回的值仍是自己才算获得锁。这是“后写者胜”的做法而非真正的比较交换，
写入与读回之间若插入了其他进程的写入，两个进程可能同时认为自己持有锁；
锁也没有租期，持有者崩溃后需要人工清除。
"""
import logging
from contextlib import contextmanager
from typing import Iterator, Optional

from ..models.instance import WorkflowInstance
from ..storage.repository import InstanceRepository


logger = logging.getLogger(__name__)


class ExecutionLock:
    """基于 semaphore 字段的实例执行锁"""

    def __init__(self, repository: InstanceRepository, owner: str):
        self.repository = repository
        self.owner = owner

    def acquire(self, instance_id: str) -> Optional[WorkflowInstance]:
        """尝试获取锁，成功时返回最新实例快照，否则返回 None"""
        self.repository.update_instance(instance_id, semaphore=self.owner)
        instance = self.repository.get_instance(instance_id)
        if instance is None or instance.semaphore != self.owner:
            holder = instance.semaphore if instance else None
            logger.debug(
                f"Workflow instance {instance_id} locked by {holder}, not executing on {self.owner}"
            )
            return None
        return instance

    def release(self, instance_id: str):
        """释放锁"""
        self.repository.update_instance(instance_id, semaphore=None)

    @contextmanager
    def hold(self, instance_id: str) -> Iterator[Optional[WorkflowInstance]]:
        """持有锁执行代码块；未获得锁时产出 None 且不释放"""
        instance = self.acquire(instance_id)
        try:
            yield instance
        finally:
            if instance is not None:
                self.release(instance_id)
