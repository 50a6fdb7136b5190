"""
超时扫描器

周期性地找出等待期限已过的实例，对每个实例调用一次普通的 start。
扫描器本身不持有执行锁，单个实例失败不影响同一轮中的其他实例。
"""
import logging
import threading
from typing import List, Optional

from ..models.instance import OPEN_INSTANCE_STATUSES


logger = logging.getLogger(__name__)


class TimeoutScanner:
    """超时扫描器"""

    def __init__(self, engine, interval: float = None, batch_size: int = 100):
        self.engine = engine
        self.interval = interval if interval is not None else engine.settings.sweep_interval
        self.batch_size = batch_size
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def find_elapsed(self) -> List[str]:
        """列出等待期限已过的实例ID"""
        now = self.engine.clock()
        instance_ids = []
        offset = 0
        while True:
            batch = self.engine.instance_repository.find_instances(
                statuses=OPEN_INSTANCE_STATUSES,
                timeout_before=now,
                offset=offset,
                limit=self.batch_size
            )
            instance_ids.extend(instance.id for instance in batch)
            if len(batch) < self.batch_size:
                return instance_ids
            offset += self.batch_size

    def sweep(self) -> int:
        """执行一轮扫描，返回成功调用 start 的实例数"""
        started = 0
        instance_ids = self.find_elapsed()
        for instance_id in instance_ids:
            try:
                self.engine.start(instance_id)
                started += 1
            except Exception:
                logger.exception(f"Failed to start elapsed workflow instance {instance_id}")

        if instance_ids:
            logger.info(f"Timeout sweep started {started} of {len(instance_ids)} elapsed instance(s)")
        return started

    def run_forever(self):
        """按固定间隔扫描，直到调用 stop"""
        logger.info(f"Timeout scanner running every {self.interval}s")
        while not self._stop_event.is_set():
            try:
                self.sweep()
            except Exception:
                logger.exception("Timeout sweep failed")
            self._stop_event.wait(self.interval)
        logger.info("Timeout scanner stopped")

    def start(self):
        """在后台线程中运行"""
        if self._thread and self._thread.is_alive():
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self.run_forever, name="timeout-scanner", daemon=True)
        self._thread.start()

    def stop(self, timeout: float = None):
        """停止扫描"""
        self._stop_event.set()
        if self._thread:
            self._thread.join(timeout)
            self._thread = None
