"""
通知集成
"""
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List

from .directory import UserProfile


logger = logging.getLogger(__name__)


@dataclass
class SentMessage:
    """已发送的消息"""
    recipient: UserProfile
    template: str
    parameters: Dict[str, Any] = field(default_factory=dict)


class Notifier(ABC):
    """通知发送接口（发送即忘）"""

    @abstractmethod
    def send_templated_message(self, recipient: UserProfile, template: str,
                               parameters: Dict[str, Any]):
        """按模板发送消息"""
        pass


class LoggingNotifier(Notifier):
    """仅记录日志的通知实现"""

    def send_templated_message(self, recipient: UserProfile, template: str,
                               parameters: Dict[str, Any]):
        logger.info(
            f"Notification '{template}' to {recipient.user_id} "
            f"<{recipient.email or 'no email'}>: {parameters.get('message', '')}"
        )


class RecordingNotifier(Notifier):
    """记录已发送消息的通知实现（用于测试与本地调试）"""

    def __init__(self):
        self.sent: List[SentMessage] = []

    def send_templated_message(self, recipient: UserProfile, template: str,
                               parameters: Dict[str, Any]):
        self.sent.append(SentMessage(recipient, template, dict(parameters)))
