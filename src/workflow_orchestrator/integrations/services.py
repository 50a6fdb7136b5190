"""
外部服务注册表
"""
import inspect
import logging
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List

from ..exceptions import ServiceNotFoundError


logger = logging.getLogger(__name__)


class ServiceRegistry(ABC):
    """服务注册表接口"""

    @abstractmethod
    def register(self, name: str, handler: Callable):
        """注册服务"""
        pass

    @abstractmethod
    def unregister(self, name: str):
        """注销服务"""
        pass

    @abstractmethod
    def list_services(self) -> List[str]:
        """列出已注册服务"""
        pass

    @abstractmethod
    def invoke(self, name: str, parameters: Dict[str, Any]) -> Any:
        """调用服务"""
        pass


class LocalServiceRegistry(ServiceRegistry):
    """本地服务注册表实现"""

    def __init__(self):
        self.handlers: Dict[str, Callable] = {}

    def register(self, name: str, handler: Callable):
        if not callable(handler):
            raise ValueError(f"Handler for service {name} must be callable")
        if inspect.iscoroutinefunction(handler):
            raise ValueError(f"Handler for service {name} must be synchronous")

        self.handlers[name] = handler
        logger.info(f"Registered service: {name}")

    def unregister(self, name: str):
        if self.handlers.pop(name, None) is not None:
            logger.info(f"Unregistered service: {name}")

    def list_services(self) -> List[str]:
        return sorted(self.handlers)

    def invoke(self, name: str, parameters: Dict[str, Any]) -> Any:
        handler = self.handlers.get(name)
        if handler is None:
            raise ServiceNotFoundError(name)

        logger.debug(f"Invoking service {name}")
        return handler(**parameters)
