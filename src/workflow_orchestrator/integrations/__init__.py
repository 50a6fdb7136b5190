"""External system integrations"""

from .directory import UserDirectory, UserProfile, GroupMembership, InMemoryUserDirectory
from .notifications import Notifier, LoggingNotifier, RecordingNotifier, SentMessage
from .units import UnitConverter, TimeUnitConverter
from .entities import (
    EntityGateway,
    FieldType,
    InMemoryEntityGateway,
    SQLAlchemyEntityGateway,
)
from .services import ServiceRegistry, LocalServiceRegistry

__all__ = [
    "UserDirectory",
    "UserProfile",
    "GroupMembership",
    "InMemoryUserDirectory",
    "Notifier",
    "LoggingNotifier",
    "RecordingNotifier",
    "SentMessage",
    "UnitConverter",
    "TimeUnitConverter",
    "EntityGateway",
    "FieldType",
    "InMemoryEntityGateway",
    "SQLAlchemyEntityGateway",
    "ServiceRegistry",
    "LocalServiceRegistry",
]
