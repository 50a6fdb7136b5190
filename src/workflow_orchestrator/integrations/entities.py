"""
被跟踪业务实体的访问网关
"""
import logging
from abc import ABC, abstractmethod
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Optional

from sqlalchemy import MetaData, Table, select, update
from sqlalchemy import types as sqltypes
from sqlalchemy.exc import NoSuchTableError

from ..exceptions import EntityNotFoundError, WorkflowValidationError


logger = logging.getLogger(__name__)


class FieldType(Enum):
    """实体字段类型"""
    BOOLEAN = "boolean"
    DATE = "date"
    NUMBER = "number"
    TEXT = "text"


class EntityGateway(ABC):
    """业务实体网关接口"""

    @abstractmethod
    def get_record(self, entity_name: str, key_field: str, key_value: str) -> Optional[Dict[str, Any]]:
        """读取业务记录"""
        pass

    @abstractmethod
    def get_field_type(self, entity_name: str, field_name: str) -> Optional[FieldType]:
        """获取字段类型，字段不存在时返回 None"""
        pass

    @abstractmethod
    def update_status(self, entity_name: str, key_field: str, key_value: str, status_id: str):
        """更新业务记录状态"""
        pass


def infer_field_type(value: Any) -> FieldType:
    """根据值推断字段类型"""
    if isinstance(value, bool):
        return FieldType.BOOLEAN
    if isinstance(value, (datetime, date)):
        return FieldType.DATE
    if isinstance(value, (int, float, Decimal)):
        return FieldType.NUMBER
    return FieldType.TEXT


class InMemoryEntityGateway(EntityGateway):
    """内存实体网关实现"""

    def __init__(self, status_field: str = "status_id"):
        self.status_field = status_field
        self.records: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self.field_types: Dict[str, Dict[str, FieldType]] = {}

    def add_record(self, entity_name: str, key_value: str, fields: Dict[str, Any],
                   field_types: Dict[str, FieldType] = None):
        """登记一条业务记录，可显式声明字段类型"""
        self.records.setdefault(entity_name, {})[str(key_value)] = dict(fields)
        declared = self.field_types.setdefault(entity_name, {})
        for name, value in fields.items():
            declared.setdefault(name, infer_field_type(value))
        if field_types:
            declared.update(field_types)

    def get_record(self, entity_name: str, key_field: str, key_value: str) -> Optional[Dict[str, Any]]:
        record = self.records.get(entity_name, {}).get(str(key_value))
        return dict(record) if record is not None else None

    def get_field_type(self, entity_name: str, field_name: str) -> Optional[FieldType]:
        return self.field_types.get(entity_name, {}).get(field_name)

    def update_status(self, entity_name: str, key_field: str, key_value: str, status_id: str):
        record = self.records.get(entity_name, {}).get(str(key_value))
        if record is None:
            raise EntityNotFoundError(entity_name, key_value)
        record[self.status_field] = status_id


class SQLAlchemyEntityGateway(EntityGateway):
    """通过表反射访问业务表的实体网关（实体名即表名）"""

    def __init__(self, engine, status_field: str = "status_id"):
        self.engine = engine
        self.status_field = status_field
        self.metadata = MetaData()
        self._tables: Dict[str, Table] = {}

    def get_record(self, entity_name: str, key_field: str, key_value: str) -> Optional[Dict[str, Any]]:
        table = self._table(entity_name)
        with self.engine.connect() as conn:
            row = conn.execute(
                select(table).where(table.c[key_field] == key_value)
            ).mappings().first()
        return dict(row) if row is not None else None

    def get_field_type(self, entity_name: str, field_name: str) -> Optional[FieldType]:
        table = self._table(entity_name)
        if field_name not in table.c:
            return None
        column_type = table.c[field_name].type
        if isinstance(column_type, sqltypes.Boolean):
            return FieldType.BOOLEAN
        if isinstance(column_type, (sqltypes.Date, sqltypes.DateTime)):
            return FieldType.DATE
        if isinstance(column_type, (sqltypes.Integer, sqltypes.Numeric)):
            return FieldType.NUMBER
        return FieldType.TEXT

    def update_status(self, entity_name: str, key_field: str, key_value: str, status_id: str):
        table = self._table(entity_name)
        with self.engine.begin() as conn:
            result = conn.execute(
                update(table)
                .where(table.c[key_field] == key_value)
                .values({self.status_field: status_id})
            )
        if result.rowcount == 0:
            raise EntityNotFoundError(entity_name, key_value)
        logger.debug(f"Updated {entity_name} '{key_value}' {self.status_field} to {status_id}")

    def _table(self, entity_name: str) -> Table:
        """反射并缓存业务表"""
        if entity_name not in self._tables:
            try:
                self._tables[entity_name] = Table(entity_name, self.metadata, autoload_with=self.engine)
            except NoSuchTableError:
                raise WorkflowValidationError(f"Unknown entity '{entity_name}'")
        return self._tables[entity_name]
