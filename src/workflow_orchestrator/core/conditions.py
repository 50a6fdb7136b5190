"""
条件求值

条件是 Boolean / Date / Number / Text / Script 五种变体之一，每种变体有封闭的运算符集合。
CONDITION 活动的多个条件按 AND/OR 短路连接。
"""
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Iterable, Mapping, Optional

from ..integrations.entities import FieldType
from ..models.instance import InstanceVariable
from ..models.workflow import ConditionSource, JoinOperator, VariableType
from .expression import ExpressionEvaluator, to_boolean


logger = logging.getLogger(__name__)


DATE_FORMAT = "%Y-%m-%d"


class BooleanOperator(Enum):
    """布尔运算符"""
    TRUE = "true"
    FALSE = "false"


class NumberOperator(Enum):
    """数值运算符"""
    EQUALS = "equals"
    NOT_EQUALS = "not_equals"
    LESS_THAN = "less_than"
    LESS_THAN_EQUALS = "less_than_equals"
    GREATER_THAN = "greater_than"
    GREATER_THAN_EQUALS = "greater_than_equals"


class TextOperator(Enum):
    """文本运算符"""
    EQUALS = "equals"
    NOT_EQUALS = "not_equals"
    STARTS_WITH = "starts_with"
    ENDS_WITH = "ends_with"
    CONTAINS = "contains"
    NOT_CONTAINS = "not_contains"
    EMPTY = "empty"
    NOT_EMPTY = "not_empty"


class DateOperator(Enum):
    """日期运算符（按天比较）"""
    BEFORE = "before"
    AFTER = "after"
    EQUALS = "equals"
    NOT_EQUALS = "not_equals"


# 数值运算符的符号写法
_NUMBER_SYMBOLS = {
    "==": NumberOperator.EQUALS,
    "!=": NumberOperator.NOT_EQUALS,
    "<": NumberOperator.LESS_THAN,
    "<=": NumberOperator.LESS_THAN_EQUALS,
    ">": NumberOperator.GREATER_THAN,
    ">=": NumberOperator.GREATER_THAN_EQUALS,
}


class Condition(ABC):
    """条件基类"""

    @abstractmethod
    def evaluate(self) -> bool:
        """求值"""
        pass


@dataclass
class BooleanCondition(Condition):
    left: bool
    operator: BooleanOperator

    def evaluate(self) -> bool:
        if self.operator == BooleanOperator.TRUE:
            return self.left is True
        return self.left is False


@dataclass
class NumberCondition(Condition):
    left: int
    operator: NumberOperator
    right: int

    def evaluate(self) -> bool:
        left, right = self.left, self.right
        if self.operator == NumberOperator.EQUALS:
            return left == right
        if self.operator == NumberOperator.NOT_EQUALS:
            return left != right
        if self.operator == NumberOperator.LESS_THAN:
            return left < right
        if self.operator == NumberOperator.LESS_THAN_EQUALS:
            return left <= right
        if self.operator == NumberOperator.GREATER_THAN:
            return left > right
        return left >= right


@dataclass
class TextCondition(Condition):
    left: Optional[str]
    operator: TextOperator
    right: Optional[str] = None

    def evaluate(self) -> bool:
        left = self.left or ""
        right = self.right or ""
        if self.operator == TextOperator.EQUALS:
            return left == right
        if self.operator == TextOperator.NOT_EQUALS:
            return left != right
        if self.operator == TextOperator.STARTS_WITH:
            return left.startswith(right)
        if self.operator == TextOperator.ENDS_WITH:
            return left.endswith(right)
        if self.operator == TextOperator.CONTAINS:
            return right in left
        if self.operator == TextOperator.NOT_CONTAINS:
            return right not in left
        if self.operator == TextOperator.EMPTY:
            return left == ""
        return left != ""


@dataclass
class DateCondition(Condition):
    left: date
    operator: DateOperator
    right: date

    def evaluate(self) -> bool:
        if self.operator == DateOperator.BEFORE:
            return self.left < self.right
        if self.operator == DateOperator.AFTER:
            return self.left > self.right
        if self.operator == DateOperator.EQUALS:
            return self.left == self.right
        return self.left != self.right


@dataclass
class ScriptCondition(Condition):
    script: str
    environment: Mapping[str, Any] = field(default_factory=dict)
    evaluator: ExpressionEvaluator = field(default_factory=ExpressionEvaluator, repr=False)

    def evaluate(self) -> bool:
        return to_boolean(self.evaluator.evaluate(self.script, self.environment))


def parse_boolean(value: Any) -> bool:
    """解析布尔值，支持 Y/N 与 true/false"""
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, Decimal)):
        return value != 0
    text = str(value).strip().lower()
    if text in ("y", "true", "1", "yes"):
        return True
    if text in ("n", "false", "0", "no", ""):
        return False
    raise ValueError(f"Not a boolean: {value!r}")


def parse_integer(value: Any) -> int:
    """按整数语义解析数值"""
    if isinstance(value, bool):
        raise ValueError(f"Not an integer: {value!r}")
    if isinstance(value, (int, float, Decimal)):
        return int(value)
    text = str(value).strip()
    try:
        return int(text)
    except ValueError:
        number = Decimal(text) if _looks_numeric(text) else None
        if number is not None and number == number.to_integral_value():
            return int(number)
        raise ValueError(f"Not an integer: {value!r}")


def parse_date(value: Any) -> date:
    """解析日期（取日期部分）"""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    try:
        return datetime.strptime(text[:10], DATE_FORMAT).date()
    except ValueError:
        raise ValueError(f"Not a date (expected YYYY-MM-DD): {value!r}")


def _looks_numeric(text: str) -> bool:
    try:
        return Decimal(text).is_finite()
    except ArithmeticError:
        return False


def _operator(enum_cls, value: Any):
    """将配置中的运算符转换为枚举"""
    if isinstance(value, enum_cls):
        return value
    text = str(value or "").strip()
    if enum_cls is NumberOperator and text in _NUMBER_SYMBOLS:
        return _NUMBER_SYMBOLS[text]
    try:
        return enum_cls(text.lower())
    except ValueError:
        raise ValueError(f"Unknown {enum_cls.__name__} '{value}'")


def build_typed_condition(field_type: FieldType, left: Any, item: Mapping[str, Any]) -> Condition:
    """根据左操作数类型构造条件，配置不合法时抛出 ValueError"""
    operator_value = item.get("operator")
    right = item.get("value")

    if field_type == FieldType.BOOLEAN:
        return BooleanCondition(
            left=parse_boolean(left) if left is not None else False,
            operator=_operator(BooleanOperator, operator_value)
        )
    if field_type == FieldType.NUMBER:
        if left is None:
            raise ValueError("Left operand is empty")
        return NumberCondition(
            left=parse_integer(left),
            operator=_operator(NumberOperator, operator_value),
            right=parse_integer(right)
        )
    if field_type == FieldType.DATE:
        if left is None:
            raise ValueError("Left operand is empty")
        return DateCondition(
            left=parse_date(left),
            operator=_operator(DateOperator, operator_value),
            right=parse_date(right)
        )
    return TextCondition(
        left=None if left is None else str(left),
        operator=_operator(TextOperator, operator_value),
        right=None if right is None else str(right)
    )


@dataclass
class ConditionData:
    """条件求值所需的实例数据"""
    record: Optional[Dict[str, Any]] = None
    field_types: Dict[str, FieldType] = field(default_factory=dict)
    variables: Dict[str, InstanceVariable] = field(default_factory=dict)  # 以变量ID为键
    environment: Dict[str, Any] = field(default_factory=dict)


class ConditionEvaluator:
    """按数据来源构造条件并连接求值"""

    def __init__(self, expression_evaluator: ExpressionEvaluator = None):
        self.expressions = expression_evaluator or ExpressionEvaluator()

    def build(self, source: ConditionSource, item: Mapping[str, Any], data: ConditionData) -> Condition:
        """构造单个条件，配置不合法时抛出 ValueError"""
        if source == ConditionSource.SCRIPT:
            script = item.get("script")
            if not script:
                raise ValueError("Script condition has no script")
            return ScriptCondition(script, data.environment, self.expressions)

        if source == ConditionSource.FIELD:
            field_name = item.get("field")
            field_type = data.field_types.get(field_name)
            if field_type is None:
                raise ValueError(f"Unknown field '{field_name}'")
            left = (data.record or {}).get(field_name)
            return build_typed_condition(field_type, left, item)

        variable_id = item.get("variable_id")
        variable = data.variables.get(variable_id)
        if variable is None:
            raise ValueError(f"Unknown variable '{variable_id}'")
        field_type = FieldType.NUMBER if variable.type == VariableType.NUMBER.value else FieldType.TEXT
        return build_typed_condition(field_type, variable.value, item)

    def evaluate(self, source: ConditionSource, items: Iterable[Mapping[str, Any]],
                 join_operator: JoinOperator, data: ConditionData) -> bool:
        """构造并连接求值全部条件，无法构造的条件被跳过"""
        conditions = []
        for item in items:
            try:
                conditions.append(self.build(source, item, data))
            except ValueError as e:
                logger.warning(f"Skipping {source.value} condition {dict(item)}: {e}")
        return join_conditions(conditions, join_operator)


def join_conditions(conditions: Iterable[Condition], join_operator: JoinOperator) -> bool:
    """短路连接：OR 遇真即真，AND 遇假即假；求值出错的条件记录日志后跳过"""
    met = join_operator == JoinOperator.AND
    for condition in conditions:
        try:
            result = condition.evaluate()
        except Exception as e:
            logger.error(f"Condition evaluation failed for {condition}: {e}")
            continue

        if join_operator == JoinOperator.OR and result:
            return True
        if join_operator == JoinOperator.AND and not result:
            return False
    return met
