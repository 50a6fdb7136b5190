"""
实例变量的类型转换
"""
import logging
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Iterable, Optional

from ..exceptions import ExpressionError, VariableNotFoundError
from ..models.instance import InstanceVariable
from ..models.workflow import VariableType
from ..storage.repository import InstanceRepository
from .expression import ExpressionEvaluator


logger = logging.getLogger(__name__)


def parse_number(value: Any):
    """将文本解析为 int（整数值）或 float"""
    if isinstance(value, bool):
        raise ValueError(f"Not a number: {value!r}")
    if isinstance(value, (int, float)):
        return value
    if isinstance(value, Decimal):
        return int(value) if value == value.to_integral_value() else float(value)
    text = str(value).strip()
    try:
        return int(text)
    except ValueError:
        pass
    try:
        number = Decimal(text)
    except InvalidOperation:
        raise ValueError(f"Not a number: {value!r}")
    if not number.is_finite():
        raise ValueError(f"Not a number: {value!r}")
    return int(number) if number == number.to_integral_value() else float(number)


def typed_value(variable: InstanceVariable) -> Any:
    """按变量类型返回 Python 值，数值变量无法解析时返回 None"""
    if variable.value is None:
        return None
    if variable.type == VariableType.NUMBER.value:
        try:
            return parse_number(variable.value)
        except ValueError:
            return None
    return variable.value


def format_value(value: Any, variable_type: str) -> Optional[str]:
    """将求值结果转换为变量存储文本"""
    if value is None:
        return None
    if variable_type == VariableType.NUMBER.value:
        number = parse_number(value)
        if isinstance(number, float) and number.is_integer():
            number = int(number)
        return str(number)
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def variable_environment(variables: Iterable[InstanceVariable]) -> Dict[str, Any]:
    """构建表达式环境：变量名与变量ID都可引用"""
    environment = {}
    for variable in variables:
        value = typed_value(variable)
        environment[variable.variable_id] = value
        environment[variable.name] = value
    return environment


class VariableUpdater:
    """对表达式求值并写回实例变量"""

    def __init__(self, repository: InstanceRepository, evaluator: ExpressionEvaluator = None):
        self.repository = repository
        self.evaluator = evaluator or ExpressionEvaluator()

    def update(self, instance_id: str, variable_id: str, expression: str) -> InstanceVariable:
        """求值失败时抛出 ExpressionError，变量不变"""
        variable = self.repository.get_variable(instance_id, variable_id)
        if variable is None:
            raise VariableNotFoundError(instance_id, variable_id)

        environment = variable_environment(self.repository.list_variables(instance_id))
        result = self.evaluator.evaluate(expression, environment)
        try:
            value = format_value(result, variable.type)
        except ValueError as e:
            raise ExpressionError(expression, str(e))

        updated = self.repository.update_variable(instance_id, variable_id, value)
        logger.debug(f"Variable {variable_id} of workflow instance {instance_id} set to {value!r}")
        return updated
