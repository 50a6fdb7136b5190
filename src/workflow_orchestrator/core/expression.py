"""
沙箱表达式求值器

支持 Python 表达式语法的一个安全子集：字面量、变量名、算术/比较/布尔运算、
条件表达式、下标以及少量内置函数。变量通过环境映射传入，不做文本替换。
"""
import ast
import operator
import logging
from decimal import Decimal
from typing import Any, Callable, Dict, Mapping, Optional

from ..exceptions import ExpressionError


logger = logging.getLogger(__name__)


MAX_EXPRESSION_LENGTH = 2000
MAX_EXPONENT = 100
MAX_SEQUENCE_LENGTH = 10000
MAX_INTEGER_BITS = 4096


_BINARY_OPERATORS: Dict[type, Callable] = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
    ast.FloorDiv: operator.floordiv,
    ast.Mod: operator.mod,
    ast.Pow: operator.pow,
}

_UNARY_OPERATORS: Dict[type, Callable] = {
    ast.UAdd: operator.pos,
    ast.USub: operator.neg,
    ast.Not: operator.not_,
}

_COMPARE_OPERATORS: Dict[type, Callable] = {
    ast.Eq: operator.eq,
    ast.NotEq: operator.ne,
    ast.Lt: operator.lt,
    ast.LtE: operator.le,
    ast.Gt: operator.gt,
    ast.GtE: operator.ge,
    ast.In: lambda left, right: left in right,
    ast.NotIn: lambda left, right: left not in right,
}

_FUNCTIONS: Dict[str, Callable] = {
    "len": len,
    "min": min,
    "max": max,
    "abs": abs,
    "round": round,
    "int": int,
    "float": float,
    "str": str,
}

_CONSTANT_NAMES: Dict[str, Any] = {
    "true": True,
    "false": False,
    "null": None,
}


def _is_integer(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _check_result_size(op: ast.operator, left: Any, right: Any, expression: str):
    """在计算之前拒绝会产生超大结果的运算"""
    sequences = (str, list, tuple)
    if isinstance(op, ast.Pow):
        if isinstance(right, (int, float)) and abs(right) > MAX_EXPONENT:
            raise ExpressionError(expression, "exponent is too large")
        if _is_integer(left) and _is_integer(right) and right > 0:
            if abs(left).bit_length() * right > MAX_INTEGER_BITS:
                raise ExpressionError(expression, "result is too large")
    elif isinstance(op, ast.Mult):
        for sequence, count in ((left, right), (right, left)):
            if isinstance(sequence, sequences) and _is_integer(count):
                if len(sequence) * count > MAX_SEQUENCE_LENGTH:
                    raise ExpressionError(expression, "sequence is too long")
        if _is_integer(left) and _is_integer(right):
            if abs(left).bit_length() + abs(right).bit_length() > MAX_INTEGER_BITS:
                raise ExpressionError(expression, "result is too large")
    elif isinstance(op, ast.Add):
        if isinstance(left, sequences) and isinstance(right, sequences):
            if len(left) + len(right) > MAX_SEQUENCE_LENGTH:
                raise ExpressionError(expression, "sequence is too long")


class ExpressionEvaluator:
    """表达式求值器"""

    def __init__(self, functions: Optional[Mapping[str, Callable]] = None):
        self.functions = dict(_FUNCTIONS)
        if functions:
            self.functions.update(functions)

    def evaluate(self, expression: str, environment: Optional[Mapping[str, Any]] = None) -> Any:
        """在给定环境中求值表达式"""
        if expression is None or not str(expression).strip():
            raise ExpressionError(str(expression), "expression is empty")
        if len(expression) > MAX_EXPRESSION_LENGTH:
            raise ExpressionError(expression[:50] + "...", "expression is too long")

        try:
            tree = ast.parse(expression.strip(), mode="eval")
        except SyntaxError as e:
            raise ExpressionError(expression, f"syntax error: {e.msg}")

        try:
            return self._eval(tree.body, environment or {}, expression)
        except ExpressionError:
            raise
        except Exception as e:
            raise ExpressionError(expression, f"{type(e).__name__}: {e}")

    def evaluate_boolean(self, expression: str,
                         environment: Optional[Mapping[str, Any]] = None) -> bool:
        """求值并转换为布尔：布尔原样返回，数值大于 0 为真，其他为假"""
        return to_boolean(self.evaluate(expression, environment))

    def _eval(self, node: ast.AST, env: Mapping[str, Any], expression: str) -> Any:
        if isinstance(node, ast.Constant):
            return node.value

        if isinstance(node, ast.Name):
            if node.id in env:
                return env[node.id]
            if node.id in _CONSTANT_NAMES:
                return _CONSTANT_NAMES[node.id]
            raise ExpressionError(expression, f"unknown name '{node.id}'")

        if isinstance(node, ast.BoolOp):
            # 短路求值
            if isinstance(node.op, ast.And):
                result = True
                for value in node.values:
                    result = self._eval(value, env, expression)
                    if not result:
                        return result
                return result
            result = False
            for value in node.values:
                result = self._eval(value, env, expression)
                if result:
                    return result
            return result

        if isinstance(node, ast.BinOp):
            op = _BINARY_OPERATORS.get(type(node.op))
            if op is None:
                raise ExpressionError(expression, f"operator {type(node.op).__name__} is not allowed")
            left = self._eval(node.left, env, expression)
            right = self._eval(node.right, env, expression)
            _check_result_size(node.op, left, right, expression)
            return op(left, right)

        if isinstance(node, ast.UnaryOp):
            op = _UNARY_OPERATORS.get(type(node.op))
            if op is None:
                raise ExpressionError(expression, f"operator {type(node.op).__name__} is not allowed")
            return op(self._eval(node.operand, env, expression))

        if isinstance(node, ast.Compare):
            left = self._eval(node.left, env, expression)
            for op_node, comparator in zip(node.ops, node.comparators):
                op = _COMPARE_OPERATORS.get(type(op_node))
                if op is None:
                    raise ExpressionError(expression, f"operator {type(op_node).__name__} is not allowed")
                right = self._eval(comparator, env, expression)
                if not op(left, right):
                    return False
                left = right
            return True

        if isinstance(node, ast.IfExp):
            if self._eval(node.test, env, expression):
                return self._eval(node.body, env, expression)
            return self._eval(node.orelse, env, expression)

        if isinstance(node, (ast.List, ast.Tuple)):
            items = [self._eval(item, env, expression) for item in node.elts]
            return items if isinstance(node, ast.List) else tuple(items)

        if isinstance(node, ast.Subscript):
            value = self._eval(node.value, env, expression)
            index = self._eval(node.slice, env, expression)
            return value[index]

        if isinstance(node, ast.Call):
            if not isinstance(node.func, ast.Name) or node.func.id not in self.functions:
                raise ExpressionError(expression, "only whitelisted functions may be called")
            if node.keywords:
                raise ExpressionError(expression, "keyword arguments are not allowed")
            args = [self._eval(arg, env, expression) for arg in node.args]
            return self.functions[node.func.id](*args)

        raise ExpressionError(expression, f"{type(node).__name__} is not allowed")


def to_boolean(value: Any) -> bool:
    """脚本结果转换为布尔"""
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float, Decimal)):
        return value > 0
    return False
