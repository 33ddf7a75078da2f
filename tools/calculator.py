# tools/calculator.py
from __future__ import annotations

import math
from typing import Any, List, Mapping

from outcome import ToolExecutionError
from tools.tool_schema import get_str

_FUNCS = {
    "sqrt": math.sqrt,
    "sin": lambda deg: math.sin(math.radians(deg)),
    "cos": lambda deg: math.cos(math.radians(deg)),
}


class CalculatorError(ValueError):
    pass


def _operand(tok: str) -> float:
    if not tok:
        raise CalculatorError("missing operand")
    for fname, fn in _FUNCS.items():
        if tok.startswith(fname + "(") and tok.endswith(")"):
            inner = tok[len(fname) + 1:-1]
            try:
                return fn(float(inner))
            except ValueError as e:
                if fname == "sqrt" and inner and _is_number(inner):
                    raise CalculatorError("square root of a negative number") from e
                raise CalculatorError(f"invalid argument to {fname}(): {inner!r}") from e
    try:
        return float(tok)
    except ValueError:
        raise CalculatorError(f"not a number: {tok!r}")


def _is_number(s: str) -> bool:
    try:
        float(s)
        return True
    except ValueError:
        return False


def _binary_minus_at(expr: str) -> List[int]:
    # a '-' that follows an operator, '(' or an exponent 'e' (or starts the
    # expression) is a sign, not subtraction
    return [
        i for i, ch in enumerate(expr)
        if ch == "-" and i > 0 and expr[i - 1] not in "+-*/(eE"
    ]


def _split_minus(expr: str, cuts: List[int]) -> List[str]:
    parts, start = [], 0
    for i in cuts:
        parts.append(expr[start:i])
        start = i + 1
    parts.append(expr[start:])
    return parts


def evaluate(expression: str) -> float:
    """
    Deliberately minimal: one operator kind per expression, checked in the
    order + - * /, folded left to right. No precedence, no nesting beyond the
    unary sqrt/sin/cos.
    """
    expr = (expression or "").replace(" ", "")
    if not expr:
        raise CalculatorError("empty expression")

    if "+" in expr:
        return sum(_operand(p) for p in expr.split("+"))
    cuts = _binary_minus_at(expr)
    if cuts:
        parts = _split_minus(expr, cuts)
        acc = _operand(parts[0])
        for p in parts[1:]:
            acc -= _operand(p)
        return acc
    if "*" in expr:
        acc = 1.0
        for p in expr.split("*"):
            acc *= _operand(p)
        return acc
    if "/" in expr:
        parts = expr.split("/")
        acc = _operand(parts[0])
        for p in parts[1:]:
            d = _operand(p)
            if d == 0:
                raise CalculatorError("division by zero")
            acc /= d
        return acc
    return _operand(expr)


def format_number(value: float) -> str:
    if math.isnan(value) or math.isinf(value):
        raise CalculatorError("result is not a finite number")
    if float(value).is_integer():
        return str(int(value))
    return f"{value:.10g}"


def calculator(params: Mapping[str, Any]) -> str:
    expression = get_str("calculator", params, "expression")
    try:
        result = format_number(evaluate(expression))
    except CalculatorError as e:
        raise ToolExecutionError("calculator", f"Error evaluating expression: {e}") from e
    return f"The result of '{expression}' is: {result}"
