"""qcforms/operators.py – closed operator tables.

``ENSURE_OPERATORS`` is the fixed set accepted by ``ensure``; each entry
renders the test over two *already evaluated* operand names, so a template
may mention an operand more than once.  The remaining tables cover operator
applications inside ordinary host expressions.

Templates refer to helper modules only through ``HOST_MODULES``.
"""

from __future__ import annotations

import re
from types import ModuleType
from typing import Dict, Mapping

# modules the rendered tests refer to by name; bound when an expansion is
# evaluated and treated as known by the scope checker
HOST_MODULES: Mapping[str, ModuleType] = {"re": re}

ENSURE_OPERATORS: Mapping[str, str] = {
    "==": "{left} == {right}",
    "<": "{left} < {right}",
    ">": "{left} > {right}",
    "<=": "{left} <= {right}",
    ">=": "{left} >= {right}",
    "===": "type({left}) is type({right}) and {left} == {right}",
    "=~": "re.search({right}, str({left})) is not None",
    "!==": "not (type({left}) is type({right}) and {left} == {right})",
    "!=": "{left} != {right}",
    "in": "{left} in {right}",
}

# n-ary, folded left: (+ a b c) -> (a + b + c)
ARITHMETIC_OPERATORS: Dict[str, str] = {
    "+": "+",
    "-": "-",
    "*": "*",
    "/": "/",
    "//": "//",
    "%": "%",
    "**": "**",
}

# exactly two operands
COMPARISON_OPERATORS: Dict[str, str] = {
    "==": "==",
    "!=": "!=",
    "<": "<",
    ">": ">",
    "<=": "<=",
    ">=": ">=",
    "in": "in",
    "not-in": "not in",
    "is": "is",
    "is-not": "is not",
}

BOOLEAN_OPERATORS: Dict[str, str] = {
    "and": "and",
    "or": "or",
}


def render_ensure_test(operator: str, left: str, right: str) -> str:
    """Python test for ``(ensure (operator left right))`` over operand names."""
    return f"({ENSURE_OPERATORS[operator].format(left=left, right=right)})"
