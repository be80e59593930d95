"""
qcforms/expander.py
===================

Expander: typed form nodes and host expressions → Python expression source.

Every surface form becomes a single Python *expression* whose calls target
the engine through ``config.engine_alias``::

    (forall (<- x eqc.int) :do (>= (abs x) 0))
        →  eqc.forall(eqc.int, (lambda x: (abs(x) >= 0)))

Binding
-------
Patterns become lambda parameters, so the names a pattern binds are visible
exactly inside the lambda body and never in the generator, which is
emitted outside the lambda.  A sequence pattern gets one fresh parameter
that is unpacked with ``*`` into a nested lambda over its elements.

Deferral
--------
Bodies that the engine decides when to run are emitted as zero-argument
lambdas; nothing the expander emits calls such a lambda.

Fresh names
-----------
Every invented name starts with ``_qc_`` (reserved, patterns may not use it)
and carries a counter private to one ``Expander``, so two expansions never
share state.
"""

from __future__ import annotations

import logging
from typing import Dict, List, Tuple

from qcforms import ast as A
from qcforms.config import RESERVED_PREFIX, TranslatorConfig
from qcforms.dispatcher import call_shape, dispatch, python_name
from qcforms.engine import ENGINE_PRIMITIVES, RESULT_KEY
from qcforms.errors import ErrorCode, ReadError
from qcforms.operators import (
    ARITHMETIC_OPERATORS,
    BOOLEAN_OPERATORS,
    COMPARISON_OPERATORS,
    ENSURE_OPERATORS,
    render_ensure_test,
)

__all__ = ["Expander", "COVERAGE_WARNING", "ENSURE_MESSAGE"]

logger = logging.getLogger(__name__)

COVERAGE_WARNING = "Warning: not all features covered! {}\n"
ENSURE_MESSAGE = "not ensured: {}\n"

_CONSTANTS: Dict[str, str] = {
    "True": "True",
    "False": "False",
    "None": "None",
    "true": "True",
    "false": "False",
    "nil": "None",
}


class Expander:
    """Expands one surface datum (and everything nested in it)."""

    def __init__(self, config: TranslatorConfig | None = None) -> None:
        self.config = config or TranslatorConfig()
        self.alias = self.config.engine_alias
        self._counter = 0
        # first source location of every free name, for diagnostics
        self.symbol_locs: Dict[str, A.SourceLoc] = {}

    def expand(self, datum: A.Datum) -> str:
        return self.expression(datum)

    def expression(self, datum: A.Datum) -> str:
        """Python source for *datum*: a form if its head names one, otherwise
        an ordinary host expression."""
        node = dispatch(datum)
        if node is not None:
            logger.debug("expanding %s at %s", node.form.value, node.loc)
            return node.accept(self)
        return self._host(datum)

    # ─────────────────────────────────────────────────────────────
    # Emission helpers
    # ─────────────────────────────────────────────────────────────

    def _fresh(self, stem: str) -> str:
        self._counter += 1
        return f"{RESERVED_PREFIX}{stem}{self._counter}"

    def _call(self, primitive: str, *args: str) -> str:
        if primitive not in ENGINE_PRIMITIVES:
            raise ValueError(f"unknown engine primitive {primitive!r}")
        return f"{self.alias}.{primitive}({', '.join(args)})"

    def _thunk(self, body: str) -> str:
        return f"(lambda: {body})"

    def _lazy(self, body: str) -> str:
        return self._call("lazy", self._thunk(body))

    def _lambda(self, pattern: A.Pattern, body: str) -> str:
        param, body = self._bind(pattern, body)
        return f"(lambda {param}: {body})"

    def _bind(self, pattern: A.Pattern, body: str) -> Tuple[str, str]:
        """Lambda parameter for *pattern* and *body* wrapped so that every
        name of the pattern is bound inside it."""
        if isinstance(pattern, A.NamePattern):
            return pattern.name, body
        if isinstance(pattern, A.WildcardPattern):
            return self._fresh("ignored"), body
        params: List[str] = []
        inner = body
        for element in reversed(pattern.elements):
            param, inner = self._bind(element, inner)
            params.insert(0, param)
        packed = self._fresh("seq")
        return packed, f"(lambda {', '.join(params)}: {inner})(*{packed})"

    def _diagnostic(self, action: str) -> str:
        """One-argument failure callback: record the failing result under
        ``RESULT_KEY``, then evaluate *action*."""
        result = self._fresh("result")
        record = self._call("put_result", repr(RESULT_KEY), result)
        return f"(lambda {result}: ({record}, {action})[-1])"

    # ─────────────────────────────────────────────────────────────
    # Binding forms
    # ─────────────────────────────────────────────────────────────

    def visit_forall(self, node: A.ForAll) -> str:
        generator = self.expression(node.clause.generator)
        body = self.expression(node.body)
        return self._call("forall", generator, self._lambda(node.clause.pattern, body))

    def visit_let(self, node: A.Let) -> str:
        result = self.expression(node.body)
        for clause in reversed(node.chain.clauses):
            generator = self.expression(clause.generator)
            result = self._call("bind", generator, self._lambda(clause.pattern, result))
        return result

    def visit_such_that(self, node: A.SuchThat) -> str:
        generator = self.expression(node.clause.generator)
        predicate = self._lambda(node.clause.pattern, self.expression(node.predicate))
        location = f"({node.loc.file!r}, {node.loc.line})"
        return self._call("suchthat", generator, predicate, location)

    def visit_such_that_maybe(self, node: A.SuchThatMaybe) -> str:
        generator = self.expression(node.clause.generator)
        predicate = self._lambda(node.clause.pattern, self.expression(node.predicate))
        return self._call("suchthatmaybe", generator, predicate)

    def visit_let_shrink(self, node: A.LetShrink) -> str:
        generator = self.expression(node.clause.generator)
        body = self._lambda(node.clause.pattern, self.expression(node.body))
        return self._call("letshrink", generator, body)

    def visit_setup_teardown(self, node: A.SetupTeardown) -> str:
        setup = self.expression(node.setup)
        prop = self._lazy(self.expression(node.body))
        if node.teardown is not None:
            param, teardown = self._bind(
                node.teardown.pattern, self.expression(node.teardown.body)
            )
        else:
            param, teardown = self._fresh("setup"), "None"
        setup_thunk = f"(lambda: (lambda {param}: (lambda: {teardown}))({setup}))"
        return f"({setup_thunk}, {prop})"

    def visit_setup(self, node: A.Setup) -> str:
        setup = self.expression(node.setup)
        prop = self._lazy(self.expression(node.body))
        return f"((lambda: ({setup}, (lambda: None))[-1]), {prop})"

    # ─────────────────────────────────────────────────────────────
    # Modifier forms
    # ─────────────────────────────────────────────────────────────

    def visit_sized(self, node: A.Sized) -> str:
        return self._call("sized", self._lambda(node.size, self.expression(node.body)))

    def visit_shrink(self, node: A.Shrink) -> str:
        generator = self.expression(node.generator)
        alternatives = self._thunk(self.expression(node.alternatives))
        return self._call("shrinkwith", generator, alternatives)

    def visit_when_fail(self, node: A.WhenFail) -> str:
        action = self.expression(node.action)
        prop = self._lazy(self.expression(node.body))
        return self._call("whenfail", self._diagnostic(action), prop)

    def visit_lazy(self, node: A.Lazy) -> str:
        return self._lazy(self.expression(node.body))

    def visit_implies(self, node: A.Implies) -> str:
        condition = self.expression(node.condition)
        body = self._thunk(self.expression(node.body))
        return self._call("implies", condition, repr(node.label), body)

    def visit_trap_exit(self, node: A.TrapExit) -> str:
        return self._call("trapexit", self._thunk(self.expression(node.body)))

    def visit_timeout(self, node: A.Timeout) -> str:
        limit = self.expression(node.limit)
        return self._call("timeout_property", limit, self._lazy(self.expression(node.body)))

    def visit_always(self, node: A.Always) -> str:
        count = self.expression(node.count)
        return self._call("always", count, self._thunk(self.expression(node.body)))

    def visit_sometimes(self, node: A.Sometimes) -> str:
        count = self.expression(node.count)
        return self._call("sometimes", count, self._thunk(self.expression(node.body)))

    def visit_once_only(self, node: A.OnceOnly) -> str:
        return self._call("onceonly", self._thunk(self.expression(node.body)))

    # ─────────────────────────────────────────────────────────────
    # Keyword-list and operator forms
    # ─────────────────────────────────────────────────────────────

    def visit_collect(self, node: A.Collect) -> str:
        # folded from the last entry so the first-declared tag is outermost
        result = self.expression(node.spec.body)
        for entry in reversed(node.spec.entries):
            if isinstance(entry, A.CollectCoverage):
                labeler = self._coverage_checker(entry)
                sample = self.expression(entry.count)
            else:
                labeler = self._call("with_title", repr(entry.tag))
                sample = self.expression(entry.term)
            result = self._call("collect", labeler, sample, result)
        return result

    def _coverage_checker(self, entry: A.CollectCoverage) -> str:
        observed = self._fresh("res")
        missing = self._fresh("missing")
        req = self._fresh("req")
        pair = self._fresh("pair")
        requirements = self.expression(entry.requirements)
        warning = self._call("format", repr(COVERAGE_WARNING), f"[{missing}]")
        uncovered = (
            f"[{req} for {req} in {requirements} "
            f"if {req} not in [{pair}[0] for {pair} in {observed}]]"
        )
        check = f"(lambda {missing}: {warning} if {missing} else None)({uncovered})"
        label = f"{self._call('with_title', repr(entry.tag))}({observed})"
        return f"(lambda {observed}: ({check}, {label})[-1])"

    def visit_feature(self, node: A.Feature) -> str:
        term = self._fresh("term")
        prop = self._call("features", f"[{term}]", self.expression(node.prop))
        collect = self._call("collect", term, prop)
        return f"(lambda {term}: {collect})({self.expression(node.term)})"

    def visit_ensure(self, node: A.Ensure) -> str:
        expr = node.expr
        left, right = self._fresh("left"), self._fresh("right")
        rendering = f"repr({left}) + {' ' + expr.operator + ' '!r} + repr({right})"
        action = self._call("format", repr(ENSURE_MESSAGE), f"[{rendering}]")
        test = render_ensure_test(expr.operator, left, right)
        checked = self._call("whenfail", self._diagnostic(action), self._lazy(test))
        operands = f"{self.expression(expr.left)}, {self.expression(expr.right)}"
        return f"(lambda {left}, {right}: {checked})({operands})"

    # ─────────────────────────────────────────────────────────────
    # Host expressions
    # ─────────────────────────────────────────────────────────────

    def _host(self, datum: A.Datum) -> str:
        if isinstance(datum, A.Literal):
            return repr(datum.value)
        if isinstance(datum, A.Keyword):
            return repr(datum.name)
        if isinstance(datum, A.Symbol):
            return self._name(datum)
        if datum.bracket is A.Bracket.SQUARE:
            return f"[{', '.join(self.expression(item) for item in datum.items)}]"
        if not datum.items:
            return "()"
        head = datum.head
        if head is None:
            return self._application(datum)
        if head in ("<-", "->"):
            raise ReadError(f"{head!r} is only valid inside a binding form", datum.loc)
        special = getattr(self, f"_special_{head}", None)
        if special is not None and head.isidentifier():
            return special(datum)
        args = datum.args
        if head == "-" and len(args) == 1:
            return f"(-{self.expression(args[0])})"
        if head in ARITHMETIC_OPERATORS:
            return self._infix(datum, ARITHMETIC_OPERATORS[head], minimum=2)
        if head in BOOLEAN_OPERATORS:
            return self._infix(datum, BOOLEAN_OPERATORS[head], minimum=2)
        if head in COMPARISON_OPERATORS:
            if len(args) != 2:
                raise ReadError(f"{head!r} takes exactly two operands", datum.loc)
            return self._infix(datum, COMPARISON_OPERATORS[head], minimum=2)
        if head in ENSURE_OPERATORS:
            raise ReadError(f"{head!r} is only valid inside ensure", datum.loc)
        return self._application(datum)

    def _name(self, symbol: A.Symbol) -> str:
        if symbol.name in _CONSTANTS:
            return _CONSTANTS[symbol.name]
        parts = symbol.name.split(".")
        names = [python_name(part) for part in parts]
        if any(name is None for name in names):
            raise ReadError(
                f"{symbol.name!r} is not a valid name",
                symbol.loc,
                code=ErrorCode.INVALID_NAME,
            )
        if names[0].startswith(RESERVED_PREFIX):
            raise ReadError(
                f"names starting with {RESERVED_PREFIX!r} are reserved",
                symbol.loc,
                code=ErrorCode.INVALID_NAME,
            )
        self.symbol_locs.setdefault(names[0], symbol.loc)
        return ".".join(names)

    def _infix(self, datum: A.SList, operator: str, minimum: int) -> str:
        if len(datum.args) < minimum:
            raise ReadError(
                f"{datum.head!r} takes at least {minimum} operands", datum.loc
            )
        operands = f" {operator} ".join(self.expression(arg) for arg in datum.args)
        return f"({operands})"

    def _application(self, datum: A.SList) -> str:
        if isinstance(datum.items[0], A.Symbol):
            function = self._name(datum.items[0])
            shape = call_shape(datum)
        else:
            function = self.expression(datum.items[0])
            shape = call_shape(A.SList(items=(A.Symbol("_"),) + datum.args, loc=datum.loc))
        if shape.stray:
            raise ReadError(
                "positional argument after keyword argument", shape.stray[0].loc
            )
        args = [self.expression(arg) for arg in shape.positional]
        for name, value in shape.keywords:
            keyword_name = python_name(name)
            if keyword_name is None or value is None:
                raise ReadError(f"bad keyword argument :{name}", datum.loc)
            args.append(f"{keyword_name}={self.expression(value)}")
        return f"{function}({', '.join(args)})"

    # special host forms, looked up by head

    def _special_tuple(self, datum: A.SList) -> str:
        elements = [self.expression(arg) for arg in datum.args]
        if len(elements) == 1:
            return f"({elements[0]},)"
        return f"({', '.join(elements)})"

    def _special_if(self, datum: A.SList) -> str:
        args = datum.args
        if len(args) not in (2, 3):
            raise ReadError("if takes a condition, a then branch and an optional else branch", datum.loc)
        condition, then = self.expression(args[0]), self.expression(args[1])
        otherwise = self.expression(args[2]) if len(args) == 3 else "None"
        return f"({then} if {condition} else {otherwise})"

    def _special_not(self, datum: A.SList) -> str:
        if len(datum.args) != 1:
            raise ReadError("not takes exactly one operand", datum.loc)
        return f"(not {self.expression(datum.args[0])})"

    def _special_do(self, datum: A.SList) -> str:
        if not datum.args:
            raise ReadError("do needs at least one expression", datum.loc)
        if len(datum.args) == 1:
            return self.expression(datum.args[0])
        steps = ", ".join(self.expression(arg) for arg in datum.args)
        return f"({steps})[-1]"

    def _special_fn(self, datum: A.SList) -> str:
        args = datum.args
        if (
            len(args) != 2
            or not isinstance(args[0], A.SList)
            or args[0].bracket is not A.Bracket.SQUARE
        ):
            raise ReadError("fn takes [PARAMS] and a body", datum.loc)
        params: List[str] = []
        for param in args[0].items:
            name = python_name(param.name) if isinstance(param, A.Symbol) else None
            if name is None or name.startswith(RESERVED_PREFIX):
                raise ReadError(
                    "fn parameters must be plain names", param.loc, code=ErrorCode.INVALID_NAME
                )
            params.append(name)
        if len(set(params)) != len(params):
            raise ReadError("duplicate fn parameter", datum.loc, code=ErrorCode.INVALID_NAME)
        return f"(lambda {', '.join(params)}: {self.expression(args[1])})"
