"""
qcforms/semantic.py – scope checking of expanded code.

Walks the Python AST of one expansion and reports every name that is read
where no enclosing lambda parameter, comprehension target or known
environment name binds it.  Because patterns become lambda parameters and
generators are emitted outside the lambda that binds their pattern, this
catches both plain typos and forward references in a binding chain::

    (let [(<- x (gen y)) (<- y g)] :do x)   ; y is unresolved in (gen y)

Diagnostics carry the surface location of the first occurrence of the name
when the expander recorded one.
"""

from __future__ import annotations

import ast as python_ast
import builtins
from typing import Dict, FrozenSet, Iterable, List, Optional, Set

from qcforms.ast import SourceLoc
from qcforms.errors import Diagnostic, ErrorCode, ErrorSeverity
from qcforms.operators import HOST_MODULES

__all__ = ["Scope", "ScopeChecker", "check_scopes", "default_known_names"]


def default_known_names(engine_alias: str, extra: Iterable[str] = ()) -> FrozenSet[str]:
    """Builtins, host modules, the engine alias and any caller-supplied globals."""
    return (
        frozenset(dir(builtins)) | frozenset(HOST_MODULES) | {engine_alias} | frozenset(extra)
    )


class Scope:
    """A lexical scope: the names bound by one lambda or comprehension."""

    def __init__(self, kind: str, parent: Optional[Scope] = None) -> None:
        self.kind = kind
        self.parent = parent
        self._names: Set[str] = set()

    def define(self, name: str) -> None:
        self._names.add(name)

    def lookup(self, name: str) -> bool:
        if name in self._names:
            return True
        return self.parent is not None and self.parent.lookup(name)


class ScopeChecker(python_ast.NodeVisitor):
    """Collects unresolved-name diagnostics; each name is reported once."""

    def __init__(
        self,
        known: Iterable[str],
        locs: Optional[Dict[str, SourceLoc]] = None,
        severity: ErrorSeverity = ErrorSeverity.WARNING,
    ) -> None:
        self._scope = Scope("module")
        for name in known:
            self._scope.define(name)
        self._locs = locs or {}
        self._severity = severity
        self._reported: Set[str] = set()
        self.diagnostics: List[Diagnostic] = []

    def check(self, tree: python_ast.AST) -> List[Diagnostic]:
        self.visit(tree)
        return self.diagnostics

    # scope management

    def _enter(self, kind: str) -> Scope:
        self._scope = Scope(kind, parent=self._scope)
        return self._scope

    def _exit(self) -> None:
        assert self._scope.parent is not None
        self._scope = self._scope.parent

    def _bind_target(self, target: python_ast.AST) -> None:
        if isinstance(target, python_ast.Name):
            self._scope.define(target.id)
        elif isinstance(target, (python_ast.Tuple, python_ast.List)):
            for element in target.elts:
                self._bind_target(element)
        elif isinstance(target, python_ast.Starred):
            self._bind_target(target.value)
        else:
            self.visit(target)

    # visitors

    def visit_Lambda(self, node: python_ast.Lambda) -> None:
        args = node.args
        for default in args.defaults:
            self.visit(default)
        for default in args.kw_defaults:
            if default is not None:
                self.visit(default)
        scope = self._enter("lambda")
        for arg in args.posonlyargs + args.args + args.kwonlyargs:
            scope.define(arg.arg)
        if args.vararg is not None:
            scope.define(args.vararg.arg)
        if args.kwarg is not None:
            scope.define(args.kwarg.arg)
        self.visit(node.body)
        self._exit()

    def _visit_comprehension(self, generators: List[python_ast.comprehension], *elements: python_ast.AST) -> None:
        # the first iterable is evaluated in the enclosing scope
        self.visit(generators[0].iter)
        self._enter("comprehension")
        for index, generator in enumerate(generators):
            if index:
                self.visit(generator.iter)
            self._bind_target(generator.target)
            for condition in generator.ifs:
                self.visit(condition)
        for element in elements:
            self.visit(element)
        self._exit()

    def visit_ListComp(self, node: python_ast.ListComp) -> None:
        self._visit_comprehension(node.generators, node.elt)

    def visit_SetComp(self, node: python_ast.SetComp) -> None:
        self._visit_comprehension(node.generators, node.elt)

    def visit_GeneratorExp(self, node: python_ast.GeneratorExp) -> None:
        self._visit_comprehension(node.generators, node.elt)

    def visit_DictComp(self, node: python_ast.DictComp) -> None:
        self._visit_comprehension(node.generators, node.key, node.value)

    def visit_Name(self, node: python_ast.Name) -> None:
        if isinstance(node.ctx, python_ast.Store):
            self._scope.define(node.id)
            return
        if self._scope.lookup(node.id) or node.id in self._reported:
            return
        self._reported.add(node.id)
        self.diagnostics.append(
            Diagnostic(
                code=ErrorCode.UNRESOLVED_NAME,
                message=f"name {node.id!r} is not bound here",
                loc=self._locs.get(node.id),
                name=node.id,
                severity=self._severity,
            )
        )


def check_scopes(
    tree: python_ast.AST,
    known: Iterable[str],
    locs: Optional[Dict[str, SourceLoc]] = None,
    severity: ErrorSeverity = ErrorSeverity.WARNING,
) -> List[Diagnostic]:
    """Unresolved-name diagnostics for *tree*, in reading order."""
    return ScopeChecker(known, locs, severity).check(tree)
