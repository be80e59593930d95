"""qcforms/reader.py – surface text → located surface data.

Parses source text with the PEG grammar in :mod:`qcforms.grammar` and
turns the parse tree into the frozen :mod:`qcforms.ast` data nodes
(``Symbol``, ``Keyword``, ``Literal``, ``SList``), each carrying the
file/line/column it was read from.

Public API
----------
``read(text, filename) -> tuple of Datum``
    Read every top-level datum of a source text.

``read_one(text, filename) -> Datum``
    Read a text that must contain exactly one datum.

``render(datum) -> str``
    Print surface data back in canonical surface syntax (used for the
    human-readable labels of ``implies``).
"""

from __future__ import annotations

import ast as python_ast
import bisect
import json
from typing import List, Tuple

from parsimonious.exceptions import IncompleteParseError, ParseError
from parsimonious.grammar import Grammar
from parsimonious.nodes import Node, NodeVisitor

from qcforms.ast import Bracket, Datum, Keyword, Literal, SList, SourceLoc, Symbol
from qcforms.errors import ReadError
from qcforms.grammar import SURFACE_GRAMMAR

__all__ = ["read", "read_one", "render", "SurfaceReader"]

_GRAMMAR = Grammar(SURFACE_GRAMMAR)


class SurfaceReader(NodeVisitor):
    """Transforms the parsimonious parse tree into surface data."""

    grammar = _GRAMMAR
    unwrapped_exceptions = (ReadError,)

    def __init__(self, text: str, filename: str = "<string>") -> None:
        self._text = text
        self._filename = filename
        self._line_starts: List[int] = [0]
        for index, char in enumerate(text):
            if char == "\n":
                self._line_starts.append(index + 1)

    def loc_at(self, offset: int) -> SourceLoc:
        line = bisect.bisect_right(self._line_starts, offset)
        col = offset - self._line_starts[line - 1] + 1
        return SourceLoc(file=self._filename, line=line, col=col)

    def read(self) -> Tuple[Datum, ...]:
        try:
            tree = self.grammar.parse(self._text)
        except IncompleteParseError as exc:
            raise ReadError(
                f"unexpected text {self._excerpt(exc.pos)!r}",
                self.loc_at(exc.pos),
            ) from exc
        except ParseError as exc:
            raise ReadError(
                f"cannot read {self._excerpt(exc.pos)!r} (unbalanced brackets?)",
                self.loc_at(exc.pos),
            ) from exc
        return self.visit(tree)

    def _excerpt(self, pos: int) -> str:
        return self._text[pos:pos + 20].split("\n", 1)[0]

    # ─────────────────────────────────────────────────────────────
    # Structure
    # ─────────────────────────────────────────────────────────────

    def generic_visit(self, node: Node, visited_children: list):
        return visited_children or node

    def visit_forms(self, node: Node, visited_children: list) -> Tuple[Datum, ...]:
        _, data = visited_children
        return data

    def visit_data(self, node: Node, visited_children: list) -> Tuple[Datum, ...]:
        return tuple(datum for datum, _ in visited_children)

    def visit_datum(self, node: Node, visited_children: list) -> Datum:
        return visited_children[0]

    def visit_list(self, node: Node, visited_children: list) -> SList:
        _, _, items, _ = visited_children
        return SList(items=items, bracket=Bracket.PAREN, loc=self.loc_at(node.start))

    def visit_vector(self, node: Node, visited_children: list) -> SList:
        _, _, items, _ = visited_children
        return SList(items=items, bracket=Bracket.SQUARE, loc=self.loc_at(node.start))

    def visit__(self, node: Node, visited_children: list) -> None:
        return None

    # ─────────────────────────────────────────────────────────────
    # Atoms
    # ─────────────────────────────────────────────────────────────

    def visit_string(self, node: Node, visited_children: list) -> Literal:
        try:
            value = python_ast.literal_eval(node.text)
        except (SyntaxError, ValueError) as exc:
            raise ReadError(f"bad string literal {node.text}", self.loc_at(node.start)) from exc
        return Literal(value=value, loc=self.loc_at(node.start))

    def visit_number(self, node: Node, visited_children: list) -> Literal:
        text = node.text
        if any(c in text for c in ".eE"):
            value = float(text)
        else:
            value = int(text)
        return Literal(value=value, loc=self.loc_at(node.start))

    def visit_keyword(self, node: Node, visited_children: list) -> Keyword:
        return Keyword(name=node.text[1:], loc=self.loc_at(node.start))

    def visit_symbol(self, node: Node, visited_children: list) -> Symbol:
        return Symbol(name=node.text, loc=self.loc_at(node.start))


def read(text: str, filename: str = "<string>") -> Tuple[Datum, ...]:
    """Read every top-level datum in *text*."""
    return SurfaceReader(text, filename).read()


def read_one(text: str, filename: str = "<string>") -> Datum:
    """Read *text*, which must hold exactly one top-level datum."""
    reader = SurfaceReader(text, filename)
    data = reader.read()
    if len(data) != 1:
        raise ReadError(
            f"expected exactly one form, found {len(data)}",
            data[1].loc if len(data) > 1 else reader.loc_at(0),
        )
    return data[0]


def render(datum: Datum) -> str:
    """Canonical surface text of *datum*."""
    if isinstance(datum, Symbol):
        return datum.name
    if isinstance(datum, Keyword):
        return f":{datum.name}"
    if isinstance(datum, Literal):
        if isinstance(datum.value, str):
            return json.dumps(datum.value)
        return repr(datum.value)
    inner = " ".join(render(item) for item in datum.items)
    return f"{datum.bracket.open}{inner}{datum.bracket.close}"
