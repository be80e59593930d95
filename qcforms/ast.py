"""qcforms/ast.py – surface data, patterns and typed form nodes.

The reader (:mod:`qcforms.reader`) turns source text into *surface data*:
symbols, keywords, literals and bracketed lists, every one of them located.
The dispatcher (:mod:`qcforms.dispatcher`) recognises which of the fixed
surface forms a list denotes and builds one of the *form nodes* below; the
expander (:mod:`qcforms.expander`) turns form nodes into Python source.

Design invariants
-----------------
* Every node is a frozen dataclass (immutable after construction).
* Children are held in tuples, never lists.
* Every node records its source location (``SourceLoc``); locations do not
  take part in equality so that two readings of the same text compare equal.
* Host expressions (generators, bodies, predicates) are kept as raw surface
  data inside form nodes.  Nested forms inside them are dispatched when the
  expander reaches them.

Module layout
-------------
§1  Source location
§2  Surface data
§3  Patterns and bindings
§4  Form identity
§5  Form nodes
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, ClassVar, Optional, Tuple, Union

# ════════════════════════════════════════════════════════════════════════
# §1  Source location
# ════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class SourceLoc:
    """Points back to a position in a surface source file."""

    file: str = "<unknown>"
    line: int = 0
    col: int = 0

    def __str__(self) -> str:
        return f"{self.file}:{self.line}:{self.col}"


#: Sentinel for nodes synthesised by the translator (no source position).
NO_LOC = SourceLoc()


# ════════════════════════════════════════════════════════════════════════
# §2  Surface data
# ════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class Symbol:
    """A bare word: a name, a dotted name or an operator (``<-``, ``==``)."""

    name: str
    loc: SourceLoc = field(default=NO_LOC, repr=False, compare=False)


@dataclass(frozen=True, slots=True)
class Keyword:
    """A ``:name`` marker introducing a keyword block (``:do``, ``:in``)."""

    name: str
    loc: SourceLoc = field(default=NO_LOC, repr=False, compare=False)


@dataclass(frozen=True, slots=True)
class Literal:
    """An integer, float or string constant."""

    value: Union[int, float, str]
    loc: SourceLoc = field(default=NO_LOC, repr=False, compare=False)


class Bracket(Enum):
    PAREN = "()"
    SQUARE = "[]"

    @property
    def open(self) -> str:
        return self.value[0]

    @property
    def close(self) -> str:
        return self.value[1]


@dataclass(frozen=True, slots=True)
class SList:
    """A parenthesised or square-bracketed sequence of data."""

    items: Tuple[Datum, ...] = ()
    bracket: Bracket = Bracket.PAREN
    loc: SourceLoc = field(default=NO_LOC, repr=False, compare=False)

    @property
    def head(self) -> Optional[str]:
        """Name of the leading symbol of a ``( ... )`` list, else ``None``."""
        if self.bracket is Bracket.PAREN and self.items and isinstance(self.items[0], Symbol):
            return self.items[0].name
        return None

    @property
    def args(self) -> Tuple[Datum, ...]:
        return self.items[1:]


Datum = Union[Symbol, Keyword, Literal, SList]


# ════════════════════════════════════════════════════════════════════════
# §3  Patterns and bindings
# ════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class NamePattern:
    name: str
    loc: SourceLoc = field(default=NO_LOC, repr=False, compare=False)


@dataclass(frozen=True, slots=True)
class WildcardPattern:
    loc: SourceLoc = field(default=NO_LOC, repr=False, compare=False)


@dataclass(frozen=True, slots=True)
class SequencePattern:
    """Positional destructuring of a tuple or list value."""

    elements: Tuple[Pattern, ...]
    loc: SourceLoc = field(default=NO_LOC, repr=False, compare=False)


Pattern = Union[NamePattern, WildcardPattern, SequencePattern]


def pattern_names(pattern: Pattern) -> Tuple[str, ...]:
    """Names captured by *pattern*, left to right."""
    if isinstance(pattern, NamePattern):
        return (pattern.name,)
    if isinstance(pattern, SequencePattern):
        names: Tuple[str, ...] = ()
        for element in pattern.elements:
            names += pattern_names(element)
        return names
    return ()


@dataclass(frozen=True, slots=True)
class BindingClause:
    """``PAT <- GEN``: the names of *pattern* scope over everything nested
    inside clause *scope_id*, never over *generator* itself."""

    pattern: Pattern
    generator: Datum
    scope_id: int = 0
    loc: SourceLoc = field(default=NO_LOC, repr=False, compare=False)


@dataclass(frozen=True, slots=True)
class BindingChain:
    """Ordered clauses; clause *i* is the lexical parent of clause *i+1*."""

    clauses: Tuple[BindingClause, ...]

    def __len__(self) -> int:
        return len(self.clauses)


# ════════════════════════════════════════════════════════════════════════
# §4  Form identity
# ════════════════════════════════════════════════════════════════════════


class SyntaxForm(Enum):
    """The closed set of recognised surface forms."""

    FORALL = "ForAll"
    LET = "Let"
    SUCH_THAT = "SuchThat"
    SUCH_THAT_MAYBE = "SuchThatMaybe"
    SIZED = "Sized"
    SHRINK = "Shrink"
    LET_SHRINK = "LetShrink"
    WHEN_FAIL = "WhenFail"
    LAZY = "Lazy"
    IMPLIES = "Implies"
    TRAP_EXIT = "TrapExit"
    TIMEOUT = "Timeout"
    ALWAYS = "Always"
    SOMETIMES = "Sometimes"
    SETUP_TEARDOWN = "SetupTeardown"
    SETUP = "Setup"
    ONCE_ONLY = "OnceOnly"
    COLLECT = "Collect"
    FEATURE = "Feature"
    ENSURE = "Ensure"

    @property
    def visit_name(self) -> str:
        return f"visit_{self.name.lower()}"


# ════════════════════════════════════════════════════════════════════════
# §5  Form nodes
# ════════════════════════════════════════════════════════════════════════


class FormNode:
    """Mixin for typed form nodes; ``accept`` dispatches on ``form``."""

    __slots__ = ()

    form: ClassVar[SyntaxForm]

    def accept(self, visitor: Any) -> Any:
        return getattr(visitor, self.form.visit_name)(self)


@dataclass(frozen=True, slots=True)
class ForAll(FormNode):
    form: ClassVar[SyntaxForm] = SyntaxForm.FORALL
    clause: BindingClause
    body: Datum
    loc: SourceLoc = field(default=NO_LOC, repr=False, compare=False)


@dataclass(frozen=True, slots=True)
class Let(FormNode):
    form: ClassVar[SyntaxForm] = SyntaxForm.LET
    chain: BindingChain
    body: Datum
    loc: SourceLoc = field(default=NO_LOC, repr=False, compare=False)


@dataclass(frozen=True, slots=True)
class SuchThat(FormNode):
    form: ClassVar[SyntaxForm] = SyntaxForm.SUCH_THAT
    clause: BindingClause
    predicate: Datum
    loc: SourceLoc = field(default=NO_LOC, repr=False, compare=False)


@dataclass(frozen=True, slots=True)
class SuchThatMaybe(FormNode):
    form: ClassVar[SyntaxForm] = SyntaxForm.SUCH_THAT_MAYBE
    clause: BindingClause
    predicate: Datum
    loc: SourceLoc = field(default=NO_LOC, repr=False, compare=False)


@dataclass(frozen=True, slots=True)
class Sized(FormNode):
    form: ClassVar[SyntaxForm] = SyntaxForm.SIZED
    size: Pattern
    body: Datum
    loc: SourceLoc = field(default=NO_LOC, repr=False, compare=False)


@dataclass(frozen=True, slots=True)
class Shrink(FormNode):
    form: ClassVar[SyntaxForm] = SyntaxForm.SHRINK
    generator: Datum
    alternatives: Datum
    loc: SourceLoc = field(default=NO_LOC, repr=False, compare=False)


@dataclass(frozen=True, slots=True)
class LetShrink(FormNode):
    form: ClassVar[SyntaxForm] = SyntaxForm.LET_SHRINK
    clause: BindingClause
    body: Datum
    loc: SourceLoc = field(default=NO_LOC, repr=False, compare=False)


@dataclass(frozen=True, slots=True)
class WhenFail(FormNode):
    form: ClassVar[SyntaxForm] = SyntaxForm.WHEN_FAIL
    action: Datum
    body: Datum
    loc: SourceLoc = field(default=NO_LOC, repr=False, compare=False)


@dataclass(frozen=True, slots=True)
class Lazy(FormNode):
    form: ClassVar[SyntaxForm] = SyntaxForm.LAZY
    body: Datum
    loc: SourceLoc = field(default=NO_LOC, repr=False, compare=False)


@dataclass(frozen=True, slots=True)
class Implies(FormNode):
    form: ClassVar[SyntaxForm] = SyntaxForm.IMPLIES
    condition: Datum
    label: str
    body: Datum
    loc: SourceLoc = field(default=NO_LOC, repr=False, compare=False)


@dataclass(frozen=True, slots=True)
class TrapExit(FormNode):
    form: ClassVar[SyntaxForm] = SyntaxForm.TRAP_EXIT
    body: Datum
    loc: SourceLoc = field(default=NO_LOC, repr=False, compare=False)


@dataclass(frozen=True, slots=True)
class Timeout(FormNode):
    form: ClassVar[SyntaxForm] = SyntaxForm.TIMEOUT
    limit: Datum
    body: Datum
    loc: SourceLoc = field(default=NO_LOC, repr=False, compare=False)


@dataclass(frozen=True, slots=True)
class Always(FormNode):
    form: ClassVar[SyntaxForm] = SyntaxForm.ALWAYS
    count: Datum
    body: Datum
    loc: SourceLoc = field(default=NO_LOC, repr=False, compare=False)


@dataclass(frozen=True, slots=True)
class Sometimes(FormNode):
    form: ClassVar[SyntaxForm] = SyntaxForm.SOMETIMES
    count: Datum
    body: Datum
    loc: SourceLoc = field(default=NO_LOC, repr=False, compare=False)


@dataclass(frozen=True, slots=True)
class TeardownClause:
    """``(-> PAT BODY)``: PAT is matched against the setup result."""

    pattern: Pattern
    body: Datum
    loc: SourceLoc = field(default=NO_LOC, repr=False, compare=False)


@dataclass(frozen=True, slots=True)
class SetupTeardown(FormNode):
    form: ClassVar[SyntaxForm] = SyntaxForm.SETUP_TEARDOWN
    setup: Datum
    body: Datum
    teardown: Optional[TeardownClause] = None
    loc: SourceLoc = field(default=NO_LOC, repr=False, compare=False)


@dataclass(frozen=True, slots=True)
class Setup(FormNode):
    form: ClassVar[SyntaxForm] = SyntaxForm.SETUP
    setup: Datum
    body: Datum
    loc: SourceLoc = field(default=NO_LOC, repr=False, compare=False)


@dataclass(frozen=True, slots=True)
class OnceOnly(FormNode):
    form: ClassVar[SyntaxForm] = SyntaxForm.ONCE_ONLY
    body: Datum
    loc: SourceLoc = field(default=NO_LOC, repr=False, compare=False)


@dataclass(frozen=True, slots=True)
class CollectTerm:
    """``:tag TERM`` – label samples with *term* under *tag*."""

    tag: str
    term: Datum
    loc: SourceLoc = field(default=NO_LOC, repr=False, compare=False)


@dataclass(frozen=True, slots=True)
class CollectCoverage:
    """``:tag (in COUNT REQUIREMENTS)`` – collect *count* and warn about
    any requirement missing from the observed sample."""

    tag: str
    count: Datum
    requirements: Datum
    loc: SourceLoc = field(default=NO_LOC, repr=False, compare=False)


CollectEntry = Union[CollectTerm, CollectCoverage]


@dataclass(frozen=True, slots=True)
class CollectSpec:
    entries: Tuple[CollectEntry, ...]
    body: Datum


@dataclass(frozen=True, slots=True)
class Collect(FormNode):
    form: ClassVar[SyntaxForm] = SyntaxForm.COLLECT
    spec: CollectSpec
    loc: SourceLoc = field(default=NO_LOC, repr=False, compare=False)


@dataclass(frozen=True, slots=True)
class Feature(FormNode):
    form: ClassVar[SyntaxForm] = SyntaxForm.FEATURE
    term: Datum
    prop: Datum
    loc: SourceLoc = field(default=NO_LOC, repr=False, compare=False)


@dataclass(frozen=True, slots=True)
class EnsureExpr:
    operator: str
    left: Datum
    right: Datum


@dataclass(frozen=True, slots=True)
class Ensure(FormNode):
    form: ClassVar[SyntaxForm] = SyntaxForm.ENSURE
    expr: EnsureExpr
    loc: SourceLoc = field(default=NO_LOC, repr=False, compare=False)


Form = Union[
    ForAll, Let, SuchThat, SuchThatMaybe, Sized, Shrink, LetShrink, WhenFail,
    Lazy, Implies, TrapExit, Timeout, Always, Sometimes, SetupTeardown, Setup,
    OnceOnly, Collect, Feature, Ensure,
]
