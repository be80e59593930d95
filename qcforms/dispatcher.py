"""qcforms/dispatcher.py – form dispatcher and validator.

Recognises which surface form a parenthesised list denotes and builds the
corresponding typed node from :mod:`qcforms.ast`, or raises the usage
error of the intended form.

Design principles
-----------------
* **Head-symbol dispatch** – every list ``(head ...)`` is looked up by
  ``head`` in a fixed-priority rule table (``FORM_RULES``).  A head that is
  not in the table is an ordinary call, not a form.
* **Structural matching** – a rule matches on the shape of the arguments:
  how many positional arguments, whether the leading one is a binds
  relation ``(<- PAT GEN)``, a ``[...]`` list of them or an operator
  application, and which keyword blocks (``:do``, ``:after``, ``:in``) are
  present and non-empty.
* **Form-specific failure** – when every candidate rule for a head rejects
  the shape, the usage string of the first candidate (the intended form) is
  raised.  There is no generic parse error for a known head.
* **Validate before expanding** – :func:`validate` dispatches every form in
  a whole tree up front, so a malformed form anywhere aborts translation
  before any Python source is produced.

Surface shapes
--------------
::

    (forall (<- PAT GEN) :do PROP)
    (let (<- PAT GEN) :do GEN)
    (let [(<- PAT1 GEN1) (<- PAT2 GEN2) ...] :do GEN)
    (such_that (<- PAT GEN) :do PRED)
    (such_that_maybe (<- PAT GEN) :do PRED)
    (let_shrink (<- PAT LISTGEN) :do GEN)
    (sized N :do PROP)
    (shrink GEN GENS)
    (when_fail ACTION :do PROP)
    (lazy :do GEN)
    (implies COND :do PROP)
    (trap_exit :do PROP)
    (timeout LIMIT :do PROP)
    (always N :do PROP)
    (sometimes N :do PROP)
    (setup_teardown SETUP :do PROP [:after (-> PAT TEARDOWN)])
    (setup SETUP :do PROP)
    (once_only :do PROP)
    (collect :TAG TERM ... :TAG (in COUNT REQS) ... :in PROP)
    (feature TERM PROP)
    (ensure (OP LEFT RIGHT))
"""

from __future__ import annotations

import keyword
from dataclasses import dataclass
from enum import Enum, auto
from typing import Callable, Dict, Iterator, List, Optional, Set, Tuple

from qcforms import ast as A
from qcforms.config import RESERVED_PREFIX
from qcforms.errors import UsageError
from qcforms.operators import ENSURE_OPERATORS
from qcforms.reader import render

__all__ = [
    "ArgKind",
    "CallShape",
    "FormRule",
    "FORM_RULES",
    "call_shape",
    "classify",
    "dispatch",
    "is_form_head",
    "parse_pattern",
    "python_name",
    "rule_for",
    "validate",
]

BINDS = "<-"
TEARDOWN_ARROW = "->"


class _ShapeMismatch(Exception):
    """Internal: a rule rejected the shape it was offered."""


# ═══════════════════════════════════════════════════════════════════════
#  Shape classification
# ═══════════════════════════════════════════════════════════════════════


class ArgKind(Enum):
    BINDS = auto()        # (<- PAT GEN)
    BINDS_LIST = auto()   # [(<- PAT GEN) ...]
    OPERATOR = auto()     # (OP LEFT RIGHT) with OP an ensure operator
    EXPR = auto()


def _is_binds(datum: A.Datum) -> bool:
    return isinstance(datum, A.SList) and datum.head == BINDS


def arg_kind(datum: A.Datum) -> ArgKind:
    if _is_binds(datum):
        return ArgKind.BINDS
    if (
        isinstance(datum, A.SList)
        and datum.bracket is A.Bracket.SQUARE
        and datum.items
        and all(_is_binds(item) for item in datum.items)
    ):
        return ArgKind.BINDS_LIST
    if isinstance(datum, A.SList) and datum.head in ENSURE_OPERATORS and len(datum.items) == 3:
        return ArgKind.OPERATOR
    return ArgKind.EXPR


@dataclass(frozen=True, slots=True)
class CallShape:
    """A list split into head, positional arguments and keyword blocks.

    A keyword always takes the next datum as its value, even when that
    datum is itself a keyword (``:do :ok``).  A keyword that ends the list
    is recorded with value ``None``; that is how an empty ``:do`` block is
    told apart from an absent one.
    """

    head: str
    positional: Tuple[A.Datum, ...]
    keywords: Tuple[Tuple[str, Optional[A.Datum]], ...]
    stray: Tuple[A.Datum, ...]
    loc: A.SourceLoc

    @property
    def kinds(self) -> Tuple[ArgKind, ...]:
        return tuple(arg_kind(arg) for arg in self.positional)

    def keyword_names(self) -> Tuple[str, ...]:
        return tuple(name for name, _ in self.keywords)

    def block(self, name: str) -> Optional[A.Datum]:
        for key, value in self.keywords:
            if key == name:
                return value
        return None

    def has_block(self, name: str) -> bool:
        return name in self.keyword_names()


def call_shape(form: A.SList) -> CallShape:
    head = form.head
    if head is None:
        raise ValueError("call_shape needs a ( ... ) list with a symbol head")
    positional: List[A.Datum] = []
    keywords: List[Tuple[str, Optional[A.Datum]]] = []
    stray: List[A.Datum] = []
    items = form.args
    index = 0
    while index < len(items):
        item = items[index]
        if isinstance(item, A.Keyword):
            value: Optional[A.Datum] = None
            if index + 1 < len(items):
                value = items[index + 1]
                index += 1
            keywords.append((item.name, value))
        elif keywords:
            stray.append(item)
        else:
            positional.append(item)
        index += 1
    return CallShape(
        head=head,
        positional=tuple(positional),
        keywords=tuple(keywords),
        stray=tuple(stray),
        loc=form.loc,
    )


# ═══════════════════════════════════════════════════════════════════════
#  Names and patterns
# ═══════════════════════════════════════════════════════════════════════

_CONSTANTS = {"True", "False", "None", "true", "false", "nil"}


def python_name(name: str) -> Optional[str]:
    """Python spelling of a surface identifier, or ``None`` if it has none."""
    result = name.replace("-", "_")
    if not result.isidentifier() or keyword.iskeyword(result):
        return None
    return result


def parse_pattern(datum: A.Datum) -> A.Pattern:
    """Parse a destructuring pattern; raises ``_ShapeMismatch``."""
    pattern = _parse_pattern(datum)
    seen: Set[str] = set()
    for name in A.pattern_names(pattern):
        if name in seen:
            raise _ShapeMismatch(f"name {name!r} bound twice in one pattern")
        seen.add(name)
    return pattern


def _parse_pattern(datum: A.Datum) -> A.Pattern:
    if isinstance(datum, A.Symbol):
        if datum.name == "_":
            return A.WildcardPattern(loc=datum.loc)
        name = python_name(datum.name)
        if name is None or datum.name in _CONSTANTS:
            raise _ShapeMismatch(f"{datum.name!r} cannot be bound by a pattern")
        if name.startswith(RESERVED_PREFIX):
            raise _ShapeMismatch(f"names starting with {RESERVED_PREFIX!r} are reserved")
        return A.NamePattern(name=name, loc=datum.loc)
    if isinstance(datum, A.SList):
        if datum.bracket is A.Bracket.SQUARE:
            elements = datum.items
        elif datum.head == "tuple":
            elements = datum.args
        else:
            raise _ShapeMismatch(f"{render(datum)} is not a pattern")
        return A.SequencePattern(
            elements=tuple(_parse_pattern(e) for e in elements),
            loc=datum.loc,
        )
    raise _ShapeMismatch(f"{render(datum)} is not a pattern")


def _binding_clause(datum: A.Datum, scope_id: int = 0) -> A.BindingClause:
    if not _is_binds(datum) or len(datum.items) != 3:
        raise _ShapeMismatch("expected a binds relation (<- PAT GEN)")
    _, pattern, generator = datum.items
    return A.BindingClause(
        pattern=parse_pattern(pattern),
        generator=generator,
        scope_id=scope_id,
        loc=datum.loc,
    )


# ═══════════════════════════════════════════════════════════════════════
#  Shape requirements
# ═══════════════════════════════════════════════════════════════════════


def _require(
    shape: CallShape,
    positional: int,
    blocks: Tuple[str, ...] = (),
    optional: Tuple[str, ...] = (),
) -> None:
    if shape.stray:
        raise _ShapeMismatch(f"unexpected {render(shape.stray[0])} after keyword blocks")
    if len(shape.positional) != positional:
        raise _ShapeMismatch(
            f"expected {positional} argument(s) before the blocks, got {len(shape.positional)}"
        )
    names = shape.keyword_names()
    for name in names:
        if name not in blocks and name not in optional:
            raise _ShapeMismatch(f"unexpected :{name} block")
        if names.count(name) > 1:
            raise _ShapeMismatch(f"duplicate :{name} block")
    for name in blocks:
        if shape.block(name) is None:
            raise _ShapeMismatch(f"missing or empty :{name} block")


def _body(shape: CallShape, name: str = "do") -> A.Datum:
    value = shape.block(name)
    if value is None or _is_empty(value):
        raise _ShapeMismatch(f"missing or empty :{name} block")
    return value


def _is_empty(datum: A.Datum) -> bool:
    return isinstance(datum, A.Symbol) and datum.name in ("nil", "None")


# ═══════════════════════════════════════════════════════════════════════
#  Form matchers
# ═══════════════════════════════════════════════════════════════════════
#
# Each matcher receives the CallShape of a list whose head selected it and
# either returns the typed node or raises _ShapeMismatch.


def _match_forall(shape: CallShape) -> A.ForAll:
    _require(shape, 1, ("do",))
    return A.ForAll(clause=_binding_clause(shape.positional[0]), body=_body(shape), loc=shape.loc)


def _match_let(shape: CallShape) -> A.Let:
    _require(shape, 1, ("do",))
    bindings = shape.positional[0]
    if _is_binds(bindings):
        clauses = (_binding_clause(bindings),)
    elif isinstance(bindings, A.SList) and bindings.bracket is A.Bracket.SQUARE:
        if not bindings.items:
            raise _ShapeMismatch("at least one binding is required")
        clauses = tuple(_binding_clause(b, i) for i, b in enumerate(bindings.items))
    else:
        raise _ShapeMismatch("expected (<- PAT GEN) or [(<- PAT GEN) ...]")
    return A.Let(chain=A.BindingChain(clauses=clauses), body=_body(shape), loc=shape.loc)


def _match_such_that(shape: CallShape) -> A.SuchThat:
    _require(shape, 1, ("do",))
    return A.SuchThat(clause=_binding_clause(shape.positional[0]), predicate=_body(shape), loc=shape.loc)


def _match_such_that_maybe(shape: CallShape) -> A.SuchThatMaybe:
    _require(shape, 1, ("do",))
    return A.SuchThatMaybe(
        clause=_binding_clause(shape.positional[0]), predicate=_body(shape), loc=shape.loc
    )


def _match_let_shrink(shape: CallShape) -> A.LetShrink:
    _require(shape, 1, ("do",))
    return A.LetShrink(clause=_binding_clause(shape.positional[0]), body=_body(shape), loc=shape.loc)


def _match_sized(shape: CallShape) -> A.Sized:
    _require(shape, 1, ("do",))
    return A.Sized(size=parse_pattern(shape.positional[0]), body=_body(shape), loc=shape.loc)


def _match_shrink(shape: CallShape) -> A.Shrink:
    _require(shape, 2)
    generator, alternatives = shape.positional
    return A.Shrink(generator=generator, alternatives=alternatives, loc=shape.loc)


def _match_when_fail(shape: CallShape) -> A.WhenFail:
    _require(shape, 1, ("do",))
    return A.WhenFail(action=shape.positional[0], body=_body(shape), loc=shape.loc)


def _match_lazy(shape: CallShape) -> A.Lazy:
    _require(shape, 0, ("do",))
    return A.Lazy(body=_body(shape), loc=shape.loc)


def _match_implies(shape: CallShape) -> A.Implies:
    _require(shape, 1, ("do",))
    condition = shape.positional[0]
    return A.Implies(condition=condition, label=render(condition), body=_body(shape), loc=shape.loc)


def _match_trap_exit(shape: CallShape) -> A.TrapExit:
    _require(shape, 0, ("do",))
    return A.TrapExit(body=_body(shape), loc=shape.loc)


def _match_timeout(shape: CallShape) -> A.Timeout:
    _require(shape, 1, ("do",))
    return A.Timeout(limit=shape.positional[0], body=_body(shape), loc=shape.loc)


def _match_always(shape: CallShape) -> A.Always:
    _require(shape, 1, ("do",))
    return A.Always(count=shape.positional[0], body=_body(shape), loc=shape.loc)


def _match_sometimes(shape: CallShape) -> A.Sometimes:
    _require(shape, 1, ("do",))
    return A.Sometimes(count=shape.positional[0], body=_body(shape), loc=shape.loc)


def _match_setup_teardown(shape: CallShape) -> A.SetupTeardown:
    _require(shape, 1, ("do",), optional=("after",))
    teardown: Optional[A.TeardownClause] = None
    if shape.has_block("after"):
        clause = shape.block("after")
        if not (isinstance(clause, A.SList) and clause.head == TEARDOWN_ARROW and len(clause.items) == 3):
            raise _ShapeMismatch("the :after block must be (-> X TEARDOWN)")
        _, pattern, body = clause.items
        teardown = A.TeardownClause(pattern=parse_pattern(pattern), body=body, loc=clause.loc)
    return A.SetupTeardown(
        setup=shape.positional[0], body=_body(shape), teardown=teardown, loc=shape.loc
    )


def _match_setup(shape: CallShape) -> A.Setup:
    _require(shape, 1, ("do",))
    return A.Setup(setup=shape.positional[0], body=_body(shape), loc=shape.loc)


def _match_once_only(shape: CallShape) -> A.OnceOnly:
    _require(shape, 0, ("do",))
    return A.OnceOnly(body=_body(shape), loc=shape.loc)


def _match_collect(shape: CallShape) -> A.Collect:
    if shape.positional or shape.stray:
        raise _ShapeMismatch("collect takes only keyword entries")
    if not shape.keywords or shape.keywords[-1][0] != "in":
        raise _ShapeMismatch("the last entry must be in: PROP")
    *tagged, (_, body) = shape.keywords
    if body is None:
        raise _ShapeMismatch("missing or empty :in block")
    if not tagged:
        raise _ShapeMismatch("at least one tag entry is required")
    entries: List[A.CollectEntry] = []
    for tag, value in tagged:
        if tag == "in":
            raise _ShapeMismatch("in: PROP must come last")
        if value is None:
            raise _ShapeMismatch(f"missing value for :{tag}")
        if isinstance(value, A.SList) and value.head == "in":
            if len(value.items) != 3:
                raise _ShapeMismatch(f"coverage entry for :{tag} must be (in COUNT REQUIREMENTS)")
            _, count, requirements = value.items
            entries.append(A.CollectCoverage(tag=tag, count=count, requirements=requirements, loc=value.loc))
        else:
            entries.append(A.CollectTerm(tag=tag, term=value, loc=value.loc))
    return A.Collect(spec=A.CollectSpec(entries=tuple(entries), body=body), loc=shape.loc)


def _match_feature(shape: CallShape) -> A.Feature:
    _require(shape, 2)
    term, prop = shape.positional
    return A.Feature(term=term, prop=prop, loc=shape.loc)


def _match_ensure(shape: CallShape) -> A.Ensure:
    _require(shape, 1)
    if shape.kinds[0] is not ArgKind.OPERATOR:
        raise _ShapeMismatch(
            "expected (OP LEFT RIGHT) with OP one of " + " ".join(ENSURE_OPERATORS)
        )
    operator, left, right = shape.positional[0].items
    return A.Ensure(expr=A.EnsureExpr(operator=operator.name, left=left, right=right), loc=shape.loc)


# ═══════════════════════════════════════════════════════════════════════
#  Rule table
# ═══════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class FormRule:
    form: A.SyntaxForm
    head: str
    usage: str
    match: Callable[[CallShape], A.Form]


#: Fixed priority order; the first rule whose shape matches wins.
FORM_RULES: Tuple[FormRule, ...] = (
    FormRule(A.SyntaxForm.FORALL, "forall", "forall PAT <- GEN, do: PROP", _match_forall),
    FormRule(
        A.SyntaxForm.LET, "let",
        "let PAT <- GEN, do: GEN  or  let [PAT1 <- GEN1, PAT2 <- GEN2, ...], do: GEN",
        _match_let,
    ),
    FormRule(A.SyntaxForm.SUCH_THAT, "such_that", "such_that PAT <- GEN, do: PRED", _match_such_that),
    FormRule(
        A.SyntaxForm.SUCH_THAT_MAYBE, "such_that_maybe",
        "such_that_maybe PAT <- GEN, do: PRED", _match_such_that_maybe,
    ),
    FormRule(A.SyntaxForm.LET_SHRINK, "let_shrink", "let_shrink PAT <- GEN, do: GEN", _match_let_shrink),
    FormRule(A.SyntaxForm.SIZED, "sized", "sized N, do: PROP", _match_sized),
    FormRule(A.SyntaxForm.SHRINK, "shrink", "shrink GEN, GENS", _match_shrink),
    FormRule(A.SyntaxForm.WHEN_FAIL, "when_fail", "when_fail ACTION, do: PROP", _match_when_fail),
    FormRule(A.SyntaxForm.LAZY, "lazy", "lazy do: GEN", _match_lazy),
    FormRule(A.SyntaxForm.IMPLIES, "implies", "implies COND, do: PROP", _match_implies),
    FormRule(A.SyntaxForm.TRAP_EXIT, "trap_exit", "trap_exit do: PROP", _match_trap_exit),
    FormRule(A.SyntaxForm.TIMEOUT, "timeout", "timeout TIME, do: PROP", _match_timeout),
    FormRule(A.SyntaxForm.ALWAYS, "always", "always N, do: PROP", _match_always),
    FormRule(A.SyntaxForm.SOMETIMES, "sometimes", "sometimes N, do: PROP", _match_sometimes),
    FormRule(
        A.SyntaxForm.SETUP_TEARDOWN, "setup_teardown",
        "setup_teardown SETUP, do: PROP, after: (X -> TEARDOWN)", _match_setup_teardown,
    ),
    FormRule(A.SyntaxForm.SETUP, "setup", "setup SETUP, do: PROP", _match_setup),
    FormRule(A.SyntaxForm.ONCE_ONLY, "once_only", "once_only do: PROP", _match_once_only),
    FormRule(A.SyntaxForm.COLLECT, "collect", "collect KEYWORDLIST, in: PROP", _match_collect),
    FormRule(A.SyntaxForm.FEATURE, "feature", "feature TERM, PROP", _match_feature),
    FormRule(A.SyntaxForm.ENSURE, "ensure", "ensure T1 OP T2", _match_ensure),
)

_RULES_BY_HEAD: Dict[str, Tuple[FormRule, ...]] = {}
for _rule in FORM_RULES:
    _RULES_BY_HEAD[_rule.head] = _RULES_BY_HEAD.get(_rule.head, ()) + (_rule,)
del _rule


def is_form_head(name: Optional[str]) -> bool:
    return name in _RULES_BY_HEAD


def rule_for(form: A.SyntaxForm) -> FormRule:
    for rule in FORM_RULES:
        if rule.form is form:
            return rule
    raise KeyError(form)


def dispatch(datum: A.Datum) -> Optional[A.Form]:
    """Typed form node for *datum*, or ``None`` if it is not a form.

    Raises :class:`~qcforms.errors.UsageError` when the head names a form
    but no rule for that head accepts the shape.
    """
    if not isinstance(datum, A.SList) or not is_form_head(datum.head):
        return None
    candidates = _RULES_BY_HEAD[datum.head]
    shape = call_shape(datum)
    first_failure: Optional[str] = None
    for rule in candidates:
        try:
            return rule.match(shape)
        except _ShapeMismatch as exc:
            if first_failure is None:
                first_failure = str(exc)
    intended = candidates[0]
    raise UsageError(intended.form, intended.usage, datum.loc, detail=first_failure)


def classify(datum: A.Datum) -> Optional[A.SyntaxForm]:
    node = dispatch(datum)
    return node.form if node is not None else None


def _lists(datum: A.Datum) -> Iterator[A.SList]:
    if isinstance(datum, A.SList):
        yield datum
        for item in datum.items:
            yield from _lists(item)


def validate(datum: A.Datum) -> int:
    """Dispatch every form in *datum*; return how many forms were found.

    The first malformed form (in reading order) raises its usage error.
    """
    count = 0
    for node in _lists(datum):
        if dispatch(node) is not None:
            count += 1
    return count
