"""qcforms/engine.py – the interface the expansions are written against.

The property/generator engine is an external collaborator.  Expanded code
reaches it through one alias (``eqc`` by default) and calls only the
primitives listed here; ``Engine`` spells out the expected signatures for
implementors and test doubles.
"""

from __future__ import annotations

from typing import (
    Any,
    Callable,
    Dict,
    FrozenSet,
    List,
    Optional,
    Protocol,
    Sequence,
    Tuple,
    runtime_checkable,
)

from qcforms.ast import SyntaxForm

#: Lookup key under which ``when_fail`` actions find the failing result.
RESULT_KEY = "eqc_result"

Thunk = Callable[[], Any]


@runtime_checkable
class Engine(Protocol):
    # generators
    def bind(self, generator: Any, body_fn: Callable[[Any], Any]) -> Any: ...
    def suchthat(self, generator: Any, predicate_fn: Callable[[Any], Any], location: Tuple[str, int]) -> Any: ...
    def suchthatmaybe(self, generator: Any, predicate_fn: Callable[[Any], Any]) -> Any: ...
    def sized(self, size_fn: Callable[[int], Any]) -> Any: ...
    def shrinkwith(self, generator: Any, alternatives: Thunk) -> Any: ...
    def letshrink(self, list_generator: Any, body_fn: Callable[[Any], Any]) -> Any: ...
    def lazy(self, thunk: Thunk) -> Any: ...

    # properties
    def forall(self, generator: Any, body_fn: Callable[[Any], Any]) -> Any: ...
    def whenfail(self, diagnostic_fn: Callable[[Any], Any], deferred_body: Any) -> Any: ...
    def implies(self, condition: Any, label: str, deferred_body: Thunk) -> Any: ...
    def trapexit(self, deferred_body: Thunk) -> Any: ...
    def timeout_property(self, limit: Any, deferred_body: Any) -> Any: ...
    def always(self, n: int, deferred_body: Thunk) -> Any: ...
    def sometimes(self, n: int, deferred_body: Thunk) -> Any: ...
    def onceonly(self, deferred_body: Thunk) -> Any: ...

    # statistics
    # collect(labeler, sample, prop) or collect(term, prop)
    def collect(self, *args: Any) -> Any: ...
    def features(self, feature_list: Sequence[Any], prop: Any) -> Any: ...
    def with_title(self, tag: Any) -> Callable[[Any], Any]: ...

    # diagnostics and the result record
    def format(self, template: str, args: Sequence[Any]) -> Any: ...
    def put_result(self, key: str, record: Any) -> Any: ...
    def get_result(self, key: str) -> Any: ...


ENGINE_PRIMITIVES: FrozenSet[str] = frozenset(
    name for name in vars(Engine) if not name.startswith("_")
)

#: Outermost engine call emitted for each form.  ``None`` marks the setup
#: forms, which expand to a plain (setup thunk, lazy body) tuple.
PRIMITIVES: Dict[SyntaxForm, Optional[str]] = {
    SyntaxForm.FORALL: "forall",
    SyntaxForm.LET: "bind",
    SyntaxForm.SUCH_THAT: "suchthat",
    SyntaxForm.SUCH_THAT_MAYBE: "suchthatmaybe",
    SyntaxForm.SIZED: "sized",
    SyntaxForm.SHRINK: "shrinkwith",
    SyntaxForm.LET_SHRINK: "letshrink",
    SyntaxForm.WHEN_FAIL: "whenfail",
    SyntaxForm.LAZY: "lazy",
    SyntaxForm.IMPLIES: "implies",
    SyntaxForm.TRAP_EXIT: "trapexit",
    SyntaxForm.TIMEOUT: "timeout_property",
    SyntaxForm.ALWAYS: "always",
    SyntaxForm.SOMETIMES: "sometimes",
    SyntaxForm.SETUP_TEARDOWN: None,
    SyntaxForm.SETUP: None,
    SyntaxForm.ONCE_ONLY: "onceonly",
    SyntaxForm.COLLECT: "collect",
    SyntaxForm.FEATURE: "collect",
    SyntaxForm.ENSURE: "whenfail",
}


def missing_primitives(engine: object) -> List[str]:
    """Primitives *engine* does not provide, sorted by name."""
    return sorted(
        name for name in ENGINE_PRIMITIVES
        if not callable(getattr(engine, name, None))
    )
