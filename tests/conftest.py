# tests/conftest.py
"""
Shared fixtures for the qcforms test-suite: a recording fake engine that
implements every primitive the expansions call, plus sample sources.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Tuple

import pytest

from qcforms.config import TranslatorConfig
from qcforms.translator import Translator


# ═══════════════════════════════════════════════════════════════════════
#  Fake engine
# ═══════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class Call:
    """One primitive invocation captured by ``RecordingEngine``."""

    primitive: str
    args: Tuple[Any, ...]


class RecordingEngine:
    """Engine whose primitives return ``Call`` records instead of running
    anything, so tests can inspect the call graph an expansion builds."""

    def __init__(self) -> None:
        self.calls: List[Call] = []
        self.results: Dict[str, Any] = {}
        self.output: List[str] = []

    def _record(self, primitive: str, *args: Any) -> Call:
        call = Call(primitive, args)
        self.calls.append(call)
        return call

    def primitives(self) -> List[str]:
        return [call.primitive for call in self.calls]

    # generators
    def bind(self, generator, body_fn):
        return self._record("bind", generator, body_fn)

    def suchthat(self, generator, predicate_fn, location):
        return self._record("suchthat", generator, predicate_fn, location)

    def suchthatmaybe(self, generator, predicate_fn):
        return self._record("suchthatmaybe", generator, predicate_fn)

    def sized(self, size_fn):
        return self._record("sized", size_fn)

    def shrinkwith(self, generator, alternatives):
        return self._record("shrinkwith", generator, alternatives)

    def letshrink(self, list_generator, body_fn):
        return self._record("letshrink", list_generator, body_fn)

    def lazy(self, thunk):
        return self._record("lazy", thunk)

    # properties
    def forall(self, generator, body_fn):
        return self._record("forall", generator, body_fn)

    def whenfail(self, diagnostic_fn, deferred_body):
        return self._record("whenfail", diagnostic_fn, deferred_body)

    def implies(self, condition, label, deferred_body):
        return self._record("implies", condition, label, deferred_body)

    def trapexit(self, deferred_body):
        return self._record("trapexit", deferred_body)

    def timeout_property(self, limit, deferred_body):
        return self._record("timeout_property", limit, deferred_body)

    def always(self, n, deferred_body):
        return self._record("always", n, deferred_body)

    def sometimes(self, n, deferred_body):
        return self._record("sometimes", n, deferred_body)

    def onceonly(self, deferred_body):
        return self._record("onceonly", deferred_body)

    # statistics
    def collect(self, *args):
        assert len(args) in (2, 3), args
        return self._record("collect", *args)

    def features(self, feature_list, prop):
        return self._record("features", feature_list, prop)

    def with_title(self, tag) -> Callable[[Any], Any]:
        return lambda sample: ("titled", tag, sample)

    # diagnostics and the result record
    def format(self, template, args):
        text = template.format(*args)
        self.output.append(text)
        return text

    def put_result(self, key, record):
        self.results[key] = record
        return record

    def get_result(self, key):
        return self.results.get(key)


def force(value: Any) -> Any:
    """Run the thunk inside an ``eqc.lazy`` record."""
    assert isinstance(value, Call) and value.primitive == "lazy", value
    return value.args[0]()


# ═══════════════════════════════════════════════════════════════════════
#  Sample sources
# ═══════════════════════════════════════════════════════════════════════

FORALL_SRC = "(forall (<- x eqc.int) :do (>= (abs x) 0))"

LET_CHAIN_SRC = "(let [(<- x gen_a) (<- y (gen_b x))] :do (tuple x y))"

WELL_FORMED_SOURCES: Dict[str, str] = {
    "ForAll": FORALL_SRC,
    "Let": LET_CHAIN_SRC,
    "SuchThat": "(such_that (<- x eqc.int) :do (> x 0))",
    "SuchThatMaybe": "(such_that_maybe (<- x eqc.int) :do (> x 0))",
    "Sized": "(sized n :do (eqc.vector n eqc.int))",
    "Shrink": "(shrink big [small tiny])",
    "LetShrink": "(let_shrink (<- [a b] [ga gb]) :do (+ a b))",
    "WhenFail": '(when_fail (print "failed") :do prop)',
    "Lazy": "(lazy :do (expensive))",
    "Implies": "(implies (> x 0) :do (positive x))",
    "TrapExit": "(trap_exit :do prop)",
    "Timeout": "(timeout 100 :do prop)",
    "Always": "(always 5 :do prop)",
    "Sometimes": "(sometimes 3 :do prop)",
    "SetupTeardown": "(setup_teardown (start) :do prop :after (-> s (stop s)))",
    "Setup": "(setup (start) :do prop)",
    "OnceOnly": "(once_only :do prop)",
    "Collect": "(collect :len (len xs) :kind kind :in prop)",
    "Feature": "(feature term prop)",
    "Ensure": "(ensure (== (+ 1 1) 2))",
}

MALFORMED_SOURCES: Dict[str, str] = {
    "ForAll": "(forall (<- x eqc.int))",
    "Let": "(let [] :do x)",
    "SuchThat": "(such_that x :do (> x 0))",
    "SuchThatMaybe": "(such_that_maybe (<- x g))",
    "Sized": "(sized (f n) :do prop)",
    "Shrink": "(shrink big)",
    "LetShrink": "(let_shrink :do g)",
    "WhenFail": "(when_fail :do prop)",
    "Lazy": "(lazy gen :do other)",
    "Implies": "(implies (> x 0))",
    "TrapExit": "(trap_exit prop)",
    "Timeout": "(timeout :do prop)",
    "Always": "(always :do prop)",
    "Sometimes": "(sometimes 3 prop)",
    "SetupTeardown": "(setup_teardown (start) :do prop :after (stop))",
    "Setup": "(setup :do prop)",
    "OnceOnly": "(once_only :do)",
    "Collect": "(collect :in prop)",
    "Feature": "(feature term)",
    "Ensure": "(ensure (& a b))",
}


@pytest.fixture
def engine() -> RecordingEngine:
    return RecordingEngine()


@pytest.fixture
def translator() -> Translator:
    return Translator(TranslatorConfig())
