# tests/test_expander.py
"""
Tests for the expander: the Python source produced for each form, the
outermost engine call, binding structure and host expressions.
"""

import ast as python_ast

import pytest

from qcforms.ast import SyntaxForm
from qcforms.config import TranslatorConfig
from qcforms.engine import PRIMITIVES
from qcforms.errors import ErrorCode, ReadError
from qcforms.expander import Expander
from qcforms.reader import read_one
from tests.conftest import LET_CHAIN_SRC, WELL_FORMED_SOURCES


def _expand(src: str, **config) -> str:
    cfg = TranslatorConfig(**config)
    return Expander(cfg).expand(read_one(src, cfg.filename))


def _outer_call(source: str) -> python_ast.Call:
    tree = python_ast.parse(source, mode="eval")
    body = tree.body
    assert isinstance(body, python_ast.Call), source
    return body


def _engine_calls(source: str, primitive: str) -> int:
    tree = python_ast.parse(source, mode="eval")
    return sum(
        1 for node in python_ast.walk(tree)
        if isinstance(node, python_ast.Call)
        and isinstance(node.func, python_ast.Attribute)
        and node.func.attr == primitive
        and isinstance(node.func.value, python_ast.Name)
        and node.func.value.id == "eqc"
    )


class TestOutermostCall:

    @pytest.mark.parametrize("form_name", sorted(
        name for name in WELL_FORMED_SOURCES
        if PRIMITIVES[SyntaxForm(name)] is not None
        and name not in ("Feature", "Ensure")
    ))
    def test_outer_primitive(self, form_name):
        source = _expand(WELL_FORMED_SOURCES[form_name])
        func = _outer_call(source).func
        assert isinstance(func, python_ast.Attribute)
        assert func.value.id == "eqc"
        assert func.attr == PRIMITIVES[SyntaxForm(form_name)]

    @pytest.mark.parametrize("form_name", ["Feature", "Ensure"])
    def test_lambda_application(self, form_name):
        call = _outer_call(_expand(WELL_FORMED_SOURCES[form_name]))
        assert isinstance(call.func, python_ast.Lambda)
        inner = call.func.body
        assert isinstance(inner, python_ast.Call)
        assert inner.func.attr == PRIMITIVES[SyntaxForm(form_name)]

    @pytest.mark.parametrize("form_name", ["Setup", "SetupTeardown"])
    def test_setup_forms_are_pairs(self, form_name):
        tree = python_ast.parse(_expand(WELL_FORMED_SOURCES[form_name]), mode="eval")
        assert isinstance(tree.body, python_ast.Tuple)
        setup, prop = tree.body.elts
        assert isinstance(setup, python_ast.Lambda)
        assert prop.func.attr == "lazy"


class TestExactExpansions:

    def test_forall(self):
        assert _expand("(forall (<- x eqc.int) :do (>= (abs x) 0))") == (
            "eqc.forall(eqc.int, (lambda x: (abs(x) >= 0)))"
        )

    def test_let_chain(self):
        assert _expand(LET_CHAIN_SRC) == (
            "eqc.bind(gen_a, (lambda x: eqc.bind(gen_b(x), (lambda y: (x, y)))))"
        )

    def test_such_that_carries_location(self):
        assert _expand("(such_that (<- x eqc.int) :do (> x 0))", filename="p.qc") == (
            "eqc.suchthat(eqc.int, (lambda x: (x > 0)), ('p.qc', 1))"
        )

    def test_sized(self):
        assert _expand("(sized n :do (gen n))") == "eqc.sized((lambda n: gen(n)))"

    def test_shrink(self):
        assert _expand("(shrink g [a b])") == "eqc.shrinkwith(g, (lambda: [a, b]))"

    def test_lazy(self):
        assert _expand("(lazy :do (expensive))") == "eqc.lazy((lambda: expensive()))"

    def test_implies(self):
        assert _expand("(implies (> x 0) :do (ok x))") == (
            "eqc.implies((x > 0), '(> x 0)', (lambda: ok(x)))"
        )

    def test_timeout_defers_through_lazy(self):
        assert _expand("(timeout 100 :do p)") == (
            "eqc.timeout_property(100, eqc.lazy((lambda: p)))"
        )

    def test_always_and_sometimes(self):
        assert _expand("(always 5 :do p)") == "eqc.always(5, (lambda: p))"
        assert _expand("(sometimes 3 :do p)") == "eqc.sometimes(3, (lambda: p))"

    def test_sequence_pattern(self):
        assert _expand("(forall (<- [a b] g) :do (+ a b))") == (
            "eqc.forall(g, (lambda _qc_seq1: (lambda a, b: (a + b))(*_qc_seq1)))"
        )

    def test_setup_teardown_without_after(self):
        assert _expand("(setup_teardown (start) :do p)") == (
            "((lambda: (lambda _qc_setup1: (lambda: None))(start())), "
            "eqc.lazy((lambda: p)))"
        )

    def test_setup(self):
        assert _expand("(setup (start) :do p)") == (
            "((lambda: (start(), (lambda: None))[-1]), eqc.lazy((lambda: p)))"
        )

    def test_keyword_as_block_value(self):
        assert _expand("(forall (<- x g) :do :ok)") == "eqc.forall(g, (lambda x: 'ok'))"

    def test_keyword_as_collect_value(self):
        assert _expand("(collect :kind :small :in p)") == (
            "eqc.collect(eqc.with_title('kind'), 'small', p)"
        )

    def test_engine_alias(self):
        assert _expand("(lazy :do x)", engine_alias="qc") == "qc.lazy((lambda: x))"


class TestStructure:

    @pytest.mark.parametrize("k", [1, 2, 3, 5])
    def test_let_nests_one_bind_per_clause(self, k):
        clauses = " ".join(f"(<- x{i} g{i})" for i in range(k))
        source = _expand(f"(let [{clauses}] :do x0)")
        assert _engine_calls(source, "bind") == k

    def test_generator_is_outside_its_lambda(self):
        call = _outer_call(_expand("(forall (<- x (gen y)) :do x)"))
        generator, body_fn = call.args
        assert isinstance(generator, python_ast.Call)
        assert isinstance(body_fn, python_ast.Lambda)
        assert body_fn.args.args[0].arg == "x"

    def test_collect_reverse_order(self):
        source = _expand("(collect :a 1 :b 2 :c 3 :in p)")
        call = _outer_call(source)
        tags = []
        while isinstance(call, python_ast.Call) and call.func.attr == "collect":
            tags.append(call.args[0].args[0].value)
            call = call.args[2]
        assert tags == ["a", "b", "c"]
        assert isinstance(call, python_ast.Name) and call.id == "p"

    def test_ensure_names_operator_in_message(self):
        source = _expand("(ensure (== (+ 1 1) 2))")
        assert "' == '" in source
        assert "not ensured: {}" in source
        assert _engine_calls(source, "whenfail") == 1

    def test_ensure_regex_uses_re_module(self):
        source = _expand("(ensure (=~ s \"a+\"))")
        assert "re.search(" in source
        assert "__import__" not in source

    def test_fresh_names_are_distinct(self):
        source = _expand("(forall (<- [a _] g) :do (forall (<- [b _] h) :do (+ a b)))")
        tree = python_ast.parse(source, mode="eval")
        params = [
            arg.arg for node in python_ast.walk(tree)
            if isinstance(node, python_ast.Lambda) for arg in node.args.args
            if arg.arg.startswith("_qc_")
        ]
        assert len(params) == len(set(params))

    def test_nested_forms_expand(self):
        source = _expand("(forall (<- x g) :do (implies (> x 0) :do (lazy :do x)))")
        assert _engine_calls(source, "implies") == 1
        assert _engine_calls(source, "lazy") == 1


class TestEmission:

    def test_unknown_primitive_rejected(self):
        with pytest.raises(ValueError, match="unknown engine primitive 'nope'"):
            Expander()._call("nope")

    def test_known_primitive_emitted(self):
        assert Expander()._call("lazy", "t") == "eqc.lazy(t)"


class TestHostExpressions:

    @pytest.mark.parametrize("src,expected", [
        ("true", "True"),
        ("nil", "None"),
        (":tag", "'tag'"),
        ('"s"', "'s'"),
        ("[1 2]", "[1, 2]"),
        ("(tuple a)", "(a,)"),
        ("(tuple a b)", "(a, b)"),
        ("(if c a b)", "(a if c else b)"),
        ("(if c a)", "(a if c else None)"),
        ("(not x)", "(not x)"),
        ("(- x)", "(-x)"),
        ("(+ a b c)", "(a + b + c)"),
        ("(and a b)", "(a and b)"),
        ("(not-in a b)", "(a not in b)"),
        ("(is-not a nil)", "(a is not None)"),
        ("(do (f) (g))", "(f(), g())[-1]"),
        ("(fn [a b] (+ a b))", "(lambda a, b: (a + b))"),
        ("(f a :key 1)", "f(a, key=1)"),
        ("(my-fn x)", "my_fn(x)"),
        ("(os.path.join a b)", "os.path.join(a, b)"),
        ("((f a) b)", "f(a)(b)"),
        ("()", "()"),
    ])
    def test_rendering(self, src, expected):
        assert _expand(src) == expected

    @pytest.mark.parametrize("src", [
        "(<- x g)",
        "(=== a b)",
        "(f :k)",
        "(f :k 1 2)",
        "(== a b c)",
        "(if c)",
        "(fn a b)",
        "(do)",
    ])
    def test_invalid(self, src):
        with pytest.raises(ReadError):
            _expand(src)

    @pytest.mark.parametrize("src", ["lambda", "(f _qc_x)", "(+ 1 +)", "(fn [1] x)"])
    def test_invalid_names(self, src):
        with pytest.raises(ReadError) as info:
            _expand(src)
        assert info.value.code is ErrorCode.INVALID_NAME

    def test_symbol_locations_recorded(self):
        expander = Expander()
        expander.expand(read_one("(forall (<- x g) :do\n  (h x))"))
        assert expander.symbol_locs["h"].line == 2
        assert "x" in expander.symbol_locs
