# tests/test_dispatcher.py
"""
Tests for the form dispatcher and validator: which form a list denotes,
the typed node it becomes, and the form-specific usage errors raised for
every malformed shape.
"""

import pytest

from qcforms import ast as A
from qcforms.dispatcher import (
    FORM_RULES,
    ArgKind,
    arg_kind,
    call_shape,
    classify,
    dispatch,
    is_form_head,
    rule_for,
    validate,
)
from qcforms.errors import UsageError
from qcforms.reader import read_one
from tests.conftest import MALFORMED_SOURCES, WELL_FORMED_SOURCES


class TestRuleTable:

    def test_every_form_has_a_rule(self):
        assert {rule.form for rule in FORM_RULES} == set(A.SyntaxForm)

    def test_heads_are_form_heads(self):
        for rule in FORM_RULES:
            assert is_form_head(rule.head)
        assert not is_form_head("abs")
        assert not is_form_head(None)

    def test_usage_strings(self):
        assert rule_for(A.SyntaxForm.FORALL).usage == "forall PAT <- GEN, do: PROP"
        assert rule_for(A.SyntaxForm.COLLECT).usage == "collect KEYWORDLIST, in: PROP"
        assert rule_for(A.SyntaxForm.ENSURE).usage == "ensure T1 OP T2"


class TestCallShape:

    def test_positional_and_blocks(self):
        shape = call_shape(read_one("(forall (<- x g) :do p)"))
        assert shape.head == "forall"
        assert shape.kinds == (ArgKind.BINDS,)
        assert shape.keyword_names() == ("do",)
        assert shape.block("do") == A.Symbol("p")

    def test_empty_block_has_no_value(self):
        shape = call_shape(read_one("(forall (<- x g) :do)"))
        assert shape.has_block("do")
        assert shape.block("do") is None

    def test_keyword_takes_keyword_value(self):
        shape = call_shape(read_one("(collect :a :in p)"))
        assert shape.keywords == (("a", A.Keyword("in")),)
        assert shape.stray == (A.Symbol("p"),)

    def test_do_block_holding_keyword(self):
        shape = call_shape(read_one("(forall (<- x g) :do :ok)"))
        assert shape.block("do") == A.Keyword("ok")
        assert shape.stray == ()

    def test_stray_positional(self):
        shape = call_shape(read_one("(lazy :do a b)"))
        assert shape.stray == (A.Symbol("b"),)

    def test_arg_kinds(self):
        assert arg_kind(read_one("[(<- a g) (<- b h)]")) is ArgKind.BINDS_LIST
        assert arg_kind(read_one("(== a b)")) is ArgKind.OPERATOR
        assert arg_kind(read_one("(f a b)")) is ArgKind.EXPR
        assert arg_kind(read_one("[]")) is ArgKind.EXPR


class TestClassify:

    @pytest.mark.parametrize("form_name", sorted(WELL_FORMED_SOURCES))
    def test_well_formed_instance(self, form_name):
        assert classify(read_one(WELL_FORMED_SOURCES[form_name])) is A.SyntaxForm(form_name)

    def test_plain_call_is_not_a_form(self):
        assert classify(read_one("(abs x)")) is None
        assert dispatch(read_one("x")) is None
        assert dispatch(read_one("[forall]")) is None


class TestNodes:

    def test_forall_node(self):
        node = dispatch(read_one("(forall (<- x eqc.int) :do (> x 0))"))
        assert isinstance(node, A.ForAll)
        assert node.clause.pattern == A.NamePattern("x")
        assert node.clause.generator == A.Symbol("eqc.int")

    def test_let_single_clause_is_a_one_element_chain(self):
        node = dispatch(read_one("(let (<- x g) :do x)"))
        assert len(node.chain) == 1

    def test_let_chain_order_and_scope_ids(self):
        node = dispatch(read_one("(let [(<- a g) (<- b h) (<- c k)] :do c)"))
        assert [c.pattern.name for c in node.chain.clauses] == ["a", "b", "c"]
        assert [c.scope_id for c in node.chain.clauses] == [0, 1, 2]

    def test_patterns(self):
        node = dispatch(read_one("(forall (<- [a _ (tuple b c)] g) :do a)"))
        pattern = node.clause.pattern
        assert isinstance(pattern, A.SequencePattern)
        assert isinstance(pattern.elements[1], A.WildcardPattern)
        assert A.pattern_names(pattern) == ("a", "b", "c")

    def test_hyphenated_pattern_name(self):
        node = dispatch(read_one("(forall (<- my-x g) :do my-x)"))
        assert node.clause.pattern == A.NamePattern("my_x")

    def test_implies_label_is_surface_text(self):
        node = dispatch(read_one("(implies (>   x 0) :do p)"))
        assert node.label == "(> x 0)"

    def test_collect_entries(self):
        node = dispatch(read_one("(collect :len (len xs) :m (in c [:a]) :in p)"))
        first, second = node.spec.entries
        assert isinstance(first, A.CollectTerm) and first.tag == "len"
        assert isinstance(second, A.CollectCoverage) and second.tag == "m"
        assert node.spec.body == A.Symbol("p")

    def test_ensure_expr(self):
        node = dispatch(read_one("(ensure (=~ s \"ab+\"))"))
        assert node.expr.operator == "=~"
        assert node.expr.right == A.Literal("ab+")

    def test_setup_teardown_without_after(self):
        node = dispatch(read_one("(setup_teardown (start) :do p)"))
        assert node.teardown is None


class TestUsageErrors:

    @pytest.mark.parametrize("form_name", sorted(MALFORMED_SOURCES))
    def test_malformed_instance(self, form_name):
        form = A.SyntaxForm(form_name)
        with pytest.raises(UsageError) as info:
            dispatch(read_one(MALFORMED_SOURCES[form_name]))
        assert info.value.form is form
        assert info.value.usage == rule_for(form).usage

    def test_forall_message(self):
        with pytest.raises(UsageError) as info:
            dispatch(read_one("(forall (<- x g))", filename="p.qc"))
        assert str(info.value) == "p.qc:1:1: Usage: forall PAT <- GEN, do: PROP"

    @pytest.mark.parametrize("src", [
        "(forall (<- x g) :do)",
        "(forall (<- x g) :do nil)",
        "(forall x :do p)",
        "(forall (<- x) :do p)",
        "(forall (<- (f x) g) :do p)",
        "(forall (<- [x x] g) :do p)",
        "(forall (<- _qc_x g) :do p)",
        "(forall (<- 1 g) :do p)",
        "(forall (<- a.b g) :do p)",
        "(forall (<- x g) :do p :after q)",
        "(forall (<- x g) :do p :do q)",
    ])
    def test_forall_shapes(self, src):
        with pytest.raises(UsageError, match="forall PAT <- GEN, do: PROP"):
            dispatch(read_one(src))

    @pytest.mark.parametrize("src", [
        "(collect :a 1)",
        "(collect :in p :a 1)",
        "(collect :a :in p)",
        "(collect x :in p)",
        "(collect :a (in 1) :in p)",
        "(collect :a 1 :in)",
    ])
    def test_collect_shapes(self, src):
        with pytest.raises(UsageError, match="collect KEYWORDLIST, in: PROP"):
            dispatch(read_one(src))

    @pytest.mark.parametrize("src", [
        "(ensure (& a b))",
        "(ensure a)",
        "(ensure (== a))",
        "(ensure (== a b) (== c d))",
    ])
    def test_ensure_shapes(self, src):
        with pytest.raises(UsageError, match="ensure T1 OP T2"):
            dispatch(read_one(src))

    def test_detail_names_the_problem(self):
        with pytest.raises(UsageError) as info:
            dispatch(read_one("(forall (<- [x x] g) :do p)"))
        assert "bound twice" in info.value.detail


class TestValidate:

    def test_counts_nested_forms(self):
        assert validate(read_one("(forall (<- x g) :do (implies (> x 0) :do (lazy :do x)))")) == 3

    def test_plain_data_has_no_forms(self):
        assert validate(read_one("(f [a b] (g c))")) == 0

    def test_nested_malformed_form_is_reported(self):
        with pytest.raises(UsageError) as info:
            validate(read_one("(forall (<- x g) :do\n  (lazy))"))
        assert info.value.form is A.SyntaxForm.LAZY
        assert info.value.loc.line == 2
