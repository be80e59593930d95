"""qcforms — surface syntax for randomized property-based tests.

This package translates a small S-expression surface language of
property-testing forms (``forall``, ``let``, ``such_that``, ``collect``,
``ensure``, ...) into Python expressions that call an external
property/generator engine.

Submodules
----------
grammar, reader
    ``parsimonious`` PEG grammar of the surface language and the
    ``NodeVisitor`` that turns parse trees into located surface data.

ast
    Frozen dataclasses for surface data, patterns, binding clauses and one
    node per recognised form (``SyntaxForm``).

dispatcher
    Fixed-priority rule table: recognises forms, validates their shape and
    raises the form's ``UsageError`` otherwise.

expander
    Form nodes → Python expression source targeting the engine alias.

semantic
    Unresolved-name checking over the expanded Python AST.

translator
    ``Translator`` / ``Translation`` façade over the whole pipeline.

main
    CLI entry-point with subcommands: ``expand``, ``check``, ``forms``.

Usage
-----
Command-line::

    python -m qcforms expand props.qc
    python -m qcforms --help

Programmatic::

    from qcforms import Translator, TranslatorConfig

    translation = Translator(TranslatorConfig()).translate(
        "(forall (<- x eqc.int) :do (>= (abs x) 0))"
    )
    prop = translation.evaluate(my_engine)
"""

from __future__ import annotations

__version__: str = "0.1.0"

from qcforms.ast import SourceLoc, SyntaxForm
from qcforms.config import TranslatorConfig
from qcforms.engine import Engine
from qcforms.errors import QcFormsError, ReadError, ScopeError, UsageError
from qcforms.translator import Translation, Translator, expand, translate

__all__: list[str] = [
    "__version__",
    "Engine",
    "QcFormsError",
    "ReadError",
    "ScopeError",
    "SourceLoc",
    "SyntaxForm",
    "Translation",
    "Translator",
    "TranslatorConfig",
    "UsageError",
    "expand",
    "translate",
]
