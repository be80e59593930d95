"""
qcforms/translator.py
=====================

Façade over the translation pipeline::

    surface text
        │  reader      (parsimonious grammar → located surface data)
        ▼
    surface data
        │  dispatcher  (validate every form; usage errors abort here)
        ▼
    form nodes
        │  expander    (→ one Python expression per top-level datum)
        ▼
    Python source
        │  ast.parse + scope checker
        ▼
    Translation

Nothing is returned for a text until every form in it has been validated,
so a malformed form never yields partial output.
"""

from __future__ import annotations

import ast as python_ast
import logging
from dataclasses import dataclass, field
from pathlib import Path
from types import CodeType
from typing import Any, Dict, List, Optional, Tuple, Union

from qcforms.ast import NO_LOC, Datum, SourceLoc, SyntaxForm
from qcforms.config import TranslatorConfig
from qcforms.dispatcher import dispatch, validate
from qcforms.engine import missing_primitives
from qcforms.errors import Diagnostic, ErrorSeverity, ReadError, ScopeError
from qcforms.expander import Expander
from qcforms.operators import HOST_MODULES
from qcforms.reader import read, read_one
from qcforms.semantic import check_scopes, default_known_names

__all__ = ["Translation", "Translator", "translate", "expand"]

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Translation:
    """The expansion of one top-level surface datum."""

    form: Optional[SyntaxForm]
    source: str
    loc: SourceLoc = NO_LOC
    diagnostics: Tuple[Diagnostic, ...] = ()
    engine_alias: str = field(default="eqc", repr=False)

    @property
    def ok(self) -> bool:
        return not self.diagnostics

    def tree(self) -> python_ast.Expression:
        return python_ast.parse(self.source, mode="eval")

    def code(self) -> CodeType:
        return compile(self.tree(), self.loc.file, "eval")

    def evaluate(self, engine: Any, namespace: Optional[Dict[str, Any]] = None) -> Any:
        """Evaluate the expansion with *engine* bound to the engine alias.

        Evaluation only builds the call graph; deferred bodies run when the
        engine calls them.
        """
        missing = missing_primitives(engine)
        if missing:
            logger.warning("engine %r lacks primitive(s): %s", engine, ", ".join(missing))
        env: Dict[str, Any] = dict(namespace or {})
        for name, module in HOST_MODULES.items():
            env.setdefault(name, module)
        env[self.engine_alias] = engine
        return eval(self.code(), env)


class Translator:
    """Translates surface text according to one :class:`TranslatorConfig`."""

    def __init__(self, config: Optional[TranslatorConfig] = None) -> None:
        self.config = config or TranslatorConfig()
        for warning in self.config.validate():
            logger.warning("config: %s", warning)
        if not self.config.engine_alias.isidentifier():
            raise ValueError(f"invalid engine alias {self.config.engine_alias!r}")
        self.known_names = default_known_names(
            self.config.engine_alias, self.config.known_names
        )

    def translate(self, text: str) -> Translation:
        """Translate a text holding exactly one top-level datum."""
        return self.translate_datum(read_one(text, self.config.filename))

    def translate_all(self, text: str) -> List[Translation]:
        """Translate every top-level datum of *text*, in order."""
        data = read(text, self.config.filename)
        total = sum(validate(datum) for datum in data)
        logger.info("%s: %d top-level datum(s), %d form(s)", self.config.filename, len(data), total)
        return [self._expand(datum) for datum in data]

    def translate_file(self, path: Union[str, Path]) -> List[Translation]:
        path = Path(path)
        text = path.read_text(encoding="utf-8")
        return Translator(self.config.replace(filename=str(path))).translate_all(text)

    def translate_datum(self, datum: Datum) -> Translation:
        validate(datum)
        return self._expand(datum)

    def _expand(self, datum: Datum) -> Translation:
        node = dispatch(datum)
        expander = Expander(self.config)
        source = expander.expand(datum)
        try:
            tree = python_ast.parse(source, mode="eval")
        except SyntaxError as exc:
            raise ReadError(f"expansion is not valid Python: {exc.msg}", datum.loc) from exc

        diagnostics: Tuple[Diagnostic, ...] = ()
        if self.config.check_scopes:
            severity = ErrorSeverity.ERROR if self.config.strict_scopes else ErrorSeverity.WARNING
            diagnostics = tuple(
                check_scopes(tree, self.known_names, expander.symbol_locs, severity)
            )
            for diagnostic in diagnostics:
                logger.warning("%s", diagnostic)
            if diagnostics and self.config.strict_scopes:
                raise ScopeError(diagnostics)

        logger.debug("expanded %s: %s", datum.loc, source)
        return Translation(
            form=node.form if node is not None else None,
            source=source,
            loc=datum.loc,
            diagnostics=diagnostics,
            engine_alias=self.config.engine_alias,
        )


def translate(text: str, **config: Any) -> Translation:
    """Translate one surface form with a one-off configuration."""
    return Translator(TranslatorConfig(**config)).translate(text)


def expand(text: str, **config: Any) -> str:
    """Python source of one surface form."""
    return translate(text, **config).source
