"""qcforms/config.py – translator settings."""

from __future__ import annotations

import dataclasses
import keyword
from dataclasses import dataclass
from typing import Any, List, Tuple

#: Prefix of every name the expander invents; user patterns may not use it.
RESERVED_PREFIX = "_qc_"


@dataclass(frozen=True)
class TranslatorConfig:
    """Tuning knobs for one :class:`~qcforms.translator.Translator`."""

    engine_alias: str = "eqc"
    filename: str = "<string>"
    check_scopes: bool = True
    strict_scopes: bool = False
    known_names: Tuple[str, ...] = ()

    def validate(self) -> List[str]:
        """Return a list of validation warnings (empty if valid)."""
        warnings: List[str] = []
        if not self.engine_alias.isidentifier() or keyword.iskeyword(self.engine_alias):
            warnings.append(f"engine_alias {self.engine_alias!r} is not a Python identifier")
        if self.engine_alias.startswith(RESERVED_PREFIX):
            warnings.append(f"engine_alias must not start with {RESERVED_PREFIX!r}")
        if self.strict_scopes and not self.check_scopes:
            warnings.append("strict_scopes has no effect while check_scopes is off")
        return warnings

    def replace(self, **changes: Any) -> "TranslatorConfig":
        if "known_names" in changes:
            changes["known_names"] = tuple(changes["known_names"])
        return dataclasses.replace(self, **changes)
