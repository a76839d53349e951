from __future__ import annotations

import re
from typing import Dict, Mapping, Optional

from .models import MacroEvaluationError

_MACRO_PATTERN = re.compile(r"\$(?:\$|\{(?P<braced>[^}]*)\}|(?P<bare>[A-Za-z_][A-Za-z0-9_]*))")


class EnvMacroExpander:
    """Expands ``$NAME`` and ``${NAME}`` references against the job environment."""

    def __init__(self, variables: Mapping[str, str]) -> None:
        self.variables: Dict[str, str] = dict(variables)

    def _replace(self, match: re.Match) -> str:
        if match.group(0) == "$$":
            return "$"
        name = match.group("braced")
        if name is None:
            name = match.group("bare")
        if not name or name not in self.variables:
            raise MacroEvaluationError(f"Unable to expand ${{{name}}}: no such variable")
        return self.variables[name]

    def expand(self, text: Optional[str]) -> Optional[str]:
        if text is None:
            return None
        return _MACRO_PATTERN.sub(self._replace, text)

    __call__ = expand
