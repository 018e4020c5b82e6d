from __future__ import annotations

import re

_VAR_RE = re.compile(r"\$\{([A-Za-z][A-Za-z0-9_]*)\}")


def expand_vars(variables: dict[str, str], value: str) -> str:
    """Expand ${NAME} references in value.

    References to names missing from variables are left untouched.
    """

    def _replace(m: re.Match[str]) -> str:
        return variables.get(m.group(1), m.group(0))

    return _VAR_RE.sub(_replace, value)
