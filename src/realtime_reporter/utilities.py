from __future__ import annotations
import re
from typing import Any, Iterable


def _norm_text(s: str | None) -> str:
    """Normalize a text fragment for comparisons.

    Strips leading/trailing whitespace only; internal spacing and case are
    kept. ``None`` becomes an empty string.

    Examples
    --------
    >>> _norm_text("  I   click  ")
    'I   click'
    >>> _norm_text(None)
    ''
    """
    return "" if s is None else str(s).strip()


def _sanitize(s: Any) -> str:
    """Strip every non-alphanumeric character (underscores included).

    Used to build section labels, where ``_`` and ``-`` are separators.

    Examples
    --------
    >>> _sanitize("I.see (v2)!")
    'Iseev2'
    >>> _sanitize(None)
    ''
    """
    if s is None:
        return ""
    return re.sub(r"[\W_]+", "", str(s))


def _join_args(args: Iterable[Any] | None) -> str:
    """Join arguments into the single string used to compare metastep frames.

    Examples
    --------
    >>> _join_args(["#btn", 2])
    '#btn,2'
    >>> _join_args(None)
    ''
    """
    if not args:
        return ""
    return ",".join(str(a) for a in args)
