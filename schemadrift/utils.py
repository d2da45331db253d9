"""
utils
=====

Small, shared utilities used across the codebase.

Functions
---------
- :func:`safe_name`:
  Convert a qualified object name or scenario name into a filesystem-safe
  filename component.
- :func:`display_value`:
  Render an attribute value for Markdown and logs.
"""

from __future__ import annotations

import re
from typing import Any

from .models import ABSENT


def safe_name(value: str) -> str:
    """Return a filesystem-safe version of *value*.

    Parameters
    ----------
    value:
        The input string to sanitize (e.g., ``Sales.CalcTotal(int)``).

    Returns
    -------
    str
        A string containing only ``[A-Za-z0-9._-]``, with runs of other
        characters replaced by one underscore and surrounding underscores
        removed. Returns ``"unnamed"`` if the result would otherwise be empty.

    Examples
    --------
    >>> safe_name("Sales.CalcTotal(int,date)")
    'Sales.CalcTotal_int_date'
    >>> safe_name("")
    'unnamed'
    """
    out = re.sub(r"[^A-Za-z0-9._-]+", "_", value).strip("_")
    return out or "unnamed"


def display_value(value: Any, limit: int = 80) -> str:
    """Short one-line rendering; ``ABSENT`` shows as ``<absent>`` and None as ``NULL``."""
    if value is ABSENT:
        return ABSENT.value
    if value is None:
        return "NULL"
    if isinstance(value, tuple):
        text = ", ".join(str(v) for v in value)
    else:
        text = str(value)
    text = re.sub(r"\s+", " ", text)
    if len(text) > limit:
        return text[: limit - 3] + "..."
    return text
