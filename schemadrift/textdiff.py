"""
textdiff
========

Text I/O, unified diff and Markdown-link helpers.

This module contains:
- writing normalized UTF-8 text
- unified diffs of changed definitions (procedure/view bodies, query text)
- relative links and anchors for the Markdown summary
"""

from __future__ import annotations

import difflib
import os
import re
from pathlib import Path

import sqlparse


def write_text(path: Path, content: str) -> None:
    """Write UTF-8 text to *path* with normalized newlines, creating parent dirs."""
    path.parent.mkdir(parents=True, exist_ok=True)
    content = content.replace("\r\n", "\n").replace("\r", "\n")
    path.write_text(content, encoding="utf-8")


def split_statements(text: str) -> str:
    """Re-indent a single-line canonical definition for line diffs.

    Canonical definitions have their whitespace collapsed, which makes line
    diffs useless; sqlparse's reindenter restores one clause per line.
    """
    return sqlparse.format(text, reindent=True)


def unified_diff(a_text: str, b_text: str, fromfile: str, tofile: str) -> str:
    """Return a unified diff between two strings.

    Parameters
    ----------
    a_text, b_text:
        Input texts.
    fromfile, tofile:
        Labels used in diff headers.
    """
    a_lines = a_text.splitlines(keepends=True)
    b_lines = b_text.splitlines(keepends=True)
    if a_lines and not a_lines[-1].endswith("\n"):
        a_lines[-1] += "\n"
    if b_lines and not b_lines[-1].endswith("\n"):
        b_lines[-1] += "\n"
    return "".join(difflib.unified_diff(a_lines, b_lines, fromfile=fromfile, tofile=tofile))


def write_definition_diff(out_path: Path, old: str, new: str, label_old: str, label_new: str) -> bool:
    """Write a diff file if *old* and *new* differ.

    Returns
    -------
    bool
        True if a diff file was written (differences exist), otherwise False.
    """
    diff = unified_diff(split_statements(old), split_statements(new), label_old, label_new)
    if diff.strip():
        write_text(out_path, diff)
        return True
    return False


def rel_link(from_file: Path, to_file: Path) -> str:
    """Relative path from the file holding a link (e.g. SUMMARY.md) to *to_file*."""
    return os.path.relpath(to_file, start=from_file.parent).replace("\\", "/")


def md_anchor(title: str) -> str:
    """Create an approximate GitHub-style markdown anchor from a section title."""
    return re.sub(r"[^a-z0-9]+", "-", title.lower()).strip("-")
