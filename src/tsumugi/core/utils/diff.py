"""Unified diffs between two plain-text documents"""

import difflib


def unified_diff(
    old: str,
    new: str,
    from_label: str = "before",
    to_label: str = "after",
    context: int = 3,
    ) -> list[str]:
    """Return unified diff lines comparing old to new. Empty list if identical.

    Lines keep their endings; join with '' for display. A missing final newline
    is marked the way diff(1) marks it, so a trailing blank line still shows up.
    """
    old_lines = _lines(old)
    new_lines = _lines(new)
    return list(
        difflib.unified_diff(old_lines, new_lines, fromfile=from_label, tofile=to_label, n=context)
    )


def _lines(text: str) -> list[str]:
    lines = text.splitlines(keepends=True)
    if lines and not lines[-1].endswith("\n"):
        lines[-1] += "\n\\ No newline at end of file\n"
    return lines
