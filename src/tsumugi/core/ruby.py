"""Ruby (furigana) grammar shared by both conversion directions

Plain-text forms, tried in this order at a given position:

    ｜BASE《READING》    explicit base (ASCII | also accepted)
    漢字《READING》       implicit base: ideograph run plus trailing hiragana
    ｜《READING》         escape form, rendered as the literal text 《READING》
"""

import copy
import re
from typing import Optional

from bs4 import Tag

from tsumugi.core.models import CLOSE_BRACKET, OPEN_BRACKET, PIPE, RubyAnnotation, RubyMatch


PIPES = "|" + PIPE
IDEOGRAPHS = "\u3400-\u4dbf\u4e00-\u9fff\uf900-\ufaff々〆〇〻"
HIRAGANA = "\u3041-\u3096"

_BASE = rf"[^{re.escape(PIPES)}{OPEN_BRACKET}{CLOSE_BRACKET}\n]+"
_READING = rf"[^{OPEN_BRACKET}{CLOSE_BRACKET}\n]+"

EXPLICIT_RE = re.compile(rf"[{re.escape(PIPES)}]({_BASE}){OPEN_BRACKET}({_READING}){CLOSE_BRACKET}")
ESCAPE_RE = re.compile(rf"[{re.escape(PIPES)}]{OPEN_BRACKET}({_READING}){CLOSE_BRACKET}")
IMPLICIT_RE = re.compile(rf"([{IDEOGRAPHS}]+[{HIRAGANA}]*){OPEN_BRACKET}({_READING}){CLOSE_BRACKET}")
IDEOGRAPH_RE = re.compile(rf"[{IDEOGRAPHS}]")

# Bracket pairs in literal text that would otherwise re-render as annotations
_LITERAL_BRACKETS_RE = re.compile(rf"(\\*)({OPEN_BRACKET}{_READING}{CLOSE_BRACKET})")
_FORBIDDEN_IN_BASE = set(PIPES + OPEN_BRACKET + CLOSE_BRACKET + "\n")
_FORBIDDEN_IN_READING = set(OPEN_BRACKET + CLOSE_BRACKET + "\n")


def _literal(base: str, reading: str) -> str:
    return f"{base}{OPEN_BRACKET}{reading}{CLOSE_BRACKET}"


def match_at(text: str, pos: int = 0, end: Optional[int] = None) -> Optional[RubyMatch]:
    """Match the ruby grammar starting exactly at text[pos]; None when nothing matches."""
    end = len(text) if end is None else end
    if pos >= end:
        return None

    ch = text[pos]
    if ch in PIPES:
        m = EXPLICIT_RE.match(text, pos, end)
        if m:
            annotation = RubyAnnotation(base=m.group(1), reading=m.group(2))
            if not annotation.is_complete:
                return RubyMatch(None, _literal(annotation.base, annotation.reading), m.end())
            return RubyMatch(annotation, "", m.end())
        m = ESCAPE_RE.match(text, pos, end)
        if m:
            return RubyMatch(None, _literal("", m.group(1)), m.end())
        return None

    if IDEOGRAPH_RE.match(ch) and not (pos and IDEOGRAPH_RE.match(text, pos - 1)):
        m = IMPLICIT_RE.match(text, pos, end)
        if m:
            annotation = RubyAnnotation(base=m.group(1), reading=m.group(2))
            if annotation.is_complete:
                return RubyMatch(annotation, "", m.end())
    return None


def encode(annotation: RubyAnnotation) -> str:
    """Rich-text form of an annotation."""
    return annotation.to_html()


def decode(tag: Tag) -> Optional[RubyAnnotation]:
    """Recover the annotation from a <ruby> element, or None if it would be malformed.

    READING is the text of the first <rt>; BASE is the element's text with all
    <rt>/<rp> descendants removed. Both are trimmed.
    """
    rt = tag.find("rt")
    if rt is None:
        return None
    reading = rt.get_text().strip()

    clone = copy.copy(tag)
    for child in clone.find_all(["rt", "rp"]):
        child.decompose()
    base = clone.get_text().strip()

    if not base or not reading:
        return None
    if _FORBIDDEN_IN_BASE & set(base) or _FORBIDDEN_IN_READING & set(reading):
        return None
    return RubyAnnotation(base=base, reading=reading)


def escape_literal(text: str) -> str:
    """Prefix literal 《…》 runs with a pipe so they re-render as plain brackets.

    Backslashes right before the run are doubled so none of them escapes the pipe.
    """
    return _LITERAL_BRACKETS_RE.sub(lambda m: m.group(1) * 2 + PIPE + m.group(2), text)

