"""HTML from the editing surface back to plain text with ruby syntax"""

import re
import unicodedata

from bs4 import BeautifulSoup, Comment, NavigableString, Tag
from markdownify import ATX, MarkdownConverter, chomp

from tsumugi.core import ruby
from tsumugi.core.models import CLOSE_BRACKET, PIPE
from tsumugi.core.render import BLANK_LINE_CLASS, EMPTY_MESSAGE, PLACEHOLDER_CLASS
from tsumugi.core.sanitize import drop_denied


# Stands in for one blank-marker paragraph until newline collapsing is done
BLANK_SENTINEL = "\ue000"
_BLANK_RUN_RE = re.compile(rf"\n*((?:{BLANK_SENTINEL}\n*)+)")
_TOP_LEVEL = {"[document]", "html", "body"}


def _code_language(el: Tag):
    """Language from a fenced block's `class="language-…"`, as markdown-it writes it."""
    code = el.find("code")
    for name in (code.get("class") or []) if code else []:
        if name.startswith("language-"):
            return name[len("language-"):]
    return None


def _has_class(el: Tag, name: str) -> bool:
    return name in (el.get("class") or [])


def _follows_break(el) -> bool:
    prev = el.previous_sibling
    return isinstance(prev, Tag) and prev.name == "br"


# Elements that continue the line they sit on
_INLINE_TAGS = {
    "a", "abbr", "b", "code", "del", "em", "i", "kbd", "mark", "s", "samp",
    "small", "span", "strong", "sub", "sup", "u",
}


def _is_punct(ch: str) -> bool:
    # markdown-it counts Unicode symbols as punctuation for delimiter flanking
    return unicodedata.category(ch).startswith(("P", "S"))


def _outer_text(node, before: bool) -> str:
    """Approximate plain-text output of a neighbouring node."""
    if isinstance(node, Comment):
        return ""
    if isinstance(node, NavigableString):
        return str(node)
    if node.name == "ruby":
        return CLOSE_BRACKET if before else PIPE
    if node.name in _INLINE_TAGS:
        return node.get_text()
    return "\n"


def _adjacent_char(el: Tag, before: bool) -> str:
    """The character written next to `el` on its line, or "" at a line edge."""
    node = el
    while True:
        sibling = node.previous_sibling if before else node.next_sibling
        while sibling is not None:
            text = _outer_text(sibling, before)
            if text:
                return text[-1] if before else text[0]
            sibling = sibling.previous_sibling if before else sibling.next_sibling
        node = node.parent
        if node is None or node.name not in _INLINE_TAGS:
            return ""


def _is_edge(ch: str) -> bool:
    return not ch or ch.isspace() or _is_punct(ch)


def _flanks(delimiter: str, before: str, first: str, last: str, after: str) -> bool:
    """Whether `delimiter` both opens before `first` and closes after `last` under CommonMark."""
    if first.isspace() or last.isspace():
        return False
    opens = not _is_punct(first) or _is_edge(before)
    closes = not _is_punct(last) or _is_edge(after)
    if delimiter.startswith("_"):
        # underscores never open or close inside a word
        opens = opens and _is_edge(before)
        closes = closes and _is_edge(after)
    return opens and closes


class EditorMarkdownConverter(MarkdownConverter):
    """markdownify with per-tag handlers for ruby, breaks and editor-only artifacts."""

    class Options(MarkdownConverter.DefaultOptions):
        bullets = "-"
        heading_style = ATX
        strong_em_symbol = "*"
        blank_line_class = BLANK_LINE_CLASS
        empty_message = EMPTY_MESSAGE

    def __init__(self, **options):
        options.setdefault("code_language_callback", _code_language)
        super().__init__(**options)

    def _delimit(self, el, text, parent_tags, delimiters, tag):
        """Wrap inline text in the first delimiter that re-parses here, else in raw HTML.

        Emphasis between CJK letters needs `*`; before punctuation such as 《
        only the HTML form survives.
        """
        if "_noformat" in parent_tags:
            return text
        prefix, suffix, text = chomp(text)
        if not text:
            return ""
        before = " " if prefix else _adjacent_char(el, before=True)
        after = " " if suffix else _adjacent_char(el, before=False)
        for delimiter in delimiters:
            if _flanks(delimiter, before, text[0], text[-1], after):
                return f"{prefix}{delimiter}{text}{delimiter}{suffix}"
        return f"{prefix}<{tag}>{text}</{tag}>{suffix}"

    def convert_em(self, el, text, parent_tags):
        symbol = self.options["strong_em_symbol"]
        return self._delimit(el, text, parent_tags, ("_", symbol), "em")

    convert_i = convert_em

    def convert_strong(self, el, text, parent_tags):
        symbol = self.options["strong_em_symbol"]
        return self._delimit(el, text, parent_tags, (symbol * 2,), "strong")

    convert_b = convert_strong

    def process_text(self, el, parent_tags=None):
        text = super().process_text(el, parent_tags=parent_tags)
        # the newline a serializer writes after <br> is not content
        if _follows_break(el) and "pre" not in (parent_tags or ()):
            text = text.lstrip(" \t\r\n")
        return text

    def escape(self, text, parent_tags):
        return ruby.escape_literal(super().escape(text, parent_tags))

    def convert_ruby(self, el, text, parent_tags):
        if "_noformat" in parent_tags:
            return text
        annotation = ruby.decode(el)
        if annotation is None:
            return text
        return annotation.to_markdown()

    def convert_br(self, el, text, parent_tags):
        if "_inline" in parent_tags:
            return " "
        return "\n"

    def convert_p(self, el, text, parent_tags):
        if not text.strip():
            # a marker only counts as one while nothing was typed into it
            if _has_class(el, self.options["blank_line_class"]) and parent_tags <= _TOP_LEVEL:
                return f"\n\n{BLANK_SENTINEL}\n\n"
            return ""
        return super().convert_p(el, text, parent_tags)

    def convert_div(self, el, text, parent_tags):
        if _has_class(el, PLACEHOLDER_CLASS):
            if el.get_text().strip() in ("", self.options["empty_message"]):
                return ""
        return super().convert_div(el, text, parent_tags)


def _expand_blank_runs(text: str) -> str:
    """Turn each run of N sentinels into N blank lines."""
    def _expand(m: re.Match) -> str:
        count = m.group(1).count(BLANK_SENTINEL)
        if m.start() == 0:
            return "\n" * count
        return "\n" * (count + 1)
    return _BLANK_RUN_RE.sub(_expand, text)


def commit(
    html: str,
    blank_line_class: str = BLANK_LINE_CLASS,
    empty_message: str = EMPTY_MESSAGE,
    ) -> str:
    """Convert editing-surface HTML to plain text; forgiving on malformed input."""
    if not html or not html.strip():
        return ""
    soup = BeautifulSoup(html, "html.parser")
    drop_denied(soup)
    text = EditorMarkdownConverter(
        blank_line_class=blank_line_class,
        empty_message=empty_message,
    ).convert_soup(soup)
    text = _expand_blank_runs(text)
    return text if text.strip() else ""
