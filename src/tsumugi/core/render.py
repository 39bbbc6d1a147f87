"""Markdown to sanitized HTML: markdown-it parse, ruby rule, blank-line markers"""

import re
from functools import lru_cache
from html import escape

from markdown_it import MarkdownIt
from markdown_it.rules_core import StateCore
from markdown_it.rules_inline import StateInline
from markdown_it.token import Token

from tsumugi.core import ruby
from tsumugi.core.sanitize import DEFAULT_POLICY, SanitizationPolicy, sanitize_html


BLANK_LINE_CLASS = "blank-line"
PLACEHOLDER_CLASS = "empty-placeholder"
PLACEHOLDER_STYLE = "writing-mode: horizontal-tb; text-align: center; color: grey; padding-top: 50px;"
EMPTY_MESSAGE = "This document is empty."

# markdown-it's own text terminators, plus pipes and the start of an ideograph run
_TERMINATORS = "\n!#$%&*+-:<=>@[\\]^_`{}~"
_TEXT_STOP_RE = re.compile(
    f"[{re.escape(_TERMINATORS + ruby.PIPES)}]"
    f"|(?<![{ruby.IDEOGRAPHS}])[{ruby.IDEOGRAPHS}]"
)


def _text(state: StateInline, silent: bool) -> bool:
    """Replacement for markdown-it's text rule that yields to the ruby rule."""
    stop = _TEXT_STOP_RE.search(state.src, state.pos, state.posMax)
    pos = stop.start() if stop else state.posMax
    if pos == state.pos:
        return False
    if not silent:
        state.pending += state.src[state.pos:pos]
    state.pos = pos
    return True


def _ruby(state: StateInline, silent: bool) -> bool:
    match = ruby.match_at(state.src, state.pos, state.posMax)
    if match is None:
        return False

    if not silent:
        if match.annotation is None:
            state.pending += match.literal
        else:
            token = state.push("html_inline", "", 0)
            token.content = ruby.encode(match.annotation)
    state.pos = match.end
    return True


def ruby_plugin(md: MarkdownIt) -> None:
    """Register the ruby grammar as an inline rule that binds before plain text."""
    md.inline.ruler.at("text", _text)
    md.inline.ruler.before("text", "ruby", _ruby)


def _count_blank_lines(lines: list[str], prev_map: list[int], start: int) -> int:
    """Whitespace-only lines between the last non-blank line of a block and `start`."""
    first, end = prev_map
    while end > first + 1 and not lines[end - 1].strip():
        end -= 1
    return sum(1 for line in lines[end:start] if not line.strip())


def _blank_lines_rule(css_class: str):
    def blank_lines(state: StateCore) -> None:
        lines = state.src.split("\n")
        tokens: list[Token] = []
        prev_map = None
        for token in state.tokens:
            if token.level == 0 and token.map and token.nesting >= 0:
                if prev_map is not None:
                    start = token.map[0]
                    for _ in range(_count_blank_lines(lines, prev_map, start)):
                        tokens.append(Token(
                            "blank_line", "p", 0,
                            attrs={"class": css_class}, map=[start, start], block=True,
                        ))
                prev_map = token.map
            tokens.append(token)
        state.tokens = tokens
    return blank_lines


def _render_blank_line(self, tokens, idx, options, env) -> str:
    return f"<p{self.renderAttrs(tokens[idx])}><br /></p>\n"


def blank_lines_plugin(md: MarkdownIt, css_class: str = BLANK_LINE_CLASS) -> None:
    """Materialize each blank source line between top-level blocks as a marker paragraph."""
    md.core.ruler.after("block", "blank_lines", _blank_lines_rule(css_class))
    md.add_render_rule("blank_line", _render_blank_line)


@lru_cache(maxsize=8)
def make_parser(preset: str = "commonmark", blank_line_class: str = BLANK_LINE_CLASS) -> MarkdownIt:
    """Build a MarkdownIt instance with raw HTML, hard breaks, ruby and blank-line markers."""
    md = MarkdownIt(preset, options_update={"html": True, "breaks": True, "linkify": False})
    md.use(ruby_plugin)
    md.use(blank_lines_plugin, css_class=blank_line_class)
    return md


def placeholder(message: str = EMPTY_MESSAGE) -> str:
    return f'<div class="{PLACEHOLDER_CLASS}" style="{PLACEHOLDER_STYLE}">{escape(message)}</div>'


def render(
    source: str,
    preset: str = "commonmark",
    blank_line_class: str = BLANK_LINE_CLASS,
    empty_message: str = EMPTY_MESSAGE,
    policy: SanitizationPolicy = DEFAULT_POLICY,
    ) -> str:
    """Convert plain text to sanitized HTML for the editing surface."""
    if not source.strip():
        return placeholder(empty_message)
    html = make_parser(preset, blank_line_class).render(source)
    return sanitize_html(html, policy)
