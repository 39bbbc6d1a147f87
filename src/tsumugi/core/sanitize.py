"""Allow-list sanitization for the editable rich-text surface"""

import logging

import bleach
from bleach.css_sanitizer import CSSSanitizer
from bs4 import BeautifulSoup
from pydantic import BaseModel, ConfigDict, Field, model_validator


logger = logging.getLogger(__name__)

# Removed together with their content; never configurable.
HARD_DENIED_TAGS = frozenset({
    "script", "style", "iframe", "frame", "frameset", "object", "embed",
    "applet", "noscript", "template", "base", "link", "meta",
})

DEFAULT_TAGS = frozenset({
    "a", "abbr", "b", "blockquote", "br", "code", "del", "div", "em", "h1", "h2",
    "h3", "h4", "h5", "h6", "hr", "i", "img", "li", "ol", "p", "pre", "rp", "rt",
    "ruby", "s", "span", "strong", "sub", "sup", "table", "tbody", "td", "th",
    "thead", "tr", "u", "ul",
})

DEFAULT_ATTRIBUTES: dict[str, frozenset[str]] = {
    "a": frozenset({"href", "title"}),
    "img": frozenset({"src", "alt", "title"}),
    "ol": frozenset({"start"}),
    "td": frozenset({"align", "colspan"}),
    "th": frozenset({"align", "colspan"}),
}

DEFAULT_GLOBAL_ATTRIBUTES = frozenset({"class", "style"})


class SanitizationPolicy(BaseModel):
    """Tags and attributes permitted to reach the editing surface."""
    model_config = ConfigDict(frozen=True)

    tags:              frozenset[str] = DEFAULT_TAGS
    attributes:        dict[str, frozenset[str]] = Field(default_factory=lambda: dict(DEFAULT_ATTRIBUTES))
    global_attributes: frozenset[str] = DEFAULT_GLOBAL_ATTRIBUTES
    protocols:         frozenset[str] = frozenset({"http", "https", "mailto"})

    @model_validator(mode="after")
    def _reject_executable(self) -> "SanitizationPolicy":
        denied = self.tags & HARD_DENIED_TAGS
        if denied:
            raise ValueError(f"Tags cannot be allowed: {', '.join(sorted(denied))}")
        names = set(self.global_attributes).union(*self.attributes.values())
        handlers = sorted(n for n in names if n.lower().startswith("on"))
        if handlers:
            raise ValueError(f"Event-handler attributes cannot be allowed: {', '.join(handlers)}")
        return self

    def bleach_attributes(self) -> dict[str, list[str]]:
        """Attribute map in bleach's shape; '*' carries the global set."""
        attrs = {tag: sorted(names) for tag, names in self.attributes.items()}
        attrs["*"] = sorted(self.global_attributes)
        return attrs

    def cleaner(self) -> bleach.Cleaner:
        return bleach.Cleaner(
            tags=self.tags,
            attributes=self.bleach_attributes(),
            protocols=self.protocols,
            strip=True,
            strip_comments=True,
            css_sanitizer=CSSSanitizer(),
        )


DEFAULT_POLICY = SanitizationPolicy()


def drop_denied(soup: BeautifulSoup) -> int:
    """Remove hard-denied elements (with their content) in place. Returns count removed."""
    found = soup.find_all(list(HARD_DENIED_TAGS))
    for el in found:
        if not el.decomposed:
            el.decompose()
    return len(found)


def sanitize_html(html: str, policy: SanitizationPolicy = DEFAULT_POLICY) -> str:
    """Filter an HTML fragment through the policy; never raises on text input."""
    if not html:
        return ""
    soup = BeautifulSoup(html, "html.parser")
    removed = drop_denied(soup)
    if removed:
        logger.debug("Removed %d hard-denied element(s)", removed)
    return policy.cleaner().clean(str(soup))
