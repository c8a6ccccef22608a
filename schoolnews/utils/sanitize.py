"""Comment text linkification and markup sanitization.

The default sanitizer is a regex allow-list filter, not a DOM parser. It does
not defend against every injection vector: attribute values containing
unescaped quotes or malformed nesting are not repaired. Callers go through
the ``Sanitizer`` interface so ``BleachSanitizer`` can replace it.
"""

import re
from typing import Dict, List, Optional

import bleach
from bleach.css_sanitizer import CSSSanitizer
from markupsafe import Markup


ALLOWED_TAGS = ["p", "strong", "em", "a", "br", "span", "div"]

ALLOWED_ATTRIBUTES: Dict[str, List[str]] = {
    "a": ["href", "target", "rel"],
    "span": ["style"],
    "div": ["style"],
    "p": ["style"],
    "strong": ["style"],
    "em": ["style"],
    "br": [],
}

ALLOWED_PROTOCOLS = ["http", "https", "ftp", "mailto"]

URL_SCHEMES = ("http://", "https://", "ftp://")

_URL_RE = re.compile(
    r"(?:(?:https?|ftp)://)?[\w.-]+\.[a-z]{2,}(?:/[\w\-._~:/?#\[\]@!$&'()*+,;=]*)?",
    re.IGNORECASE | re.ASCII,
)

# Existing anchors (with their text) and bare tags are skipped when linkifying.
_MARKUP_RE = re.compile(
    r"<a\b[^>]*>.*?</a\s*>|</?[a-zA-Z]+[^>]*>",
    re.IGNORECASE | re.DOTALL,
)

_TAG_RE = re.compile(r"<(/?)([a-zA-Z]+)([^>]*)>")
_ATTRIBUTE_RE = re.compile(r'([a-zA-Z]+)="([^"]*)"')
# Browsers skip leading control characters and drop tabs and newlines inside a URL
_JAVASCRIPT_RE = re.compile(r"^[\x00-\x20]*" + r"[\t\n\r]*".join("javascript:"), re.IGNORECASE)


def _anchor(match: re.Match) -> str:
    url = match.group(0)
    href = url
    if not href.lower().startswith(URL_SCHEMES):
        href = "http://" + href
    return f'<a href="{href}">{url}</a>'


def linkify(text: str) -> str:
    """Wrap URL-like tokens in anchor elements.

    Tokens without a scheme get ``http://`` in the href; the visible text is
    always the token as typed. Markup already present is left alone, so
    linkifying twice never nests anchors.
    """
    if not text:
        return ""

    parts = []
    pos = 0
    for match in _MARKUP_RE.finditer(text):
        parts.append(_URL_RE.sub(_anchor, text[pos:match.start()]))
        parts.append(match.group(0))
        pos = match.end()
    parts.append(_URL_RE.sub(_anchor, text[pos:]))
    return "".join(parts)


def strip_javascript(value: str) -> str:
    """Drop a leading ``javascript:`` scheme (repeatedly); text later in the URL is kept."""
    while True:
        stripped = _JAVASCRIPT_RE.sub("", value)
        if stripped == value:
            return stripped
        value = stripped


class Sanitizer:
    """Reduces an HTML-bearing string to the allowed markup subset."""

    name = "base"

    def clean(self, html: str) -> str:
        raise NotImplementedError

    def __call__(self, html: str) -> str:
        return self.clean(html)


class RegexSanitizer(Sanitizer):
    """Single-pass regex allow-list filter.

    Disallowed tags lose their delimiters but keep their inner text:
    ``<script>alert(1)</script>hello`` becomes ``alert(1)hello``. Passes repeat
    until the output is stable so that deleting a tag can never splice a new
    disallowed tag together.
    """

    name = "regex"

    def __init__(self, tags: Optional[List[str]] = None, attributes: Optional[Dict[str, List[str]]] = None):
        self.tags = set(tags or ALLOWED_TAGS)
        self.attributes = attributes or ALLOWED_ATTRIBUTES

    def _replace_tag(self, match: re.Match) -> str:
        slash, tag_name, blob = match.groups()
        tag = tag_name.lower()
        if tag not in self.tags:
            return ""
        if not blob:
            return match.group(0)

        allowed = self.attributes.get(tag, [])
        kept = ""
        for attr_match in _ATTRIBUTE_RE.finditer(blob):
            attr_name, attr_value = attr_match.groups()
            attr = attr_name.lower()
            if attr not in allowed:
                continue
            if attr == "href":
                attr_value = strip_javascript(attr_value)
            kept += f' {attr_name}="{attr_value}"'
        return f"<{slash}{tag_name}{kept}>"

    def clean(self, html: str) -> str:
        if not html:
            return ""
        while True:
            cleaned = _TAG_RE.sub(self._replace_tag, html)
            if cleaned == html:
                return cleaned
            html = cleaned


class BleachSanitizer(Sanitizer):
    """DOM-based allow-list sanitizer with the same tag and attribute rules."""

    name = "bleach"

    def __init__(self):
        self._cleaner = bleach.Cleaner(
            tags=ALLOWED_TAGS,
            attributes={tag: attrs for tag, attrs in ALLOWED_ATTRIBUTES.items() if attrs},
            protocols=ALLOWED_PROTOCOLS,
            css_sanitizer=CSSSanitizer(),
            strip=True,
        )

    def clean(self, html: str) -> str:
        if not html:
            return ""
        return self._cleaner.clean(html)


SANITIZERS = {
    RegexSanitizer.name: RegexSanitizer,
    BleachSanitizer.name: BleachSanitizer,
}

_default_sanitizer = RegexSanitizer()


def get_sanitizer(name: str = "regex") -> Sanitizer:
    """Build a sanitizer by name ("regex" or "bleach")."""
    try:
        return SANITIZERS[name.lower()]()
    except KeyError:
        raise ValueError(f"Unknown sanitizer '{name}'. Expected one of: {', '.join(SANITIZERS)}")


def sanitize_html(html: str, sanitizer: Optional[Sanitizer] = None) -> str:
    """Sanitize HTML with the allow-list for safe rendering."""
    return (sanitizer or _default_sanitizer).clean(html)


def prepare_comment(raw: str, sanitizer: Optional[Sanitizer] = None) -> str:
    """Turn submitted comment text into the markup that gets stored."""
    return sanitize_html(linkify((raw or "").strip()), sanitizer)


def render_comment(stored: str, sanitizer: Optional[Sanitizer] = None) -> Markup:
    """Return stored comment markup sanitized and marked safe for rendering."""
    return Markup(sanitize_html(stored, sanitizer))
