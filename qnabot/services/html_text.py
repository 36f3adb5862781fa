"""
Text processing for answer bodies: HTML entity decoding and markup removal.

The service stores answers as HTML fragments, so text like "A &amp; B" or
"Tom&#39;s" comes back escaped. Decoding is best-effort: a failure leaves
the text as it was instead of failing the call.
"""

import html
import logging
import re
from html.parser import HTMLParser

logger = logging.getLogger(__name__)

# Tags whose end (or self-closing form) starts a new line in rendered text
_LINE_BREAK_TAGS = frozenset({"br", "p", "div", "li", "tr", "h1", "h2", "h3", "h4", "h5", "h6"})


def decode_html_entities(text: str) -> str:
    """
    Decode named (&amp;, &quot;, &apos;, ...) and numeric (&#39;, &#x27;)
    character references. Returns the input unchanged on failure.
    """
    if not text:
        return text
    try:
        return html.unescape(text)
    except (ValueError, OverflowError) as e:
        logger.warning("[html_text:decode_html_entities] decode failed, keeping raw text: %s", e)
        return text


class _TextCollector(HTMLParser):
    def __init__(self) -> None:
        super().__init__(convert_charrefs=True)
        self.parts: list[str] = []

    def handle_data(self, data: str) -> None:
        self.parts.append(data)

    def handle_starttag(self, tag: str, attrs: list[tuple[str, str | None]]) -> None:
        if tag == "br":
            self.parts.append("\n")

    def handle_startendtag(self, tag: str, attrs: list[tuple[str, str | None]]) -> None:
        if tag == "br":
            self.parts.append("\n")

    def handle_endtag(self, tag: str) -> None:
        if tag in _LINE_BREAK_TAGS and tag != "br":
            self.parts.append("\n")


def html_to_text(text: str) -> str:
    """
    Render an HTML fragment to plain text: tags dropped, <br> and block ends
    become newlines, entities decoded. Falls back to entity decoding only.
    """
    if not text:
        return text
    parser = _TextCollector()
    try:
        parser.feed(text)
        parser.close()
    except (ValueError, AssertionError) as e:
        logger.warning("[html_text:html_to_text] parse failed, decoding entities only: %s", e)
        return decode_html_entities(text)
    rendered = "".join(parser.parts)
    rendered = re.sub(r"[ \t]+\n", "\n", rendered)
    rendered = re.sub(r"\n{3,}", "\n\n", rendered)
    return rendered.strip()
