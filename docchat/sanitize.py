"""Untrusted text cleanup for incoming questions."""

import re
from html.parser import HTMLParser

MAX_INPUT_LENGTH = 10_000

_WHITESPACE = re.compile(r"\s+")


class _TextCollector(HTMLParser):
    """Keeps character data, dropping tags and script/style bodies."""

    _SKIPPED = {"script", "style"}

    def __init__(self) -> None:
        super().__init__(convert_charrefs=True)
        self._parts: list[str] = []
        self._skip_depth = 0

    def handle_starttag(self, tag: str, attrs) -> None:
        if tag in self._SKIPPED:
            self._skip_depth += 1

    def handle_endtag(self, tag: str) -> None:
        if tag in self._SKIPPED and self._skip_depth:
            self._skip_depth -= 1

    def handle_data(self, data: str) -> None:
        if not self._skip_depth:
            self._parts.append(data)

    def get_text(self) -> str:
        return "".join(self._parts)


def strip_tags(text: str) -> str:
    """Remove HTML markup, keeping the visible text."""
    parser = _TextCollector()
    parser.feed(text)
    parser.close()
    return parser.get_text()


def sanitize_input(text: str, max_length: int = MAX_INPUT_LENGTH) -> str:
    """Strip markup, collapse whitespace and cap the length.

    Args:
        text: Raw user input
        max_length: Characters kept after cleanup

    Returns:
        Cleaned text, possibly empty
    """
    cleaned = _WHITESPACE.sub(" ", strip_tags(text)).strip()
    return cleaned[:max_length].rstrip()
