"""Conversion of HTML pages to Markdown."""

from __future__ import annotations

import re
from html.parser import HTMLParser

_SKIPPED = frozenset({"script", "style", "title", "noscript", "template"})
_BLOCKS = frozenset(
    {
        "html", "body", "p", "div", "section", "article", "header", "footer",
        "main", "nav", "aside", "table", "tr", "form", "figure", "figcaption",
        "dl", "dt", "dd", "address", "details", "summary",
    }
)
_HEADING = re.compile(r"h([1-6])")
_WHITESPACE = re.compile(r"\s+")
_EXTRA_NEWLINES = re.compile(r"\n{3,}")


class _MarkdownWriter(HTMLParser):
    def __init__(self) -> None:
        super().__init__(convert_charrefs=True)
        self._parts: list[str] = []
        self._skip = 0
        self._pre = 0
        self._quote = 0
        self._lists: list[list] = []
        self._links: list[str | None] = []

    def _tail(self) -> str:
        return "".join(self._parts[-2:])

    def _write(self, text: str) -> None:
        if text:
            self._parts.append(text)

    def _at_line_start(self) -> bool:
        return not self._parts or self._tail().endswith("\n")

    def _start_line(self) -> None:
        if self._quote and self._at_line_start():
            self._write("> " * self._quote)

    def _newline(self) -> None:
        if not self._at_line_start():
            self._write("\n")

    def _block(self) -> None:
        if not self._parts:
            return
        tail = self._tail()
        if tail.endswith("\n\n"):
            return
        self._write("\n" if tail.endswith("\n") else "\n\n")

    def _inline(self, marker: str) -> None:
        self._start_line()
        self._write(marker)

    def handle_starttag(self, tag: str, attrs: list[tuple[str, str | None]]) -> None:
        if tag in _SKIPPED:
            self._skip += 1
            return
        if self._skip:
            return
        attributes = dict(attrs)
        heading = _HEADING.fullmatch(tag)
        if heading:
            self._block()
            self._start_line()
            self._write("#" * int(heading.group(1)) + " ")
        elif tag in _BLOCKS:
            self._block()
        elif tag == "br":
            self._write("\n")
        elif tag == "hr":
            self._block()
            self._start_line()
            self._write("---")
            self._block()
        elif tag in ("strong", "b"):
            self._inline("**")
        elif tag in ("em", "i"):
            self._inline("*")
        elif tag == "code" and not self._pre:
            self._inline("`")
        elif tag == "pre":
            self._block()
            self._write("```\n")
            self._pre += 1
        elif tag == "a":
            href = attributes.get("href") or None
            self._links.append(href)
            if href:
                self._inline("[")
        elif tag == "img":
            src = attributes.get("src")
            if src:
                self._inline(f"![{attributes.get('alt') or ''}]({src})")
        elif tag in ("ul", "ol"):
            if self._lists:
                self._newline()
            else:
                self._block()
            self._lists.append([tag == "ol", 0])
        elif tag == "li":
            self._newline()
            self._start_line()
            if self._lists:
                current = self._lists[-1]
                current[1] += 1
                marker = f"{current[1]}. " if current[0] else "- "
                self._write("  " * (len(self._lists) - 1) + marker)
            else:
                self._write("- ")
        elif tag == "blockquote":
            self._block()
            self._quote += 1
        elif tag in ("td", "th"):
            if not self._at_line_start():
                self._write(" | ")

    def handle_endtag(self, tag: str) -> None:
        if tag in _SKIPPED:
            self._skip = max(0, self._skip - 1)
            return
        if self._skip:
            return
        if _HEADING.fullmatch(tag) or tag in _BLOCKS:
            self._block()
        elif tag in ("strong", "b"):
            self._write("**")
        elif tag in ("em", "i"):
            self._write("*")
        elif tag == "code" and not self._pre:
            self._write("`")
        elif tag == "pre" and self._pre:
            self._newline()
            self._write("```")
            self._pre -= 1
            self._block()
        elif tag == "a":
            href = self._links.pop() if self._links else None
            if href:
                self._write(f"]({href})")
        elif tag in ("ul", "ol"):
            if self._lists:
                self._lists.pop()
            if self._lists:
                self._newline()
            else:
                self._block()
        elif tag == "li":
            self._newline()
        elif tag == "blockquote" and self._quote:
            self._quote -= 1
            self._block()

    def handle_data(self, data: str) -> None:
        if self._skip:
            return
        if self._pre:
            self._write(data)
            return
        text = _WHITESPACE.sub(" ", data)
        if self._at_line_start() or self._tail().endswith(" "):
            text = text.lstrip(" ")
        if not text:
            return
        self._start_line()
        self._write(text)

    def result(self) -> str:
        text = "".join(self._parts)
        text = "\n".join(line.rstrip() for line in text.split("\n"))
        return _EXTRA_NEWLINES.sub("\n\n", text).strip()


def html_to_markdown(html: str) -> str:
    """Render an HTML document as Markdown text."""
    writer = _MarkdownWriter()
    writer.feed(html)
    writer.close()
    return writer.result()