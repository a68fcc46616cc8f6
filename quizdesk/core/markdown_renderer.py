"""Markdown rendering for question text, options and explanations.

Math is left as ``$...$`` source; the student page typesets it client-side.
"""

from __future__ import annotations

from markdown_it import MarkdownIt


class MarkdownRenderer:
    """Converts catalog markdown into HTML fragments for the API payloads."""

    def __init__(self, enable_html: bool = False) -> None:
        self._markdown = (
            MarkdownIt("commonmark", {"html": enable_html})
            .enable("table")
            .enable("strikethrough")
        )

    def render_block(self, markdown_text: str) -> str:
        source = markdown_text.strip()
        if not source:
            return ""
        return self._markdown.render(source)

    def render_inline(self, markdown_text: str) -> str:
        """Render a short snippet such as an option label without a wrapping paragraph."""
        source = markdown_text.strip()
        if not source:
            return ""
        return self._markdown.renderInline(source)


renderer = MarkdownRenderer()
