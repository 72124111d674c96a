# mailcore/html_text.py
#
# ============================================================================
# WHAT THIS FILE DOES:
# Turns HTML email into readable markdown. Links stay as [text](url), lists
# stay as "- item", bold/italic stay as **x** / *x*, so an AI agent reading
# the result still sees what the sender pointed at and emphasized.
#
# If conversion blows up, we hand back the ORIGINAL HTML. Callers must
# treat the output as "best effort readable", never as guaranteed
# markup-free.
# ============================================================================

import re

from markdownify import markdownify
from rich.console import Console
from rich.markup import escape

console = Console(stderr=True)

# Three or more newlines in a row collapse to one blank line.
_EXCESS_NEWLINES_RE = re.compile(r'\n{3,}')


def html_to_text(html: str) -> str:
    """
    Convert HTML to markdown-flavored text.

    Args:
        html: The decoded HTML body.

    Returns:
        Trimmed markdown text, or the untouched input if conversion failed.
    """
    if not html:
        return ""

    try:
        markdown = markdownify(
            html,
            heading_style="ATX",   # "# Heading" instead of underlines
            bullets="-",
            escape_underscores=False,
            escape_asterisks=False,
        )
    except Exception as e:
        console.print(f"[yellow]WARN[/yellow] HTML conversion failed, using raw HTML: {escape(str(e))}")
        return html

    markdown = markdown.replace('\r\n', '\n').replace('\r', '\n')
    markdown = _EXCESS_NEWLINES_RE.sub('\n\n', markdown)
    return markdown.strip()
