"""Rendering of exported Markdown notes as standalone HTML pages."""

import markdown
from bs4 import BeautifulSoup

PAGE_TEMPLATE = """<!DOCTYPE html>
<html>
<head><meta charset="utf-8"><title></title></head>
<body></body>
</html>
"""

CHECKBOX_PREFIXES = {"[ ] ": False, "[x] ": True}


def markdown_to_html(md_content: str, title: str) -> str:
    """Convert a note's Markdown to a complete HTML document.

    Checklist items (``- [ ]`` / ``- [x]``) become disabled checkboxes, since
    Python-Markdown has no task list syntax.
    """
    body_html = markdown.markdown(
        md_content,
        extensions=["extra", "sane_lists"],
    )

    page = BeautifulSoup(PAGE_TEMPLATE, "html.parser")
    page.title.string = title

    body = BeautifulSoup(body_html, "html.parser")
    for li in body.find_all("li"):
        _convert_checkbox(body, li)

    page.body.append(body)
    return str(page)


def _convert_checkbox(soup: BeautifulSoup, li) -> None:
    """Replace a leading ``[ ]``/``[x]`` marker in a list item with an input."""
    first = li.contents[0] if li.contents else None
    # Loose lists wrap the item text in a paragraph
    if first is not None and first.name == "p":
        li = first
        first = li.contents[0] if li.contents else None
    if first is None or first.name is not None:
        return

    text = str(first)
    for marker, checked in CHECKBOX_PREFIXES.items():
        if text.startswith(marker):
            checkbox = soup.new_tag("input", attrs={"type": "checkbox", "disabled": ""})
            if checked:
                checkbox["checked"] = ""
            first.replace_with(text[len(marker):])
            li.insert(0, checkbox)
            li.insert(1, " ")
            return
