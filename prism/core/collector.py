"""
Resource Collector — enumerates scan targets in an HTML document.

Pure traversal: no fetching, no matching. External URLs are resolved against
the page URL the way the DOM resolves `script.src` and `link.href`.
"""

from __future__ import annotations

from urllib.parse import urljoin

from bs4 import BeautifulSoup

from prism.models.scan_models import CollectedResources, InlineContent


def parse_document(html: str) -> BeautifulSoup:
    return BeautifulSoup(html, "html.parser")


def _is_stylesheet(link) -> bool:
    rel = link.get("rel") or []
    if isinstance(rel, str):
        rel = rel.split()
    return "stylesheet" in (r.lower() for r in rel)


def collect_resource_urls(soup: BeautifulSoup, base_url: str = "") -> tuple[list[str], list[str]]:
    """External script and stylesheet URLs, data: URIs excluded."""
    scripts: list[str] = []
    stylesheets: list[str] = []

    for script in soup.find_all("script", src=True):
        src = script["src"].strip()
        if src and not src.lower().startswith("data:"):
            scripts.append(urljoin(base_url, src))

    for link in soup.find_all("link", href=True):
        if not _is_stylesheet(link):
            continue
        href = link["href"].strip()
        if href and not href.lower().startswith("data:"):
            stylesheets.append(urljoin(base_url, href))

    return scripts, stylesheets


def collect_inline(soup: BeautifulSoup, tag: str, label: str) -> list[InlineContent]:
    """
    Non-empty inline bodies of `tag`, labelled `<label>-<n>`.

    n counts every candidate element in document order, empty ones included,
    so a label keeps pointing at the same element when other bodies change.
    """
    if tag == "script":
        elements = soup.find_all("script", src=False)
    else:
        elements = soup.find_all(tag)

    items: list[InlineContent] = []
    for index, element in enumerate(elements, start=1):
        text = element.string or element.get_text()
        if text and text.strip():
            items.append(InlineContent(content=text, source=f"{label}-{index}"))
    return items


def collect(document: str | BeautifulSoup, base_url: str = "") -> CollectedResources:
    """Enumerate every scan target the document offers."""
    soup = document if isinstance(document, BeautifulSoup) else parse_document(document)
    scripts, stylesheets = collect_resource_urls(soup, base_url)

    return CollectedResources(
        scripts=scripts,
        stylesheets=stylesheets,
        inline_scripts=collect_inline(soup, "script", "inline-script"),
        inline_styles=collect_inline(soup, "style", "inline-style"),
    )
