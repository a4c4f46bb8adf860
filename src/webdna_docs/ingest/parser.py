"""HTML extraction for the WebDNA documentation site."""

from __future__ import annotations

import re

from bs4 import BeautifulSoup, Tag

from webdna_docs.types import GlanceCategory, InstructionLink, InstructionPage

_SOURCE_ID = re.compile(r"/([^/]+)/([^/]+)$")


def extract_source_id(url: str) -> str:
    """Last path segment of `.../<section>/<name>`; the url itself otherwise."""
    match = _SOURCE_ID.search(url)
    return match.group(2) if match else url


def parse_glance_page(html: str) -> list[GlanceCategory]:
    """Categories and their instruction links from the at-a-glance page.

    Each category is an `h5.card-title` whose `.card-title-text` holds the
    name; the instruction links live in the `.card-text` element that
    immediately follows the heading.
    """
    soup = BeautifulSoup(html, "html.parser")
    categories: list[GlanceCategory] = []
    for heading in soup.select("h5.card-title"):
        title = heading.select_one(".card-title-text")
        category = GlanceCategory(name=title.get_text(strip=True) if title else "")

        card_text = heading.find_next_sibling()
        if isinstance(card_text, Tag) and "card-text" in (card_text.get("class") or []):
            for link in card_text.find_all("a"):
                name = link.get_text(strip=True)
                href = link.get("href")
                if name and isinstance(href, str) and href:
                    category.instructions.append(
                        InstructionLink(name=name, url=href, webdna_id=extract_source_id(href))
                    )
        categories.append(category)
    return categories


def parse_instruction_page(html: str) -> InstructionPage:
    soup = BeautifulSoup(html, "html.parser")
    page = InstructionPage()

    description = soup.select_one("article p")
    if description is not None:
        page.description = description.get_text().strip()

    for code in soup.select("pre code"):
        text = code.get_text().strip()
        if "[" in text and "]" in text:
            page.syntax = text
            break

    page.parameters = _section_html(soup, ("parameter",))
    page.examples = _section_html(soup, ("example",))

    related = _section_tags(soup, ("related", "see also"))
    seen: set[str] = set()
    for tag in related:
        for link in tag.find_all("a") if tag.name != "a" else [tag]:
            href = link.get("href")
            if not isinstance(href, str) or not href:
                continue
            source_id = extract_source_id(href)
            if source_id not in seen:
                seen.add(source_id)
                page.related_source_ids.append(source_id)
    return page


def _section_tags(soup: BeautifulSoup, keywords: tuple[str, ...]) -> list[Tag]:
    """Sibling elements after the first h3 matching a keyword, up to the next h3."""
    for heading in soup.find_all("h3"):
        title = heading.get_text().strip().lower()
        if not any(keyword in title for keyword in keywords):
            continue
        section: list[Tag] = []
        for sibling in heading.find_next_siblings():
            if sibling.name == "h3":
                break
            section.append(sibling)
        return section
    return []


def _section_html(soup: BeautifulSoup, keywords: tuple[str, ...]) -> str:
    return "".join(str(tag) for tag in _section_tags(soup, keywords)).strip()
