"""
Item Extraction
===============

Walks a parsed RSS or Atom document and yields one CandidateItem per
item/entry. Feed fields arrive in inconsistent shapes (a guid may be bare
text or an element carrying attributes, an Atom title may wrap markup, a
link may be an href attribute or element text); every such value is
resolved to a plain string here so nothing downstream has to care.

The element tree always hands back a sequence of children, so a feed with
exactly one item goes down the same path as a feed with fifty.
"""

import re
from dataclasses import dataclass, field
from typing import Iterator, List, Optional, Tuple, Union

from lxml import etree

from .format_detector import (
    ATOM_NAMESPACES,
    RSS_NAMESPACES,
    FeedFormat,
    RawDocument,
    atom_entries,
    child_elements,
    is_element,
    rss_items,
    split_tag,
)

MEDIA_NS = "http://search.yahoo.com/mrss/"
CONTENT_NS = "http://purl.org/rss/1.0/modules/content/"
DC_NS = "http://purl.org/dc/elements/1.1/"

# Permissive: attribute order, quoting style and case all vary in the wild
IMG_SRC_PATTERN = re.compile(r"""<img\b[^>]*?\bsrc\s*=\s*["']([^"'>]+)["']""", re.IGNORECASE)

TextOrNode = Union[str, etree._Element, None]


@dataclass
class MediaHints:
    """Image sources found on a candidate, in raw form."""

    media_content: Optional[str] = None
    media_thumbnail: Optional[str] = None
    enclosures: List[Tuple[str, Optional[str]]] = field(default_factory=list)
    markup: List[str] = field(default_factory=list)


@dataclass
class CandidateItem:
    """Extracted but not yet validated item."""

    title: Optional[str]
    link: Optional[str]
    description: Optional[str]
    published: Optional[str]
    guid: Optional[str]
    media: MediaHints = field(default_factory=MediaHints)


def resolve_text(value: TextOrNode) -> Optional[str]:
    """Resolve a text-or-element value to stripped text, or None when empty."""
    if value is None:
        return None
    if isinstance(value, str):
        text = value
    else:
        text = "".join(value.itertext())
    text = text.strip()
    return text or None


def inner_markup(node: Optional[etree._Element]) -> Optional[str]:
    """Text of an element including any child markup, serialized."""
    if node is None:
        return None
    parts = [node.text or ""]
    for child in node:
        parts.append(etree.tostring(child, encoding="unicode", with_tail=True))
    text = "".join(parts).strip()
    return text or None


def _first(parent, local_name, namespaces) -> Optional[etree._Element]:
    found = child_elements(parent, local_name, namespaces)
    return found[0] if found else None


def _is_media(node, local_name: str) -> bool:
    namespace, local = split_tag(node.tag)
    if namespace == MEDIA_NS:
        return local == local_name
    # Undeclared "media:" prefix survives recovery as a literal tag name
    return namespace is None and local == f"media:{local_name}"


def _media_url(item: etree._Element, local_name: str) -> Optional[str]:
    """First media element (media:group children included) with a url."""
    for node in item.iter():
        if is_element(node) and _is_media(node, local_name):
            url = resolve_text(node.get("url"))
            if url:
                return url
    return None


def _published(item: etree._Element) -> Optional[str]:
    """pubDate in any letter case, then dc:date."""
    for child in item:
        if not is_element(child):
            continue
        namespace, local = split_tag(child.tag)
        if namespace in RSS_NAMESPACES and local.lower() == "pubdate":
            text = resolve_text(child)
            if text:
                return text
    return resolve_text(_first(item, "date", {DC_NS}))


def _rss_guid(item: etree._Element) -> Tuple[Optional[str], bool]:
    """guid text and whether it is declared a permalink."""
    node = _first(item, "guid", RSS_NAMESPACES)
    if node is None:
        return None, False
    is_permalink = (node.get("isPermaLink") or "true").strip().lower() != "false"
    return resolve_text(node), is_permalink


def extract_rss_item(item: etree._Element) -> CandidateItem:
    link = resolve_text(_first(item, "link", RSS_NAMESPACES))
    guid, is_permalink = _rss_guid(item)
    if not link and guid and is_permalink and guid.lower().startswith(("http://", "https://")):
        link = guid

    description = inner_markup(_first(item, "description", RSS_NAMESPACES))

    media = MediaHints(
        media_content=_media_url(item, "content"),
        media_thumbnail=_media_url(item, "thumbnail"),
    )
    for enclosure in child_elements(item, "enclosure", RSS_NAMESPACES):
        url = resolve_text(enclosure.get("url"))
        if url:
            media.enclosures.append((url, enclosure.get("type")))
    encoded = inner_markup(_first(item, "encoded", {CONTENT_NS}))
    media.markup = [text for text in (description, encoded) if text]

    return CandidateItem(
        title=resolve_text(_first(item, "title", RSS_NAMESPACES)),
        link=link,
        description=description,
        published=_published(item),
        guid=guid or link,
        media=media,
    )


def _atom_link(entry: etree._Element) -> Optional[str]:
    """Alternate (or rel-less) href first, then any href, then bare text."""
    links = child_elements(entry, "link", ATOM_NAMESPACES)
    with_href = [node for node in links if resolve_text(node.get("href"))]

    for node in with_href:
        if (node.get("rel") or "alternate") == "alternate":
            return resolve_text(node.get("href"))
    for node in with_href:
        if node.get("rel") != "enclosure":
            return resolve_text(node.get("href"))
    for node in links:
        text = resolve_text(node)
        if text:
            return text
    return None


def extract_atom_entry(entry: etree._Element) -> CandidateItem:
    link = _atom_link(entry)

    summary = inner_markup(_first(entry, "summary", ATOM_NAMESPACES))
    content = inner_markup(_first(entry, "content", ATOM_NAMESPACES))

    published = resolve_text(_first(entry, "published", ATOM_NAMESPACES)) or resolve_text(
        _first(entry, "updated", ATOM_NAMESPACES)
    )

    media = MediaHints(
        media_content=_media_url(entry, "content"),
        media_thumbnail=_media_url(entry, "thumbnail"),
    )
    for node in child_elements(entry, "link", ATOM_NAMESPACES):
        url = resolve_text(node.get("href"))
        if url and node.get("rel") == "enclosure":
            media.enclosures.append((url, node.get("type")))
    media.markup = [text for text in (summary, content) if text]

    return CandidateItem(
        title=resolve_text(_first(entry, "title", ATOM_NAMESPACES)),
        link=link,
        description=summary or content,
        published=published,
        guid=resolve_text(_first(entry, "id", ATOM_NAMESPACES)) or link,
        media=media,
    )


def extract_items(document: RawDocument) -> Iterator[CandidateItem]:
    """Yield candidates in document order for a detected document."""
    if document.format == FeedFormat.RSS:
        for item in rss_items(document.root):
            yield extract_rss_item(item)
    elif document.format == FeedFormat.ATOM:
        for entry in atom_entries(document.root):
            yield extract_atom_entry(entry)
    else:
        raise ValueError(f"Cannot extract items from format {document.format.value}")


def select_image_url(media: MediaHints) -> Optional[str]:
    """Pick one image URL; the first source that yields a hit wins.

    1. media:content url
    2. media:thumbnail url
    3. enclosure with an image/* type
    4. first <img src> inside the description/summary/content markup
    """
    if media.media_content:
        return media.media_content
    if media.media_thumbnail:
        return media.media_thumbnail
    for url, mime_type in media.enclosures:
        if mime_type and mime_type.strip().lower().startswith("image/"):
            return url
    for markup in media.markup:
        match = IMG_SRC_PATTERN.search(markup)
        if match:
            return match.group(1).strip()
    return None
