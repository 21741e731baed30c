"""
Feed Format Detection
=====================

Parses a fetched body into an element tree (in recovery mode, since
publishers routinely ship broken XML) and classifies it as RSS or Atom.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Iterable, List, Optional, Set, Tuple

from lxml import etree

from ..utils.exceptions import UnsupportedFormatError, ErrorCode

ATOM_NS = "http://www.w3.org/2005/Atom"
RSS1_NS = "http://purl.org/rss/1.0/"
RDF_NS = "http://www.w3.org/1999/02/22-rdf-syntax-ns#"

# Namespaces under which the core elements of each format may appear
RSS_NAMESPACES: Set[Optional[str]] = {None, RSS1_NS}
ATOM_NAMESPACES: Set[Optional[str]] = {None, ATOM_NS}


class FeedFormat(str, Enum):
    RSS = "rss"
    ATOM = "atom"
    UNKNOWN = "unknown"


@dataclass
class RawDocument:
    """Parsed feed body together with its detected format."""

    root: etree._Element
    format: FeedFormat = FeedFormat.UNKNOWN


def split_tag(tag: str) -> Tuple[Optional[str], str]:
    """Split an lxml tag into (namespace, local name)."""
    if tag.startswith("{"):
        namespace, _, local = tag[1:].partition("}")
        return namespace, local
    return None, tag


def is_element(node) -> bool:
    """Comments and processing instructions carry non-string tags."""
    return isinstance(node.tag, str)


def child_elements(
    parent: etree._Element, local_name: str, namespaces: Iterable[Optional[str]]
) -> List[etree._Element]:
    """Direct children with the given local name in one of the namespaces."""
    namespaces = set(namespaces)
    found = []
    for child in parent:
        if not is_element(child):
            continue
        namespace, local = split_tag(child.tag)
        if local == local_name and namespace in namespaces:
            found.append(child)
    return found


def parse_document(body: bytes) -> RawDocument:
    """Parse a raw body into an element tree.

    Raises:
        UnsupportedFormatError: If nothing resembling XML can be recovered
    """
    parser = etree.XMLParser(
        recover=True,
        resolve_entities=False,
        no_network=True,
        remove_blank_text=True,
    )
    try:
        root = etree.fromstring(body.strip(), parser=parser)
    except (etree.XMLSyntaxError, ValueError) as e:
        raise UnsupportedFormatError(
            f"Feed body is not parseable XML: {e}",
            error_code=ErrorCode.FEED_PARSE_ERROR,
        ) from e

    if root is None or not is_element(root):
        raise UnsupportedFormatError(
            "Feed body is not parseable XML",
            error_code=ErrorCode.FEED_PARSE_ERROR,
        )

    return RawDocument(root=root)


def rss_items(root: etree._Element) -> List[etree._Element]:
    """Items of an RSS 2.0 channel or an RSS 1.0 (RDF) document."""
    _, local = split_tag(root.tag)

    if local == "rss":
        items = []
        for channel in child_elements(root, "channel", RSS_NAMESPACES):
            items.extend(child_elements(channel, "item", RSS_NAMESPACES))
        return items

    if local == "RDF" and child_elements(root, "channel", RSS_NAMESPACES):
        # RSS 1.0 places items beside the channel
        return child_elements(root, "item", RSS_NAMESPACES)

    return []


def atom_entries(root: etree._Element) -> List[etree._Element]:
    namespace, local = split_tag(root.tag)
    if local != "feed" or namespace not in ATOM_NAMESPACES:
        return []
    return child_elements(root, "entry", ATOM_NAMESPACES)


def detect_format(document: RawDocument) -> FeedFormat:
    """Classify a parsed document and record the result on it.

    A channel container with item children is RSS; a feed container with
    entry children is Atom.

    Raises:
        UnsupportedFormatError: For anything else
    """
    if rss_items(document.root):
        document.format = FeedFormat.RSS
    elif atom_entries(document.root):
        document.format = FeedFormat.ATOM
    else:
        _, local = split_tag(document.root.tag)
        document.format = FeedFormat.UNKNOWN
        raise UnsupportedFormatError(
            f"Unsupported feed format (root element <{local}>)"
        )

    return document.format
