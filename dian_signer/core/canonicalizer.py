"""
XML Canonicalizer

Inclusive Canonical XML 1.0 (without comments) over lxml trees.

Subtrees are canonicalized in their document context: namespace
declarations inherited from ancestors are rendered on the apex element,
which is what a verifier sees when it dereferences a same-document
reference.
"""

import logging
from typing import Optional, Union

from lxml import etree

from .exceptions import CanonicalizationError

logger = logging.getLogger(__name__)


def parse_xml(xml: Union[str, bytes]) -> etree._ElementTree:
    """Parse a document, preserving whitespace exactly as serialized."""
    if isinstance(xml, str):
        xml = xml.encode("utf-8")

    parser = etree.XMLParser(
        remove_blank_text=False,
        resolve_entities=False,
        no_network=True,
        huge_tree=False,
    )
    try:
        root = etree.fromstring(xml, parser=parser)
    except etree.XMLSyntaxError as e:
        raise CanonicalizationError(
            f"Document is not well-formed XML: {e}",
            details={"line": getattr(e, "lineno", None)}
        )
    return root.getroottree()


class Canonicalizer:
    """C14N 1.0 canonicalization of documents and subtrees."""

    algorithm = "http://www.w3.org/TR/2001/REC-xml-c14n-20010315"

    def canonicalize(self, node: etree._Element) -> bytes:
        """Canonicalize an element subtree in its document context."""
        try:
            return etree.tostring(
                node, method="c14n", exclusive=False, with_comments=False
            )
        except (TypeError, ValueError, etree.C14NError) as e:
            raise CanonicalizationError(f"Canonicalization failed: {e}")

    def canonicalize_document(
        self,
        tree: Union[etree._ElementTree, etree._Element],
        exclude: Optional[etree._Element] = None
    ) -> bytes:
        """
        Canonicalize a whole document.

        Args:
            tree: Document (or its root element)
            exclude: Element removed for the duration of the call, as the
                enveloped-signature transform requires. Its tail text stays
                in the document.

        Returns:
            Canonical bytes of the document without ``exclude``
        """
        if isinstance(tree, etree._Element):
            tree = tree.getroottree()

        if exclude is None:
            return self._tostring(tree)

        parent = exclude.getparent()
        if parent is None:
            raise CanonicalizationError("Cannot exclude the document root element")

        index = parent.index(exclude)
        tail = exclude.tail
        previous = exclude.getprevious()

        exclude.tail = None
        parent.remove(exclude)
        if tail:
            if previous is not None:
                previous.tail = (previous.tail or "") + tail
            else:
                parent.text = (parent.text or "") + tail

        try:
            return self._tostring(tree)
        finally:
            if tail:
                if previous is not None:
                    previous.tail = previous.tail[:len(previous.tail) - len(tail)] or None
                else:
                    parent.text = parent.text[:len(parent.text) - len(tail)] or None
            parent.insert(index, exclude)
            exclude.tail = tail

    def canonicalize_bytes(self, data: Union[str, bytes]) -> bytes:
        """Parse serialized XML and return its canonical form."""
        return self._tostring(parse_xml(data))

    def _tostring(self, tree: etree._ElementTree) -> bytes:
        try:
            return etree.tostring(
                tree, method="c14n", exclusive=False, with_comments=False
            )
        except (TypeError, ValueError, etree.C14NError) as e:
            logger.error(f"Document canonicalization failed: {e}")
            raise CanonicalizationError(f"Canonicalization failed: {e}")
