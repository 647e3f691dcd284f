"""
Signature Injector

Places the signature fragment inside the second ext:ExtensionContent of a
UBL document. The fragment is spliced into the original text, so every
byte outside the placeholder is preserved.
"""

import logging
import re
from dataclasses import dataclass
from typing import List, Union

from lxml import etree

from .canonicalizer import parse_xml
from .exceptions import InjectionError, InsufficientExtensionsError
from .namespaces import ext

logger = logging.getLogger(__name__)

REQUIRED_PLACEHOLDERS = 2
SIGNATURE_SLOT = 1

# Markup that may contain text looking like tags
_MARKUP_RE = re.compile(
    r"<!--.*?-->"
    r"|<!\[CDATA\[.*?\]\]>"
    r"|<\?.*?\?>"
    r"|<!DOCTYPE(?:[^\[>]|\[.*?\])*>"
    r"|<(?P<close>/)?(?P<name>[^\s/>!?]+)"
    r"(?P<attrs>(?:\s+[^\s=/>]+\s*=\s*(?:\"[^\"]*\"|'[^']*'))*)\s*(?P<empty>/)?>",
    re.DOTALL,
)


@dataclass
class _Tag:
    name: str
    start: int
    end: int
    closing: bool
    empty: bool


def find_extension_contents(tree: Union[etree._ElementTree, etree._Element]) -> List[etree._Element]:
    """ext:ExtensionContent elements under ext:UBLExtensions, in document order."""
    root = tree.getroot() if isinstance(tree, etree._ElementTree) else tree
    return [
        element for element in root.iter(ext("ExtensionContent"))
        if element.getparent() is not None
        and element.getparent().getparent() is not None
        and element.getparent().getparent().tag == ext("UBLExtensions")
    ]


class Injector:
    """Injects a ds:Signature fragment into the signature placeholder."""

    def check_placeholders(self, tree: Union[etree._ElementTree, etree._Element]) -> etree._Element:
        """
        Verify the placeholder contract and return the signature slot.

        Raises:
            InsufficientExtensionsError: If fewer than two placeholders exist
        """
        placeholders = find_extension_contents(tree)
        if len(placeholders) < REQUIRED_PLACEHOLDERS:
            raise InsufficientExtensionsError(
                "El XML debe tener al menos 2 elementos ext:ExtensionContent "
                "para inyectar la firma",
                found=len(placeholders)
            )
        return placeholders[SIGNATURE_SLOT]

    def inject(self, unsigned_xml: Union[str, bytes], signature_fragment: str) -> str:
        """
        Insert the signature as the sole content of the second placeholder.

        Args:
            unsigned_xml: Document produced by the document builder
            signature_fragment: Serialized ds:Signature element

        Returns:
            Signed document text

        Raises:
            InsufficientExtensionsError: If the placeholder contract is broken
            InjectionError: If the placeholder cannot be located in the text
        """
        if isinstance(unsigned_xml, bytes):
            unsigned_xml = unsigned_xml.decode("utf-8")

        tree = parse_xml(unsigned_xml)
        slot = self.check_placeholders(tree)

        qname = etree.QName(slot)
        tag_name = f"{slot.prefix}:{qname.localname}" if slot.prefix else qname.localname

        same_name = [
            element for element in tree.getroot().iter()
            if isinstance(element.tag, str)
            and etree.QName(element).localname == qname.localname
            and element.prefix == slot.prefix
        ]
        ordinal = same_name.index(slot)

        tags = [tag for tag in self._scan_tags(unsigned_xml) if tag.name == tag_name]
        starts = [tag for tag in tags if not tag.closing]

        if len(starts) != len(same_name):
            raise InjectionError(
                "Could not map ExtensionContent placeholders onto the document text",
                details={"parsed": len(same_name), "scanned": len(starts)}
            )

        opening = starts[ordinal]

        if opening.empty:
            start_tag = unsigned_xml[opening.start:opening.end]
            expanded = re.sub(r"\s*/>$", ">", start_tag)
            signed = (
                unsigned_xml[:opening.start]
                + expanded + signature_fragment + f"</{tag_name}>"
                + unsigned_xml[opening.end:]
            )
        else:
            closing = self._matching_close(tags, opening)
            signed = (
                unsigned_xml[:opening.end]
                + signature_fragment
                + unsigned_xml[closing.start:]
            )

        logger.debug(f"Signature injected into {tag_name} #{ordinal + 1}")
        return signed

    @staticmethod
    def _scan_tags(text: str) -> List[_Tag]:
        tags = []
        for match in _MARKUP_RE.finditer(text):
            name = match.group("name")
            if name is None:
                continue
            tags.append(_Tag(
                name=name,
                start=match.start(),
                end=match.end(),
                closing=bool(match.group("close")),
                empty=bool(match.group("empty")),
            ))
        return tags

    @staticmethod
    def _matching_close(tags: List[_Tag], opening: _Tag) -> _Tag:
        depth = 0
        for tag in tags:
            if tag.start < opening.start or tag.empty:
                continue
            if not tag.closing:
                depth += 1
            else:
                depth -= 1
                if depth == 0:
                    return tag
        raise InjectionError(f"Unterminated <{opening.name}> placeholder")
