# piko_poller/services/extractor.py

from __future__ import annotations

from typing import Any, List, Optional, Sequence

from lxml import etree

from piko_poller.models.field import FieldDescriptor
from piko_poller.models.poll import RawExtraction


def _node_text(node: Any) -> Optional[str]:
    if isinstance(node, etree._Element):
        return node.text if node.text is not None else ""
    return str(node)


class Extractor:
    """Walks the field table against a parsed document."""

    def __init__(self, log):
        self.log = log

    # ----------------------------------------------------------------------

    def select1(self, document, expr: str) -> Optional[str]:
        """First node selected by ``expr`` as text, or None when nothing matches."""
        try:
            result = document.xpath(expr)
        except etree.XPathError as exc:
            self.log.debug("selector %s failed: %s", expr, exc)
            return None

        if not isinstance(result, list):
            # boolean()/number() answer even for an empty document
            self.log.debug("selector %s does not select nodes", expr)
            return None
        if not result:
            return None
        return _node_text(result[0])

    # ----------------------------------------------------------------------

    def extract(self, document, fields: Sequence[FieldDescriptor]) -> List[RawExtraction]:
        extractions: List[RawExtraction] = []

        for desc in fields:
            value = self.select1(document, desc.xpath_value)
            if value is None:
                self.log.debug("%s has no value so we ignore it", desc.id)
                extractions.append(RawExtraction(descriptor=desc, raw_value=None))
                continue

            unit = None
            if desc.xpath_unit is not None:
                unit = self.select1(document, desc.xpath_unit)
                if unit is None:
                    message = f"unit selector {desc.xpath_unit} matched nothing"
                    self.log.error("%s: %s; field skipped, check the field table", desc.id, message)
                    extractions.append(
                        RawExtraction(descriptor=desc, raw_value=value, error=message)
                    )
                    continue

            self.log.debug("found state %s - %s", desc.id, value)
            extractions.append(RawExtraction(descriptor=desc, raw_value=value, raw_unit=unit))

        return extractions
