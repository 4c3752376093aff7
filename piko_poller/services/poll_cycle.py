# piko_poller/services/poll_cycle.py

from __future__ import annotations

from datetime import datetime, timezone
from typing import Callable, Sequence

from lxml import etree

from piko_poller.errors import ParseError, PollError, UnexpectedStatus
from piko_poller.models.field import FieldDescriptor
from piko_poller.models.poll import PollOutcome, TypedValue
from piko_poller.services.extractor import Extractor
from piko_poller.services.state_publisher import StatePublisher
from piko_poller.services.value_converter import convert_field

ENDPOINT = "/all.xml"


def parse_document(body: bytes):
    """Parse markup leniently; partially broken documents still yield a tree."""
    parser = etree.XMLParser(recover=True, resolve_entities=False, no_network=True)
    try:
        root = etree.fromstring(body, parser)
    except (etree.XMLSyntaxError, ValueError) as exc:
        raise ParseError(f"document could not be parsed: {exc}") from exc
    if root is None:
        raise ParseError("document is empty or not XML")
    return root


class PollCycle:
    """One fetch, extract, convert and publish pass."""

    def __init__(
        self,
        transport,
        fields: Sequence[FieldDescriptor],
        publisher: StatePublisher,
        log,
        *,
        extractor: Extractor | None = None,
        endpoint: str = ENDPOINT,
        clock: Callable[[], datetime] | None = None,
    ):
        self.transport = transport
        self.fields = tuple(fields)
        self.publisher = publisher
        self.log = log
        self.extractor = extractor or Extractor(log)
        self.endpoint = endpoint
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    # ------------------------------------------------------------------
    def _fetch_document(self):
        self.log.debug("refreshing states")
        result = self.transport.fetch(self.endpoint)
        if result.status_code != 200:
            raise UnexpectedStatus(result.status_code, result.text[:200])
        return parse_document(result.body)

    # ------------------------------------------------------------------
    def run(self) -> PollOutcome:
        now = self._clock()
        try:
            document = self._fetch_document()
        except UnexpectedStatus as exc:
            self.log.error("unexpected status code: %s", exc.status_code)
            self.publisher.set_connection(False)
            return PollOutcome.failure(exc, timestamp=now)
        except PollError as exc:
            self.log.error("%s: %s", exc.reason, exc)
            self.publisher.set_connection(False)
            return PollOutcome.failure(exc, timestamp=now)

        self.publisher.set_connection(True)
        outcome = PollOutcome(success=True, status_code=200, timestamp=now)

        for item in self.extractor.extract(document, self.fields):
            desc = item.descriptor
            if item.error:
                outcome.field_errors[desc.id] = item.error
                continue
            if item.raw_value is None:
                continue

            conversion = convert_field(desc.id, item.raw_value, desc.type, self.log)
            if not conversion.ok:
                outcome.field_errors[desc.id] = conversion.error
                continue

            typed = TypedValue(value=conversion.value, unit=item.raw_unit)
            if self.publisher.publish(desc, typed):
                outcome.published[desc.id] = typed.value
            else:
                outcome.field_errors[desc.id] = "publish failed"

        self.log.debug(
            "poll complete: %d published, %d field errors",
            len(outcome.published),
            len(outcome.field_errors),
        )
        return outcome
