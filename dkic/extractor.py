"""Read the claimed DKIC signature from a rendered HTML document."""

import json
from dataclasses import dataclass, field
from html.parser import HTMLParser

from dkic.config import SIGNATURE_CONTENT_TYPE, SIGNATURE_ELEMENT_ID
from dkic.errors import (
    InvalidSignatureElementType,
    MalformedSignaturePayload,
    MissingSignatureElement,
)
from dkic.types import SignatureClaim


@dataclass
class CarrierElement:
    tag: str
    attrs: dict[str, str | None]
    text_parts: list[str] = field(default_factory=list)

    @property
    def text(self) -> str:
        return "".join(self.text_parts)


class _CarrierFinder(HTMLParser):
    """Collect every element whose id matches the signature carrier id."""

    def __init__(self, element_id: str):
        super().__init__(convert_charrefs=True)
        self._element_id = element_id
        self.found: list[CarrierElement] = []
        self._open: CarrierElement | None = None
        self._depth = 0

    def handle_starttag(self, tag: str, attrs: list[tuple[str, str | None]]) -> None:
        if self._open is not None:
            if tag == self._open.tag:
                self._depth += 1
            return
        attr_map = dict(attrs)
        if attr_map.get("id") == self._element_id:
            self._open = CarrierElement(tag=tag, attrs=attr_map)
            self._depth = 1
            self.found.append(self._open)

    def handle_startendtag(self, tag: str, attrs: list[tuple[str, str | None]]) -> None:
        if self._open is not None:
            return
        attr_map = dict(attrs)
        if attr_map.get("id") == self._element_id:
            self.found.append(CarrierElement(tag=tag, attrs=attr_map))

    def handle_endtag(self, tag: str) -> None:
        if self._open is None or tag != self._open.tag:
            return
        self._depth -= 1
        if self._depth == 0:
            self._open = None

    def handle_data(self, data: str) -> None:
        if self._open is not None:
            self._open.text_parts.append(data)


def find_carrier_elements(html: str, element_id: str = SIGNATURE_ELEMENT_ID) -> list[CarrierElement]:
    """Return all elements in ``html`` carrying ``element_id``, in document order."""
    finder = _CarrierFinder(element_id)
    finder.feed(html)
    finder.close()
    return finder.found


def parse_signature_payload(text: str) -> SignatureClaim:
    """Parse the carrier's JSON body into a SignatureClaim."""
    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise MalformedSignaturePayload(f"Invalid signature JSON: {exc}") from exc

    if not isinstance(data, dict):
        raise MalformedSignaturePayload("Invalid signature JSON: expected an object")

    signature = data.get("signature")
    if not isinstance(signature, str) or not signature.strip():
        raise MalformedSignaturePayload('Signature data missing "signature" field')

    alg = data.get("alg")
    return SignatureClaim(signature=signature.strip(), alg=alg if isinstance(alg, str) else None)


def extract_signature(rendered_html: str) -> SignatureClaim:
    """Locate the single signature carrier in ``rendered_html`` and parse it.

    Raises:
        MissingSignatureElement: No element with id ``dkic-signature``.
        InvalidSignatureElementType: The carrier is not a script declared as
            ``application/json``.
        MalformedSignaturePayload: The carrier is duplicated, its body is not
            JSON, or it has no ``signature`` field.
    """
    elements = find_carrier_elements(rendered_html)
    if not elements:
        raise MissingSignatureElement(
            f"No signature data found (missing script#{SIGNATURE_ELEMENT_ID} element)"
        )
    if len(elements) > 1:
        raise MalformedSignaturePayload(
            f"Found {len(elements)} #{SIGNATURE_ELEMENT_ID} elements, expected exactly one"
        )

    carrier = elements[0]
    declared_type = (carrier.attrs.get("type") or "").strip().lower()
    if carrier.tag != "script" or declared_type != SIGNATURE_CONTENT_TYPE:
        raise InvalidSignatureElementType(
            f'Signature script element must have type="{SIGNATURE_CONTENT_TYPE}"'
        )

    return parse_signature_payload(carrier.text)
