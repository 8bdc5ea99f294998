"""Shared data types for DKIC verification."""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import NotRequired, TypedDict

from dkic.errors import ErrorKind


@dataclass(frozen=True)
class SignatureClaim:
    signature: str
    alg: str | None = None


@dataclass(frozen=True)
class KeyRecord:
    version: str
    key_type: str
    public_key_b64: str


@dataclass(frozen=True)
class PageContext:
    """The document being checked.

    ``rendered_html`` is the live markup the viewer sees and is only used to
    read the signature carrier; the signed bytes always come from a fresh
    fetch of ``url``.
    """

    url: str
    rendered_html: str


class OutcomeDict(TypedDict):
    success: bool
    domain: NotRequired[str]
    htmlContent: NotRequired[str]
    error: NotRequired[str]


@dataclass(frozen=True)
class VerificationOutcome:
    success: bool
    domain: str | None = None
    html_content: str | None = None
    error: str | None = None
    error_kind: ErrorKind | None = None

    def __post_init__(self) -> None:
        if self.success:
            if self.domain is None or self.html_content is None or self.error is not None:
                raise ValueError("a successful outcome needs domain and html_content and no error")
        elif self.error is None or self.domain is not None or self.html_content is not None:
            raise ValueError("a failed outcome needs an error and no domain or html_content")

    @classmethod
    def verified(cls, domain: str, html_content: str) -> "VerificationOutcome":
        return cls(success=True, domain=domain, html_content=html_content)

    @classmethod
    def failed(cls, error: str, kind: ErrorKind) -> "VerificationOutcome":
        return cls(success=False, error=error, error_kind=kind)

    def to_dict(self) -> OutcomeDict:
        """Return the wire shape handed back to the embedding caller."""
        if self.success:
            return {"success": True, "domain": self.domain, "htmlContent": self.html_content}
        return {"success": False, "error": self.error}


class Stage(Enum):
    EXTRACT_SIGNATURE = "ExtractSignature"
    FETCH_AND_CANONICALIZE = "FetchAndCanonicalize"
    RESOLVE_DOMAIN = "ResolveDomain"
    RESOLVE_KEY = "ResolveKey"
    VERIFY = "Verify"
    DONE = "Done"
    FAILED = "Failed"


class EventStatus(Enum):
    STARTED = "started"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(frozen=True)
class VerificationEvent:
    url: str
    stage: Stage
    status: EventStatus
    detail: str = ""
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))
