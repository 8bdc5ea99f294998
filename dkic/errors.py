"""Error taxonomy for DKIC verification."""

from enum import Enum


class ErrorKind(Enum):
    MISSING_SIGNATURE_ELEMENT = "MissingSignatureElement"
    INVALID_SIGNATURE_ELEMENT_TYPE = "InvalidSignatureElementType"
    MALFORMED_SIGNATURE_PAYLOAD = "MalformedSignaturePayload"
    SOURCE_FETCH_FAILED = "SourceFetchFailed"
    CANONICALIZATION_MISMATCH = "CanonicalizationMismatch"
    INVALID_URL = "InvalidUrl"
    DNS_TRANSPORT_ERROR = "DnsTransportError"
    DNS_QUERY_FAILED = "DnsQueryFailed"
    DNS_RECORD_NOT_FOUND = "DnsRecordNotFound"
    UNSUPPORTED_VERSION = "UnsupportedVersion"
    UNSUPPORTED_KEY_TYPE = "UnsupportedKeyType"
    MISSING_PUBLIC_KEY = "MissingPublicKey"
    INVALID_BASE64 = "InvalidBase64"
    KEY_IMPORT_ERROR = "KeyImportError"
    # A computed "not authentic" verdict; never raised.
    SIGNATURE_MISMATCH = "SignatureMismatch"
    INTERNAL_ERROR = "InternalError"


class DkicError(Exception):
    """Base class for every terminal verification failure.

    Subclasses pin ``kind``; the message is the human-readable reason that
    ends up in the verification outcome.
    """

    kind: ErrorKind = ErrorKind.INTERNAL_ERROR

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class MissingSignatureElement(DkicError):
    kind = ErrorKind.MISSING_SIGNATURE_ELEMENT


class InvalidSignatureElementType(DkicError):
    kind = ErrorKind.INVALID_SIGNATURE_ELEMENT_TYPE


class MalformedSignaturePayload(DkicError):
    kind = ErrorKind.MALFORMED_SIGNATURE_PAYLOAD


class SourceFetchFailed(DkicError):
    kind = ErrorKind.SOURCE_FETCH_FAILED


class CanonicalizationMismatch(DkicError):
    kind = ErrorKind.CANONICALIZATION_MISMATCH


class InvalidUrl(DkicError):
    kind = ErrorKind.INVALID_URL


class DnsTransportError(DkicError):
    kind = ErrorKind.DNS_TRANSPORT_ERROR


class DnsQueryFailed(DkicError):
    kind = ErrorKind.DNS_QUERY_FAILED


class DnsRecordNotFound(DkicError):
    kind = ErrorKind.DNS_RECORD_NOT_FOUND


class UnsupportedVersion(DkicError):
    kind = ErrorKind.UNSUPPORTED_VERSION


class UnsupportedKeyType(DkicError):
    kind = ErrorKind.UNSUPPORTED_KEY_TYPE


class MissingPublicKey(DkicError):
    kind = ErrorKind.MISSING_PUBLIC_KEY


class InvalidBase64(DkicError):
    kind = ErrorKind.INVALID_BASE64


class KeyImportError(DkicError):
    kind = ErrorKind.KEY_IMPORT_ERROR


class SigningError(Exception):
    """Raised by the signer when a document or key cannot be used."""
