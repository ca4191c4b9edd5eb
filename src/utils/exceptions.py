"""Exception hierarchy for the OCR fusion service."""


class OCRServiceError(Exception):
    """Base class for all service errors."""


class ValidationError(OCRServiceError):
    """The caller supplied a malformed extraction request."""


class ProviderUnavailable(OCRServiceError):
    """A vision provider could not produce a usable result.

    Covers missing credentials, transport failures, non-2xx responses,
    provider-side error objects and unparseable payloads.

    Args:
        provider: Name of the provider that failed.
        reason: Human-readable failure description.
    """

    def __init__(self, provider: str, reason: str) -> None:
        super().__init__(f"{provider}: {reason}")
        self.provider = provider
        self.reason = reason
