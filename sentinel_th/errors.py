"""Error taxonomy shared by the builders, orchestrator and HTTP layer.

ValidationError and ParseError are caller mistakes (reported 400).
RemoteError wraps any failure from the Sentinel or Graph clients
(reported 500). Nothing in the package retries automatically.
"""

# 429 and 5xx are worth a manual retry; everything else is not
RETRYABLE_STATUS_CODES = (429, 500, 502, 503, 504)


class ValidationError(Exception):
    """A required field is missing or malformed."""


class ParseError(Exception):
    """An uploaded file does not follow the KQL-with-header convention."""


class RemoteError(Exception):
    """A Sentinel (ARM) or Microsoft Graph call failed.

    Carries the message the remote service returned so the HTTP layer can
    surface it verbatim.
    """

    def __init__(self, message: str, *, status_code: int = 0, code: str = "remote_error"):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.code = code

    @property
    def retry_possible(self) -> bool:
        return self.status_code in RETRYABLE_STATUS_CODES

    def to_dict(self) -> dict:
        return {
            "code": self.code,
            "message": self.message,
            "status_code": self.status_code,
            "retry_possible": self.retry_possible,
        }
