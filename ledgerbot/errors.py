"""
Error taxonomy shared by the registrar, the intake pipeline and the HTTP layer.

Every error carries a message that is safe to show to the person on the other
side of the chat or API call.
"""


class LedgerError(Exception):
    """Base exception for ledgerbot errors"""

    status_code = 500

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class AccessDenied(LedgerError):
    """Subscription or participation check failed"""

    status_code = 403


class NotFound(LedgerError):
    """Unknown or stale record"""

    status_code = 404


class UpstreamUnavailable(LedgerError):
    """Chat gateway or AI provider failure"""

    status_code = 502


class ValidationFailure(LedgerError):
    """Malformed input"""

    status_code = 400
