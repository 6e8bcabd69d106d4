"""
HomeIO exception hierarchy

Vendor and per-device errors are contained by the reconciliation engine;
validation and lookup errors are surfaced to the caller before any mutation.
"""


class HomeIOError(Exception):
    """Base exception for all HomeIO errors"""


class AdapterError(HomeIOError):
    """A vendor adapter call failed"""

    def __init__(self, vendor: str, message: str):
        self.vendor = vendor
        super().__init__(f"{vendor}: {message}")


class AdapterUnavailable(AdapterError):
    """Vendor unreachable, credentials missing/rejected, or call timed out"""


class AdapterDataInvalid(AdapterError):
    """Vendor returned a malformed response"""


class StoreError(HomeIOError):
    """Persistence failure"""


class ValidationError(HomeIOError):
    """Caller supplied missing or invalid fields"""


class InvalidTransition(ValidationError):
    """Command queue entry status change not allowed by the state machine"""


class NotFound(HomeIOError):
    """Referenced device, group or room does not exist"""
