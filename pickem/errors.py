"""
Error taxonomy for the pick'em engine.

Every error carries the HTTP status it maps to and renders the same JSON
envelope the API uses for successful responses.
"""


class PickemError(Exception):
    """Base class for all errors raised by the pick'em core"""

    status_code = 500

    def __init__(self, message, field=None):
        super().__init__(message)
        self.message = message
        self.field = field

    def to_dict(self):
        data = {"success": False, "error": self.message}
        if self.field:
            data["field"] = self.field
        return data


class ValidationError(PickemError):
    """Malformed payload; the whole write is rejected"""

    status_code = 400


class ConflictError(PickemError):
    """Write rejected because the week is locked or a scarce value is claimed"""

    status_code = 409

    LOCKED = "locked"
    CLAIMED = "claimed"

    def __init__(self, message, reason=CLAIMED, field=None):
        super().__init__(message, field=field)
        self.reason = reason

    def to_dict(self):
        data = super().to_dict()
        data["reason"] = self.reason
        return data


class UpstreamDataError(PickemError):
    """Schedule/result feed data missing, malformed, or timed out"""

    status_code = 502

    def __init__(self, message, game_id=None):
        super().__init__(message)
        self.game_id = game_id


class TransientStoreError(PickemError):
    """Write contention or timeout on a constrained write; safe to retry once"""

    status_code = 503
