# backend/errors.py


class MealbotError(Exception):
    pass


class ConfigurationError(MealbotError):
    """Integration mistake (double start, missing template). Never retried."""


class IdentityNotFound(MealbotError):
    def __init__(self, user_id):
        super().__init__(f"user {user_id} is not in the current roster")
        self.user_id = user_id


class LedgerFormatError(MealbotError, ValueError):
    pass


class TransportError(MealbotError):
    def __init__(self, kind, message="", status=None):
        super().__init__(message or kind.value)
        self.kind = kind
        self.status = status
