"""Error kinds raised by the ceremony coordinator."""


class MFAError(Exception):
    """Base class for failures reported to the client as ``{"error": ...}``."""

    status_code = 400
    message = "Bad request"

    def __init__(self, message=None):
        if message is not None:
            self.message = message
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {"error": self.message}


class SessionExpired(MFAError):
    message = "Session expired"


class NotAuthenticated(MFAError):
    message = "Not logged in"


class UserNotFound(MFAError):
    message = "User not found"


class NoDeviceRegistered(MFAError):
    message = "No device found"


class InvalidCredentials(MFAError):
    status_code = 401
    message = "Invalid credentials"


class VerificationFailed(MFAError):
    message = "Verification failed"


class SignCountRegressed(VerificationFailed):
    """Authenticator counter did not advance; the credential may be cloned."""

    message = "Verification failed"

    def __init__(self, username, stored_count, reported_count):
        self.username = username
        self.stored_count = stored_count
        self.reported_count = reported_count
        super().__init__()


class InternalError(MFAError):
    status_code = 500
    message = "Internal server error"
