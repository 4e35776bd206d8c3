"""Error taxonomy shared by the session, transfer and mutation services."""


class SftpError(Exception):
    """Base class; ``str(exc)`` is a short message for the status line."""


class TransportError(SftpError):
    """TCP connect, SSH handshake or channel failure."""


class AuthFailedError(SftpError):
    def __init__(self, message: str = "Authentication failed"):
        super().__init__(message)


class KeyNotFoundError(SftpError):
    def __init__(self, path: str):
        super().__init__(f"Key file not found: {path}")
        self.path = path


class RemotePathError(SftpError):
    """Listing, stat, mutation or transfer failure reported by the server."""


class LocalIOError(SftpError):
    """Local filesystem failure (permission denied, disk full, ...)."""


class TransferBusyError(Exception):
    """A transfer in the same direction is already running."""
