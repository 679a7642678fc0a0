"""Error taxonomy — one exception per failure point in the connection lifecycle."""


class BasicSocketError(Exception):
    """Base class for every error raised by basic_socket."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class SocketCreationError(BasicSocketError):
    pass


class AddressResolutionError(BasicSocketError):
    """getaddrinfo failed or returned no candidates."""

    def __init__(self, message: str, status: int | None = None):
        super().__init__(message)
        self.status = status


class ConnectionFailedError(BasicSocketError):
    """Every resolved candidate refused the connection."""


class ClientMethodError(BasicSocketError):
    pass


class ContextCreationError(BasicSocketError):
    pass


class SessionCreationError(BasicSocketError):
    pass


class HandshakeError(BasicSocketError):
    """TLS handshake failed; ``code`` is the errno of the underlying error."""

    def __init__(self, message: str, code: int | None = None):
        super().__init__(message)
        self.code = code


class SendError(BasicSocketError):
    pass


class InvalidStateError(BasicSocketError):
    """Operation called on a connection in the wrong lifecycle state."""
