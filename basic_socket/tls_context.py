"""TLS context factory and the wrap + handshake step."""

import logging
import ssl
import threading

from basic_socket.connection import Connection, ConnectionState
from basic_socket.errors import (
    ClientMethodError,
    ContextCreationError,
    HandshakeError,
    InvalidStateError,
    SessionCreationError,
)
from basic_socket.tls_session import TLSSession

logger = logging.getLogger(__name__)

_init_lock = threading.Lock()
_default_verify_paths: ssl.DefaultVerifyPaths | None = None


def init_tls_library() -> ssl.DefaultVerifyPaths:
    """Process-wide TLS setup. Runs once; later calls return the cached result."""
    global _default_verify_paths
    with _init_lock:
        if _default_verify_paths is None:
            _default_verify_paths = ssl.get_default_verify_paths()
            logger.debug(
                "TLS library initialized: %s, cafile=%s, capath=%s",
                ssl.OPENSSL_VERSION,
                _default_verify_paths.cafile,
                _default_verify_paths.capath,
            )
        return _default_verify_paths


def _client_method():
    return getattr(ssl, "PROTOCOL_TLS_CLIENT", None)


def _new_context(method) -> ssl.SSLContext:
    return ssl.SSLContext(method)


class TLSContext:
    """Owns one ``ssl.SSLContext`` until it is released.

    The context is independent of any connection until ``wrap_socket()``
    binds it; from then on the wrapped connection releases it on close.
    """

    def __init__(self, ssl_context: ssl.SSLContext | None = None):
        self._ctx = ssl_context
        self._bound = False

    @property
    def ssl_context(self) -> ssl.SSLContext | None:
        return self._ctx

    @property
    def released(self) -> bool:
        return self._ctx is None

    def release(self) -> None:
        """Drop the context handle. Safe on an empty or already released context."""
        if self._ctx is not None:
            logger.debug("Releasing TLS context")
        self._ctx = None

    def wrap_socket(self, connection: Connection) -> Connection:
        """Run the client handshake over a connected socket.

        Returns a new TLS-wrapped Connection; the one passed in is consumed
        and must not be used again. Every failure releases this context and
        closes the connection's descriptor before raising.
        """
        if connection.state is not ConnectionState.CONNECTED:
            raise InvalidStateError(f"wrap_socket() requires a connected socket, state is {connection.state.value}")
        if self._ctx is None:
            raise InvalidStateError("TLS context has already been released")
        if self._bound:
            raise InvalidStateError("TLS context is already bound to a connection")

        try:
            session = TLSSession(self._ctx, connection.host)
        except (ssl.SSLError, ValueError) as e:
            self.release()
            connection.close()
            raise SessionCreationError(f"Could not create SSL object: {e}") from e

        session.bind(connection.raw_socket)
        try:
            session.do_handshake()
        except OSError as e:
            session.free()
            self.release()
            connection.close()
            raise HandshakeError(
                f"SSL connection failed with error code: {e.errno} ({e})", code=e.errno
            ) from e

        self._bound = True
        return connection._handoff(self, session)


def create_default_context(
    connection: Connection, *, cafile: str | None = None, verify: bool = True
) -> TLSContext:
    """Build a client TLS context with the library's default protocol and cipher policy.

    ``connection`` is only touched on failure: its descriptor is closed
    before the error is raised. ``verify=False`` skips certificate and
    hostname checks (dev use).
    """
    init_tls_library()

    method = _client_method()
    if method is None:
        connection.close()
        raise ClientMethodError("Could not create TLS client method.")

    context = TLSContext()
    try:
        ctx = _new_context(method)
        context = TLSContext(ctx)
        if not verify:
            ctx.check_hostname = False
            ctx.verify_mode = ssl.CERT_NONE
        elif cafile:
            ctx.load_verify_locations(cafile)
        else:
            ctx.load_default_certs()
    except (ssl.SSLError, OSError, ValueError) as e:
        context.release()
        connection.close()
        raise ContextCreationError(f"Could not create SSL context: {e}") from e

    return context
