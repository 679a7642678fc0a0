"""Transport layer — socket creation, resolve + connect, send/receive, close."""

import codecs
import logging
import socket
from dataclasses import dataclass
from enum import Enum

from basic_socket.errors import (
    AddressResolutionError,
    ConnectionFailedError,
    InvalidStateError,
    SendError,
    SocketCreationError,
)

logger = logging.getLogger(__name__)

RECV_BUFFER_SIZE = 4096


@dataclass(frozen=True)
class AddressHints:
    """The family/type/proto triple used to filter getaddrinfo results."""

    family: int
    type: int
    proto: int


class ConnectionState(Enum):
    UNCONNECTED = "unconnected"
    CONNECTED = "connected"
    TLS_WRAPPED = "tls_wrapped"
    TRANSFERRED = "transferred"
    CLOSED = "closed"


class Connection:
    """A socket plus whatever TLS state has been layered on top of it.

    The connection owns its descriptor until ``close()`` runs or until
    ``TLSContext.wrap_socket()`` consumes it and hands the descriptor to a
    new TLS-wrapped connection. ``close()`` releases session, context and
    descriptor in that order and is safe to call in any state.
    """

    def __init__(
        self,
        sock: socket.socket,
        hints: AddressHints,
        *,
        host: str | None = None,
        peer_address=None,
        tls_context=None,
        tls_session=None,
    ):
        if tls_session is not None and tls_context is None:
            raise ValueError("A TLS session requires the context it was created from")
        self._sock = sock
        self._hints = hints
        self._host = host
        self._peer_address = peer_address
        self._resolved_addresses = None
        self._tls_context = tls_context
        self._tls_session = tls_session
        self._closed = False
        self._transferred = False

    def __enter__(self) -> "Connection":
        return self

    def __exit__(self, exc_type, exc_value, traceback) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"<Connection state={self.state.value} fd={self.fileno()} peer={self._peer_address}>"

    @property
    def state(self) -> ConnectionState:
        if self._transferred:
            return ConnectionState.TRANSFERRED
        if self._closed:
            return ConnectionState.CLOSED
        if self._tls_session is not None:
            return ConnectionState.TLS_WRAPPED
        if self._peer_address is not None:
            return ConnectionState.CONNECTED
        return ConnectionState.UNCONNECTED

    @property
    def hints(self) -> AddressHints:
        return self._hints

    @property
    def host(self) -> str | None:
        return self._host

    @property
    def peer_address(self):
        return self._peer_address

    @property
    def resolved_addresses(self):
        """Candidate list; only populated while ``connect()`` is running."""
        return self._resolved_addresses

    @property
    def raw_socket(self) -> socket.socket:
        return self._sock

    @property
    def tls_context(self):
        return self._tls_context

    @property
    def tls_session(self):
        return self._tls_session

    def fileno(self) -> int:
        return self._sock.fileno()

    def connect(self, host: str, port) -> None:
        """Resolve host/port against the hints and connect to the first candidate that accepts.

        Candidates are tried one at a time in resolver order. On any failure
        the descriptor is closed before the error is raised.
        """
        if self.state is not ConnectionState.UNCONNECTED:
            raise InvalidStateError(f"connect() requires an unconnected socket, state is {self.state.value}")

        try:
            self._resolved_addresses = socket.getaddrinfo(
                host, port, self._hints.family, self._hints.type, self._hints.proto
            )
        except socket.gaierror as e:
            self.close()
            raise AddressResolutionError(f"getaddrinfo error: {e.strerror}", status=e.errno) from e
        except UnicodeError as e:
            self.close()
            raise AddressResolutionError(f"getaddrinfo error: invalid host name {host!r}: {e}") from e

        try:
            if not self._resolved_addresses:
                self.close()
                raise AddressResolutionError(f"getaddrinfo error: no addresses for {host}:{port}")

            for _, _, _, _, sockaddr in self._resolved_addresses:
                try:
                    self._sock.connect(sockaddr)
                except OSError as e:
                    logger.debug("Connect to %s failed: %s", sockaddr, e)
                    continue
                self._peer_address = sockaddr
                break
        finally:
            self._resolved_addresses = None

        if self._peer_address is None:
            self.close()
            raise ConnectionFailedError(f"Connection to {host}:{port} failed.")

        self._host = host
        logger.info("Connected to %s:%s (%s)", host, port, self._peer_address[0])

    def send_request_bytes(self, payload: bytes) -> bytes:
        """Send payload, then read until the peer ends the stream. Returns the raw response."""
        self._write(payload)
        return b"".join(self._read_chunks())

    def send_request(self, request: str, encoding: str = "utf-8", errors: str = "replace") -> str:
        """Send a text request and return the response decoded with ``encoding``.

        Decoding is incremental, so a multi-byte character split across two
        reads is still decoded correctly.
        """
        decoder = codecs.getincrementaldecoder(encoding)(errors=errors)
        self._write(request.encode("utf-8"))
        parts = [decoder.decode(chunk) for chunk in self._read_chunks()]
        parts.append(decoder.decode(b"", final=True))
        return "".join(parts)

    def close(self) -> None:
        """Release session, context and descriptor, whichever are present."""
        if self._closed or self._transferred:
            return
        self._closed = True
        self._resolved_addresses = None

        if self._tls_session is not None:
            self._tls_session.shutdown()
            self._tls_session.free()
            self._tls_session = None
        if self._tls_context is not None:
            self._tls_context.release()
            self._tls_context = None

        try:
            self._sock.close()
        except OSError as e:
            logger.debug("Error closing socket: %s", e)
        logger.info("Connection to %s closed", self._host or "<unconnected>")

    def _handoff(self, tls_context, tls_session) -> "Connection":
        """Move the descriptor into a new TLS-wrapped connection and retire this one."""
        wrapped = Connection(
            self._sock,
            self._hints,
            host=self._host,
            peer_address=self._peer_address,
            tls_context=tls_context,
            tls_session=tls_session,
        )
        self._transferred = True
        return wrapped

    def _write(self, payload: bytes) -> None:
        if self.state not in (ConnectionState.CONNECTED, ConnectionState.TLS_WRAPPED):
            raise InvalidStateError(f"Cannot send on a connection in state {self.state.value}")
        try:
            if self._tls_session is not None:
                self._tls_session.write(payload)
            else:
                self._sock.sendall(payload)
        except OSError as e:
            self.close()
            raise SendError(f"Failed to send request: {e}") from e

    def _read_chunks(self):
        while True:
            try:
                if self._tls_session is not None:
                    chunk = self._tls_session.read(RECV_BUFFER_SIZE)
                else:
                    chunk = self._sock.recv(RECV_BUFFER_SIZE)
            except OSError as e:
                logger.warning("Read failed, treating as end of stream: %s", e)
                return
            if not chunk:
                return
            yield chunk


def create_socket(
    family: int = socket.AF_INET,
    type: int = socket.SOCK_STREAM,
    proto: int = socket.IPPROTO_TCP,
) -> Connection:
    """Allocate an unconnected socket and record the hints used later for resolution."""
    try:
        sock = socket.socket(family, type, proto)
    except OSError as e:
        raise SocketCreationError(f"Socket failed to initialize: {e}") from e
    return Connection(sock, AddressHints(family, type, proto))
