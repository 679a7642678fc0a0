"""TLS session bound to a connected socket.

The session is an ``ssl.SSLObject`` driven through a pair of memory BIOs:
TLS records produced by OpenSSL are flushed to the socket, bytes read from
the socket are fed back in. The raw socket stays owned by the Connection,
so freeing the session never closes the descriptor.
"""

import logging
import socket
import ssl

logger = logging.getLogger(__name__)

RECORD_READ_SIZE = 16384


class TLSSession:
    """One client-side TLS session, created from an ``ssl.SSLContext``."""

    def __init__(self, ssl_context: ssl.SSLContext, server_hostname: str | None):
        self._incoming = ssl.MemoryBIO()
        self._outgoing = ssl.MemoryBIO()
        self._sslobj = ssl_context.wrap_bio(
            self._incoming, self._outgoing, server_side=False, server_hostname=server_hostname
        )
        self._sock: socket.socket | None = None

    def bind(self, sock: socket.socket) -> None:
        """Attach the socket the session reads from and writes to."""
        self._sock = sock

    def do_handshake(self) -> None:
        self._pump(self._sslobj.do_handshake)
        logger.info(
            "TLS established — %s, %s", self._sslobj.version(), self._sslobj.cipher()[0]
        )

    def version(self) -> str | None:
        return self._sslobj.version() if self._sslobj is not None else None

    def write(self, data: bytes) -> None:
        """Encrypt and send all of data; raises OSError/SSLError on failure."""
        view = memoryview(data)
        while view:
            sent = self._pump(self._sslobj.write, view)
            view = view[sent:]

    def read(self, size: int) -> bytes:
        """Return up to size plaintext bytes, or b"" once the peer has ended the stream."""
        try:
            return self._pump(self._sslobj.read, size)
        except ssl.SSLZeroReturnError:
            return b""
        except ssl.SSLEOFError:
            # Peer closed TCP without close_notify.
            return b""

    def shutdown(self) -> None:
        """Send close_notify once, without waiting for the peer's reply."""
        if self._sslobj is None or self._sock is None:
            return
        try:
            self._sslobj.unwrap()
        except ssl.SSLWantReadError:
            pass
        except ssl.SSLError as e:
            logger.debug("TLS shutdown failed: %s", e)
        try:
            self._flush()
        except OSError as e:
            logger.debug("Could not deliver close_notify: %s", e)

    def free(self) -> None:
        self._sslobj = None
        self._sock = None

    def _pump(self, operation, *args):
        while True:
            try:
                result = operation(*args)
            except ssl.SSLWantReadError:
                self._flush()
                self._fill()
                continue
            self._flush()
            return result

    def _flush(self) -> None:
        data = self._outgoing.read()
        if data:
            self._sock.sendall(data)

    def _fill(self) -> None:
        if self._incoming.eof:
            raise ssl.SSLEOFError(ssl.SSL_ERROR_EOF, "EOF occurred in violation of protocol")
        data = self._sock.recv(RECORD_READ_SIZE)
        if data:
            self._incoming.write(data)
        else:
            self._incoming.write_eof()
