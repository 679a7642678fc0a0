"""Shared fixtures — in-process plain/TLS servers and a throwaway certificate."""

import datetime
import ipaddress
import os
import socket
import ssl
import struct
import threading
import time

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.x509.oid import NameOID

HTTP_RESPONSE = (
    b"HTTP/1.1 200 OK\r\n"
    b"Content-Type: text/plain; charset=utf-8\r\n"
    b"Connection: close\r\n"
    b"\r\n"
    b"hello from the test server \xe2\x9c\x93\n"
)


class CannedServer:
    """Accepts connections one at a time, reads a request up to the blank line, sends a fixed response.

    With ``ssl_context`` set the accepted socket is wrapped server-side first.
    With ``reject`` set the server writes a plaintext error and hangs up
    without reading anything, which a TLS client sees as a broken handshake.
    ``hangup`` picks how the server ends the connection after responding:
    "close" (plain close, no close_notify), "close_notify" (TLS unwrap) or
    "reset" (RST via SO_LINGER 0).
    """

    def __init__(
        self,
        response: bytes = HTTP_RESPONSE,
        ssl_context=None,
        reject: bool = False,
        hangup: str = "close",
    ):
        self._response = response
        self._ssl_context = ssl_context
        self._reject = reject
        self._hangup = hangup
        self._stop = threading.Event()
        self.requests = []

        self._sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        self._sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        self._sock.settimeout(0.2)
        self._sock.bind(("127.0.0.1", 0))
        self._sock.listen(5)
        self.host, self.port = self._sock.getsockname()
        self._thread = threading.Thread(target=self._accept_loop, daemon=True)

    def start(self) -> "CannedServer":
        self._thread.start()
        return self

    def stop(self):
        self._stop.set()
        self._thread.join(timeout=5)
        self._sock.close()

    def _accept_loop(self):
        while not self._stop.is_set():
            try:
                conn, _ = self._sock.accept()
            except socket.timeout:
                continue
            except OSError:
                break
            self._handle(conn)

    def _handle(self, conn):
        conn.settimeout(5.0)
        try:
            if self._reject:
                conn.sendall(b"HTTP/1.1 400 Bad Request\r\n\r\n")
                return
            if self._ssl_context is not None:
                conn = self._ssl_context.wrap_socket(conn, server_side=True)
            buf = b""
            while b"\r\n\r\n" not in buf:
                chunk = conn.recv(4096)
                if not chunk:
                    break
                buf += chunk
            if b"\r\n\r\n" in buf:
                self.requests.append(buf)
                conn.sendall(self._response)
                if self._hangup == "close_notify":
                    conn = conn.unwrap()
                elif self._hangup == "reset":
                    conn.setsockopt(socket.SOL_SOCKET, socket.SO_LINGER, struct.pack("ii", 1, 0))
        except OSError:
            pass
        finally:
            conn.close()


@pytest.fixture(scope="session")
def cert_dir(tmp_path_factory):
    """Self-signed certificate for 127.0.0.1/localhost, doubling as its own CA."""
    tmpdir = tmp_path_factory.mktemp("certs")
    key = ec.generate_private_key(ec.SECP256R1())
    name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, "localhost")])
    now = datetime.datetime.now(datetime.timezone.utc)
    cert = (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - datetime.timedelta(days=1))
        .not_valid_after(now + datetime.timedelta(days=1))
        .add_extension(
            x509.SubjectAlternativeName([
                x509.DNSName("localhost"),
                x509.IPAddress(ipaddress.ip_address("127.0.0.1")),
            ]),
            critical=False,
        )
        .add_extension(x509.BasicConstraints(ca=True, path_length=None), critical=True)
        .add_extension(
            x509.KeyUsage(
                digital_signature=True, content_commitment=False, key_encipherment=False,
                data_encipherment=False, key_agreement=False, key_cert_sign=True,
                crl_sign=False, encipher_only=False, decipher_only=False,
            ),
            critical=True,
        )
        .add_extension(x509.SubjectKeyIdentifier.from_public_key(key.public_key()), critical=False)
        .add_extension(
            x509.AuthorityKeyIdentifier.from_issuer_public_key(key.public_key()), critical=False
        )
        .sign(key, hashes.SHA256())
    )
    (tmpdir / "server.crt").write_bytes(cert.public_bytes(serialization.Encoding.PEM))
    (tmpdir / "server.key").write_bytes(
        key.private_bytes(
            serialization.Encoding.PEM,
            serialization.PrivateFormat.PKCS8,
            serialization.NoEncryption(),
        )
    )
    return tmpdir


@pytest.fixture
def ca_file(cert_dir):
    return str(cert_dir / "server.crt")


@pytest.fixture
def server_ssl_context(cert_dir):
    ctx = ssl.SSLContext(ssl.PROTOCOL_TLS_SERVER)
    ctx.load_cert_chain(certfile=str(cert_dir / "server.crt"), keyfile=str(cert_dir / "server.key"))
    ctx.minimum_version = ssl.TLSVersion.TLSv1_2
    return ctx


@pytest.fixture
def plain_server():
    server = CannedServer().start()
    yield server
    server.stop()


@pytest.fixture
def tls_server(server_ssl_context):
    server = CannedServer(ssl_context=server_ssl_context).start()
    yield server
    server.stop()


@pytest.fixture
def rejecting_server():
    server = CannedServer(reject=True).start()
    yield server
    server.stop()


@pytest.fixture
def make_server():
    """Factory for CannedServer instances that are stopped at teardown."""
    servers = []

    def factory(**kwargs) -> CannedServer:
        server = CannedServer(**kwargs).start()
        servers.append(server)
        return server

    yield factory
    for server in servers:
        server.stop()


@pytest.fixture
def closed_port():
    """A localhost port with nothing listening on it."""
    scratch = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    scratch.bind(("127.0.0.1", 0))
    port = scratch.getsockname()[1]
    scratch.close()
    return port


def _open_fd_count() -> int:
    return len(os.listdir("/proc/self/fd"))


@pytest.fixture
def fd_tracker():
    """Returns a callable that waits (briefly) for the open-descriptor count to reach a target."""
    if not os.path.isdir("/proc/self/fd"):
        pytest.skip("descriptor tracking needs /proc/self/fd")

    def settles_to(expected: int, timeout: float = 2.0) -> bool:
        deadline = time.monotonic() + timeout
        while time.monotonic() < deadline:
            if _open_fd_count() == expected:
                return True
            time.sleep(0.02)
        return _open_fd_count() == expected

    settles_to.count = _open_fd_count
    return settles_to
