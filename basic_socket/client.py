"""One request/response exchange driven by a ClientConfig."""

import logging
import socket

from basic_socket.config import ClientConfig
from basic_socket.connection import create_socket
from basic_socket.tls_context import create_default_context

logger = logging.getLogger(__name__)


def exchange(config: ClientConfig, request: str) -> str:
    """Connect, optionally upgrade to TLS, send request and return the decoded response.

    Each step cleans up after its own failure, so only the successful path
    needs the final close.
    """
    family = socket.AF_INET6 if config.ipv6 else socket.AF_INET
    conn = create_socket(family, socket.SOCK_STREAM, socket.IPPROTO_TCP)
    conn.connect(config.host, config.port)

    if config.use_tls:
        ctx = create_default_context(
            conn, cafile=config.ca_file or None, verify=config.verify_certs
        )
        conn = ctx.wrap_socket(conn)

    try:
        return conn.send_request(request, encoding=config.encoding, errors=config.decode_errors)
    finally:
        conn.close()
