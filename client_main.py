"""Basic socket client — entry point. Fetches / from the configured host."""

import logging
import sys

from basic_socket.client import exchange
from basic_socket.config import load_client_config
from basic_socket.errors import BasicSocketError

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)


def build_request(host: str) -> str:
    return (
        "GET / HTTP/1.1\r\n"
        f"Host: {host}\r\n"
        "Connection: close\r\n"
        "User-Agent: basic-socket\r\n"
        "\r\n"
    )


def main():
    config = load_client_config()
    scheme = "TLS" if config.use_tls else "plain TCP"

    try:
        print(f"[CLIENT] Connecting to {config.host}:{config.port} over {scheme}...")
        response = exchange(config, build_request(config.host))
    except (BasicSocketError, LookupError) as e:
        print(f"[CLIENT] Error: {e}", file=sys.stderr)
        sys.exit(1)

    print(response)


if __name__ == "__main__":
    main()
