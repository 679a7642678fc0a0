"""Configuration module — frozen dataclass loaded from environment variables."""
import os
from dataclasses import dataclass

def _parse_bool(value: str) -> bool:
    return value.strip().lower() in ("true", "1", "yes")

@dataclass(frozen=True)
class ClientConfig:
    host: str = "example.org"
    port: str = "443"
    use_tls: bool = True
    verify_certs: bool = True
    ca_file: str = ""
    ipv6: bool = False
    encoding: str = "utf-8"
    decode_errors: str = "replace"

def load_client_config() -> ClientConfig:
    return ClientConfig(
        host=os.environ.get("SERVER_HOST", ClientConfig.host),
        port=os.environ.get("SERVER_PORT", ClientConfig.port),
        use_tls=_parse_bool(os.environ.get("USE_TLS", "true")),
        verify_certs=_parse_bool(os.environ.get("VERIFY_CERTS", "true")),
        ca_file=os.environ.get("CA_FILE", ClientConfig.ca_file),
        ipv6=_parse_bool(os.environ.get("USE_IPV6", "false")),
        encoding=os.environ.get("RESPONSE_ENCODING", ClientConfig.encoding),
        decode_errors=os.environ.get("DECODE_ERRORS", ClientConfig.decode_errors),
    )
