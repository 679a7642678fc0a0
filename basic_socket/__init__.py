from .client import exchange
from .config import ClientConfig, load_client_config
from .connection import AddressHints, Connection, ConnectionState, create_socket
from .errors import (
    AddressResolutionError,
    BasicSocketError,
    ClientMethodError,
    ConnectionFailedError,
    ContextCreationError,
    HandshakeError,
    InvalidStateError,
    SendError,
    SessionCreationError,
    SocketCreationError,
)
from .tls_context import TLSContext, create_default_context, init_tls_library
from .tls_session import TLSSession

__all__ = [
    'AddressHints',
    'AddressResolutionError',
    'BasicSocketError',
    'ClientConfig',
    'ClientMethodError',
    'Connection',
    'ConnectionFailedError',
    'ConnectionState',
    'ContextCreationError',
    'HandshakeError',
    'InvalidStateError',
    'SendError',
    'SessionCreationError',
    'SocketCreationError',
    'TLSContext',
    'TLSSession',
    'create_default_context',
    'create_socket',
    'exchange',
    'init_tls_library',
    'load_client_config',
]
