# SwiftPOS Print Agent
# ESC/POS receipt encoding and delivery over Bluetooth LE or a shared-printer relay

__version__ = '0.1.0'

from .config import AgentConfig, StoreConfig, load_config
from .connection_store import ConnectionStateStore, LinkHandle
from .direct_link import DirectLinkTransport, LinkState, chunk_stream
from .errors import (
    LinkConnectionError,
    PrintError,
    PrinterBusyError,
    ResourceError,
    TransportError,
    ValidationError,
)
from .orchestrator import PrintOrchestrator
from .outcome import DIRECT, RELAY, PrintOutcome, TransportResult
from .receipt_encoder import Commands, LineItem, ReceiptDocument, build_document, encode
from .relay import RelayClient, SharedPrinterRelay

__all__ = [
    'AgentConfig',
    'StoreConfig',
    'load_config',
    'ConnectionStateStore',
    'LinkHandle',
    'DirectLinkTransport',
    'LinkState',
    'chunk_stream',
    'PrintError',
    'ValidationError',
    'LinkConnectionError',
    'TransportError',
    'ResourceError',
    'PrinterBusyError',
    'PrintOrchestrator',
    'PrintOutcome',
    'TransportResult',
    'DIRECT',
    'RELAY',
    'Commands',
    'LineItem',
    'ReceiptDocument',
    'build_document',
    'encode',
    'RelayClient',
    'SharedPrinterRelay',
]
