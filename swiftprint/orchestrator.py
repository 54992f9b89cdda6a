# Print Orchestrator for SwiftPOS Print Agent
# Picks a transport, falls back once, reports a single outcome

import logging
import threading
from typing import Any, Dict, Optional

from .config import StoreConfig
from .connection_store import ConnectionStateStore
from .errors import PrinterBusyError, ValidationError
from .outcome import PrintOutcome, TransportResult
from .receipt_encoder import build_document, encode

logger = logging.getLogger(__name__)

TEST_TRANSACTION = {
    'items': [
        {'name': 'Test Item 1', 'qty': 1, 'unitPrice': 10000, 'totalPrice': 10000},
        {'name': 'Test Item 2', 'qty': 2, 'unitPrice': 5000, 'totalPrice': 10000},
    ],
    'subtotal': 20000,
    'taxAmount': 0,
    'discountAmount': 0,
    'totalAmount': 20000,
    'paymentMethod': 'CASH',
    'paidAmount': 20000,
    'changeAmount': 0,
}


class PrintOrchestrator:
    """
    Turns a priced transaction into one delivered receipt.

    The receipt is encoded once. If a direct link is up it is tried first;
    any failure there leads to exactly one relay attempt with the same full
    stream. A relay failure is final: another attempt is left to the
    operator, since an automatic retry could print or cut twice.
    """

    def __init__(self, store: ConnectionStateStore, direct, relay,
                 store_config: Optional[StoreConfig] = None, width: int = 32,
                 encoding: str = 'cp437', write_timeout: Optional[float] = None):
        self.store = store
        self.direct = direct
        self.relay = relay
        self.store_config = store_config or StoreConfig()
        self.width = width
        self.encoding = encoding
        self.write_timeout = write_timeout
        self._job_lock = threading.Lock()

    def print_transaction(self, transaction: Dict[str, Any]) -> PrintOutcome:
        if not self._job_lock.acquire(blocking=False):
            logger.warning("Print requested while a job is still draining")
            error = PrinterBusyError("A print job is still in progress")
            return PrintOutcome(delivered=False, error_kind=error.kind, message=error.message)
        try:
            return self._print(transaction)
        finally:
            self._job_lock.release()

    def print_test_page(self) -> PrintOutcome:
        return self.print_transaction(TEST_TRANSACTION)

    def _print(self, transaction: Dict[str, Any]) -> PrintOutcome:
        try:
            document = build_document(transaction, self.store_config)
            stream = encode(document, width=self.width, encoding=self.encoding)
        except ValidationError as e:
            logger.error(f"Receipt rejected: {e}")
            return PrintOutcome(delivered=False, error_kind=e.kind, message=e.message)

        result = self._deliver(stream)
        outcome = PrintOutcome.from_result(result)
        if outcome.delivered:
            logger.info(f"Receipt delivered via {outcome.transport} ({len(document.items)} items)")
        else:
            logger.error(f"Print failed via {outcome.transport}: {outcome.error_kind} {outcome.message}")
        return outcome

    def _deliver(self, stream: bytes) -> TransportResult:
        if self.store.is_connected:
            result = self.direct.write(stream, timeout=self.write_timeout)
            if result.ok:
                return result
            logger.warning(
                f"Direct print failed ({result.error_kind} after {result.chunks_written} chunks), "
                "falling back to relay"
            )
        else:
            logger.info("No direct printer link, printing via relay")
        return self.relay.write(stream)
