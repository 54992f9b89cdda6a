# Tests for transport selection and fallback

import threading

from swiftprint.config import StoreConfig
from swiftprint.connection_store import ConnectionStateStore, LinkHandle
from swiftprint.direct_link import DirectLinkTransport, chunk_stream
from swiftprint.errors import LinkConnectionError, TransportError
from swiftprint.orchestrator import TEST_TRANSACTION, PrintOrchestrator
from swiftprint.outcome import DIRECT, RELAY, TransportResult
from swiftprint.receipt_encoder import build_document, encode


class RecordingTransport:
    """Transport double returning a fixed result and recording streams"""

    def __init__(self, name, ok=True, error=None):
        self.name = name
        self.ok = ok
        self.error = error
        self.calls = []

    def write(self, stream, timeout=None):
        self.calls.append(stream)
        if self.ok:
            return TransportResult.success(self.name)
        return TransportResult.failure(self.name, self.error or TransportError("failed"))


def expected_stream(store_config):
    return encode(build_document(TEST_TRANSACTION, store_config))


class TestPrintOrchestrator:
    """Test the direct-first, relay-once policy"""

    def setup_method(self):
        self.store = ConnectionStateStore()
        self.store_config = StoreConfig(name='SWIFTPOS')
        self.direct = RecordingTransport(DIRECT)
        self.relay = RecordingTransport(RELAY)

    def _orchestrator(self):
        return PrintOrchestrator(self.store, self.direct, self.relay, store_config=self.store_config)

    def _connect(self):
        self.store.set_link(LinkHandle('AA:BB', 'Printer', client=None, characteristic=None))

    def test_not_connected_goes_to_relay(self):
        """Test without a link only the relay is used"""
        outcome = self._orchestrator().print_transaction(TEST_TRANSACTION)

        assert outcome.delivered
        assert outcome.transport == RELAY
        assert self.direct.calls == []
        assert self.relay.calls == [expected_stream(self.store_config)]

    def test_direct_success_skips_relay(self):
        """Test a successful direct print never touches the relay"""
        self._connect()

        outcome = self._orchestrator().print_transaction(TEST_TRANSACTION)

        assert outcome.delivered
        assert outcome.transport == DIRECT
        assert len(self.direct.calls) == 1
        assert self.relay.calls == []

    def test_direct_failure_falls_back_once(self):
        """Test a direct failure leads to exactly one relay call with the same stream"""
        self._connect()
        self.direct.ok = False

        outcome = self._orchestrator().print_transaction(TEST_TRANSACTION)

        assert outcome.delivered
        assert outcome.transport == RELAY
        assert self.relay.calls == self.direct.calls
        assert len(self.relay.calls) == 1

    def test_connection_error_falls_back(self):
        """Test a link that vanished before the write also falls back"""
        self._connect()
        self.direct.ok = False
        self.direct.error = LinkConnectionError("Printer not connected")

        outcome = self._orchestrator().print_transaction(TEST_TRANSACTION)

        assert outcome.transport == RELAY
        assert len(self.relay.calls) == 1

    def test_both_fail(self):
        """Test the relay's error is the final outcome and nothing retries"""
        self._connect()
        self.direct.ok = False
        self.relay.ok = False
        self.relay.error = TransportError("Spool command exited with 1")

        outcome = self._orchestrator().print_transaction(TEST_TRANSACTION)

        assert not outcome.delivered
        assert outcome.transport == RELAY
        assert outcome.error_kind == 'transport_error'
        assert len(self.direct.calls) == 1
        assert len(self.relay.calls) == 1
        assert outcome.to_dict() == {
            'delivered': False,
            'transport': RELAY,
            'error': 'transport_error',
            'message': 'Spool command exited with 1',
        }

    def test_relay_failure_without_link(self):
        """Test a relay failure with no link is terminal"""
        self.relay.ok = False

        outcome = self._orchestrator().print_transaction(TEST_TRANSACTION)

        assert not outcome.delivered
        assert len(self.relay.calls) == 1

    def test_validation_error_touches_no_transport(self):
        """Test malformed receipts are rejected before any transport"""
        self._connect()
        bad = dict(TEST_TRANSACTION, totalAmount=99999)

        outcome = self._orchestrator().print_transaction(bad)

        assert not outcome.delivered
        assert outcome.transport is None
        assert outcome.error_kind == 'validation_error'
        assert self.direct.calls == []
        assert self.relay.calls == []

    def test_second_print_while_draining_is_busy(self):
        """Test a print requested mid-job is refused rather than interleaved"""
        started = threading.Event()
        release = threading.Event()
        relay = self.relay

        class SlowRelay:
            def write(self, stream):
                started.set()
                release.wait(5)
                return relay.write(stream)

        orchestrator = PrintOrchestrator(self.store, self.direct, SlowRelay(), store_config=self.store_config)
        first = []
        worker = threading.Thread(target=lambda: first.append(orchestrator.print_test_page()))
        worker.start()
        started.wait(5)

        second = orchestrator.print_transaction(TEST_TRANSACTION)
        release.set()
        worker.join(5)

        assert second.error_kind == 'printer_busy'
        assert first[0].delivered
        assert len(relay.calls) == 1


class TestFallbackWithBluetooth:
    """Test the policy against the real direct transport and a fake printer"""

    def setup_method(self):
        self.store_config = StoreConfig(name='SWIFTPOS')
        self.stream = expected_stream(self.store_config)
        self.relay = RecordingTransport(RELAY)

    def _build(self, store, printer, chunk_size):
        self.direct = DirectLinkTransport(store, chunk_size=chunk_size, find_device=printer.find_device,
                                          client_factory=printer.client_factory)
        return PrintOrchestrator(store, self.direct, self.relay, store_config=self.store_config)

    def teardown_method(self):
        self.direct.close()

    def test_mid_stream_failure_relays_full_stream(self, store, printer):
        """Test failure at chunk 3 of 5 relays the complete stream, not the remainder"""
        chunk_size = -(-len(self.stream) // 5)
        assert len(chunk_stream(self.stream, chunk_size)) == 5
        orchestrator = self._build(store, printer, chunk_size)
        self.direct.connect()
        printer.fail_at = 3

        outcome = orchestrator.print_transaction(TEST_TRANSACTION)

        assert outcome.delivered
        assert outcome.transport == RELAY
        assert printer.printed == self.stream[:2 * chunk_size]
        assert self.relay.calls == [self.stream]

    def test_unexpected_backend_error_falls_back(self, store, printer):
        """Test a non-Bleak write error still leads to exactly one relay call"""
        orchestrator = self._build(store, printer, 512)
        self.direct.connect()
        printer.fail_at = 1
        printer.write_error = EOFError("dbus connection closed")

        outcome = orchestrator.print_transaction(TEST_TRANSACTION)

        assert outcome.delivered
        assert outcome.transport == RELAY
        assert self.relay.calls == [self.stream]

    def test_link_loss_routes_to_relay(self, store, printer):
        """Test after an unsolicited disconnect the next print goes straight to the relay"""
        orchestrator = self._build(store, printer, 512)
        self.direct.connect()
        printer.power_off()

        assert store.get_link() is None

        outcome = orchestrator.print_transaction(TEST_TRANSACTION)

        assert outcome.transport == RELAY
        assert printer.write_calls == 0
        assert self.relay.calls == [self.stream]

    def test_direct_print(self, store, printer):
        """Test a healthy link prints the whole receipt directly"""
        orchestrator = self._build(store, printer, 512)
        self.direct.connect()

        outcome = orchestrator.print_transaction(TEST_TRANSACTION)

        assert outcome.transport == DIRECT
        assert printer.printed == self.stream
        assert self.relay.calls == []
