# Direct Link Transport for SwiftPOS Print Agent
# Bluetooth LE connection to a paired thermal printer, chunked writes

import asyncio
import concurrent.futures
import logging
import threading
from typing import Any, Callable, List, Optional

from bleak import BleakClient, BleakScanner
from bleak.exc import BleakError

from .config import DEFAULT_CHARACTERISTIC_UUID, DEFAULT_CHUNK_SIZE, DEFAULT_SERVICE_UUID
from .connection_store import ConnectionStateStore, LinkHandle
from .errors import LinkConnectionError, TransportError
from .outcome import DIRECT, TransportResult

logger = logging.getLogger(__name__)

BLE_ERRORS = (BleakError, OSError, asyncio.TimeoutError)


class LinkState:
    DISCONNECTED = 'disconnected'
    CONNECTING = 'connecting'
    CONNECTED = 'connected'


def chunk_stream(data: bytes, size: int = DEFAULT_CHUNK_SIZE) -> List[bytes]:
    """Split data into pieces of at most `size` bytes, in order"""
    if size <= 0:
        raise ValueError(f"Chunk size must be positive, got {size}")
    return [data[i:i + size] for i in range(0, len(data), size)]


async def find_printer(service_uuid: str, timeout: float):
    """Scan for the first device advertising the printer service"""
    wanted = service_uuid.lower()
    return await BleakScanner.find_device_by_filter(
        lambda device, adv: wanted in [u.lower() for u in adv.service_uuids],
        timeout=timeout,
    )


def _bleak_client(device, on_disconnect: Callable[[Any], None]):
    return BleakClient(device, disconnected_callback=on_disconnect)


class DirectLinkTransport:
    """
    Writes command streams to a printer over Bluetooth LE.

    bleak is asyncio based while the rest of the agent is thread based, so
    the transport owns a private event loop running on a daemon thread and
    every BLE coroutine is submitted to it. Link state lives in the injected
    ConnectionStateStore; a disconnect reported by the BLE stack clears it.
    """

    def __init__(self, store: ConnectionStateStore,
                 service_uuid: str = DEFAULT_SERVICE_UUID,
                 characteristic_uuid: str = DEFAULT_CHARACTERISTIC_UUID,
                 chunk_size: int = DEFAULT_CHUNK_SIZE,
                 scan_timeout: float = 10.0,
                 pair: bool = False,
                 find_device: Optional[Callable] = None,
                 client_factory: Optional[Callable] = None):
        if chunk_size <= 0:
            raise ValueError(f"Chunk size must be positive, got {chunk_size}")
        self.store = store
        self.service_uuid = service_uuid
        self.characteristic_uuid = characteristic_uuid
        self.chunk_size = chunk_size
        self.scan_timeout = scan_timeout
        self.pair = pair
        self._find_device = find_device or find_printer
        self._client_factory = client_factory or _bleak_client

        self._connecting = False
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._thread: Optional[threading.Thread] = None
        self._loop_lock = threading.Lock()

    @property
    def state(self) -> str:
        if self._connecting:
            return LinkState.CONNECTING
        if self.store.is_connected:
            return LinkState.CONNECTED
        return LinkState.DISCONNECTED

    def _ensure_loop(self) -> asyncio.AbstractEventLoop:
        with self._loop_lock:
            if self._loop is None:
                self._loop = asyncio.new_event_loop()
                self._thread = threading.Thread(
                    target=self._loop.run_forever, name='ble-link', daemon=True
                )
                self._thread.start()
            return self._loop

    def _run(self, coro, timeout: Optional[float] = None):
        """Run a coroutine on the BLE loop and wait; cancels it if the deadline passes"""
        future = asyncio.run_coroutine_threadsafe(coro, self._ensure_loop())
        try:
            return future.result(timeout)
        except concurrent.futures.TimeoutError:
            future.cancel()
            raise

    # ---- connect ----

    def connect(self, timeout: Optional[float] = None) -> LinkHandle:
        """Discover, open and store a link to the printer. Raises LinkConnectionError."""
        existing = self.store.get_link()
        if existing is not None:
            logger.info(f"Already connected to {existing}")
            return existing

        self._connecting = True
        try:
            handle = self._run(self._connect(), timeout)
        except concurrent.futures.TimeoutError:
            raise LinkConnectionError(f"Timed out connecting to printer after {timeout}s")
        finally:
            self._connecting = False

        self.store.set_link(handle)
        return handle

    async def _connect(self) -> LinkHandle:
        logger.info(f"Scanning for printer with service {self.service_uuid}")
        try:
            device = await self._find_device(self.service_uuid, self.scan_timeout)
        except Exception as e:
            raise LinkConnectionError(f"Bluetooth scan failed: {e}") from e
        if device is None:
            raise LinkConnectionError(f"No printer advertising service {self.service_uuid} found")

        created = {}

        def on_disconnect(_client):
            handle = created.get('handle')
            if handle is not None:
                handle.notify_lost()

        client = self._client_factory(device, on_disconnect)
        try:
            await client.connect()
            if self.pair:
                await client.pair()
            service = client.services.get_service(self.service_uuid)
            if service is None:
                raise LinkConnectionError(f"Printer does not expose service {self.service_uuid}")
            characteristic = service.get_characteristic(self.characteristic_uuid)
            if characteristic is None:
                raise LinkConnectionError(
                    f"Printer service has no characteristic {self.characteristic_uuid}"
                )
        except (LinkConnectionError, asyncio.CancelledError):
            await self._close_client(client)
            raise
        except Exception as e:
            await self._close_client(client)
            raise LinkConnectionError(f"Could not open printer {device.address}: {e}") from e

        handle = LinkHandle(device.address, device.name, client, characteristic)
        created['handle'] = handle
        logger.info(f"Connected to printer {handle}")
        return handle

    async def _close_client(self, client):
        try:
            await client.disconnect()
        except Exception as e:
            logger.debug(f"Ignoring error while closing BLE client: {e}")

    # ---- write ----

    def write(self, stream: bytes, timeout: Optional[float] = None) -> TransportResult:
        """
        Send a command stream in sequential chunks.

        Never retries: chunks already sent have been printed, so a failure
        part way through is reported with the number of chunks written.
        """
        handle = self.store.get_link()
        if handle is None:
            return TransportResult.failure(DIRECT, LinkConnectionError("Printer not connected"))

        chunks = chunk_stream(stream, self.chunk_size)
        progress = [0]
        try:
            self._run(self._write_chunks(handle, chunks, progress), timeout)
        except concurrent.futures.TimeoutError:
            error = TransportError(
                f"Write timed out after {progress[0]}/{len(chunks)} chunks", progress[0]
            )
            logger.error(f"Direct print to {handle}: {error}")
            return TransportResult.failure(DIRECT, error, progress[0])
        except BLE_ERRORS as e:
            error = TransportError(
                f"Write failed at chunk {progress[0] + 1}/{len(chunks)}: {e}", progress[0]
            )
            logger.error(f"Direct print to {handle}: {error}")
            return TransportResult.failure(DIRECT, error, progress[0])
        except Exception as e:
            # anything else from the BLE backend still ends this attempt
            error = TransportError(
                f"Write failed at chunk {progress[0] + 1}/{len(chunks)}: {type(e).__name__}: {e}",
                progress[0],
            )
            logger.exception(f"Direct print to {handle}: {error}")
            return TransportResult.failure(DIRECT, error, progress[0])

        logger.info(f"Sent {len(stream)} bytes in {len(chunks)} chunks to {handle}")
        return TransportResult.success(DIRECT, len(chunks))

    async def _write_chunks(self, handle: LinkHandle, chunks: List[bytes], progress: List[int]):
        for chunk in chunks:
            await handle.client.write_gatt_char(handle.characteristic, chunk, response=True)
            progress[0] += 1

    # ---- disconnect ----

    def disconnect(self):
        handle = self.store.get_link()
        self.store.clear()
        if handle is None:
            return
        self._run(self._close_client(handle.client))
        logger.info(f"Disconnected from printer {handle}")

    def close(self):
        """Disconnect and stop the BLE event loop thread"""
        if self._loop is None:
            return
        self.disconnect()
        self._loop.call_soon_threadsafe(self._loop.stop)
        self._thread.join(timeout=2)
        self._loop.close()
        self._loop = None
        self._thread = None
