# Shared fixtures: a fake Bluetooth LE printer the direct transport can open

import asyncio

import pytest
from bleak.exc import BleakError

from swiftprint.config import DEFAULT_CHARACTERISTIC_UUID, DEFAULT_SERVICE_UUID
from swiftprint.connection_store import ConnectionStateStore
from swiftprint.direct_link import DirectLinkTransport


class FakeDevice:
    def __init__(self, address='AA:BB:CC:DD:EE:FF', name='RPP02N'):
        self.address = address
        self.name = name


class FakeService:
    def __init__(self, characteristics):
        self.characteristics = characteristics

    def get_characteristic(self, uuid):
        return self.characteristics.get(uuid)


class FakeServiceCollection:
    def __init__(self, services):
        self.services = services

    def get_service(self, uuid):
        return self.services.get(uuid)


class FakeBleClient:
    """Stands in for bleak.BleakClient"""

    def __init__(self, printer, device, on_disconnect):
        self.printer = printer
        self.device = device
        self.on_disconnect = on_disconnect
        self.connected = False
        self.paired = False
        self.disconnects = 0
        self.writes = []
        self.services = FakeServiceCollection({
            printer.service_uuid: FakeService({
                printer.characteristic_uuid: 'printer-characteristic',
            }),
        })

    async def connect(self):
        if self.printer.connect_error:
            raise self.printer.connect_error
        self.connected = True

    async def pair(self):
        self.paired = True

    async def disconnect(self):
        self.disconnects += 1
        self.connected = False

    async def write_gatt_char(self, characteristic, data, response=True):
        printer = self.printer
        printer.write_calls += 1
        printer.in_flight += 1
        printer.max_in_flight = max(printer.max_in_flight, printer.in_flight)
        try:
            await asyncio.sleep(printer.write_delay)
            if printer.fail_at is not None and len(self.writes) + 1 >= printer.fail_at:
                raise printer.write_error
            self.writes.append(bytes(data))
        finally:
            printer.in_flight -= 1


class FakePrinter:
    """A printer that can be discovered, opened, written to and powered off"""

    def __init__(self):
        self.device = FakeDevice()
        self.visible = True
        self.clients = []
        self.scans = 0
        self.write_calls = 0
        self.write_delay = 0
        self.fail_at = None
        self.write_error = BleakError("Not connected")
        self.in_flight = 0
        self.max_in_flight = 0
        self.connect_error = None
        self.service_uuid = DEFAULT_SERVICE_UUID
        self.characteristic_uuid = DEFAULT_CHARACTERISTIC_UUID

    async def find_device(self, service_uuid, timeout):
        self.scans += 1
        if self.visible and service_uuid == self.service_uuid:
            return self.device
        return None

    def client_factory(self, device, on_disconnect):
        client = FakeBleClient(self, device, on_disconnect)
        self.clients.append(client)
        return client

    @property
    def client(self):
        return self.clients[-1]

    @property
    def printed(self):
        return b''.join(self.client.writes)

    def power_off(self):
        """Drop the link the way the BLE stack reports it"""
        self.client.connected = False
        self.client.on_disconnect(self.client)


@pytest.fixture
def printer():
    return FakePrinter()


@pytest.fixture
def store():
    return ConnectionStateStore()


@pytest.fixture
def transport(store, printer):
    link = DirectLinkTransport(
        store,
        chunk_size=8,
        find_device=printer.find_device,
        client_factory=printer.client_factory,
    )
    yield link
    link.close()
