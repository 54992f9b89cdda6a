#!/usr/bin/env python3
"""
SwiftPOS Print Agent - receipt printing over Bluetooth LE with a relay fallback

    python main.py            # print agent for the POS front end (port 8080)
    python main.py relay      # relay endpoint next to the shared printer (port 8081)
"""

import argparse
import json
import logging
from http.server import BaseHTTPRequestHandler, HTTPServer
from pathlib import Path

from swiftprint.config import AgentConfig, load_config
from swiftprint.connection_store import ConnectionStateStore
from swiftprint.direct_link import DirectLinkTransport
from swiftprint.errors import LinkConnectionError
from swiftprint.logging_config import LastErrorTracker, set_error_alert_callback, setup_logging
from swiftprint.orchestrator import PrintOrchestrator
from swiftprint.relay import RelayClient, SharedPrinterRelay
from swiftprint.relay_server import create_relay_server

logger = logging.getLogger(__name__)


def _build_relay(config: AgentConfig):
    if config.relay_url:
        return RelayClient(
            config.relay_url,
            api_key=config.relay_api_key,
            timeout=config.relay_timeout,
            path=config.relay_path,
        )
    return SharedPrinterRelay(
        config.relay_target,
        spool_command=config.relay_command,
        timeout=config.relay_timeout,
    )


class PrintAgent:
    def __init__(self, config: AgentConfig, errors: LastErrorTracker = None):
        self.config = config
        self.store = ConnectionStateStore()
        self.direct = DirectLinkTransport(
            self.store,
            service_uuid=config.ble_service_uuid,
            characteristic_uuid=config.ble_characteristic_uuid,
            chunk_size=config.ble_chunk_size,
            scan_timeout=config.ble_scan_timeout,
            pair=config.ble_pair,
        )
        self.relay = _build_relay(config)
        self.orchestrator = PrintOrchestrator(
            self.store,
            self.direct,
            self.relay,
            store_config=config.store,
            width=config.paper_width,
            encoding=config.encoding,
            write_timeout=config.write_timeout,
        )
        if errors is None:
            errors = LastErrorTracker()
            set_error_alert_callback(errors)
        self.errors = errors

    def connect(self):
        try:
            handle = self.direct.connect(timeout=self.config.ble_scan_timeout + 20)
        except LinkConnectionError as e:
            logger.error(f"Bluetooth connection error: {e}")
            return {'connected': False, 'error': e.kind, 'message': e.message}
        return {'connected': True, 'device': handle.name, 'address': handle.address}

    def disconnect(self):
        self.direct.disconnect()
        return {'connected': False}

    def print_transaction(self, transaction):
        return self.orchestrator.print_transaction(transaction).to_dict()

    def print_test_page(self):
        return self.orchestrator.print_test_page().to_dict()

    def get_status(self):
        link = self.store.get_link()
        return {
            'state': self.direct.state,
            'device': link.name if link else None,
            'relay': self.config.relay_url or self.config.relay_target,
            'last_error': self.errors.message,
            'error_count': self.errors.count,
        }

    def shutdown(self):
        self.direct.close()


class AgentHandler(BaseHTTPRequestHandler):
    def _send_json(self, status, body):
        payload = json.dumps(body).encode()
        self.send_response(status)
        self.send_header('Content-Type', 'application/json')
        self.send_header('Content-Length', str(len(payload)))
        self.end_headers()
        self.wfile.write(payload)

    def _read_json(self):
        length = int(self.headers.get('Content-Length') or 0)
        if length <= 0:
            return {}
        return json.loads(self.rfile.read(length))

    def do_GET(self):
        if self.path == '/status':
            self._send_json(200, self.server.agent.get_status())
        else:
            self._send_json(404, {'error': 'not_found'})

    def do_POST(self):
        agent = self.server.agent
        if self.path == '/print':
            try:
                transaction = self._read_json()
            except ValueError as e:
                self._send_json(400, {'delivered': False, 'error': 'validation_error', 'message': str(e)})
                return
            result = agent.print_transaction(transaction)
            self._send_json(200 if result['delivered'] else 502, result)
        elif self.path == '/test':
            result = agent.print_test_page()
            self._send_json(200 if result['delivered'] else 502, result)
        elif self.path == '/connect':
            result = agent.connect()
            self._send_json(200 if result['connected'] else 502, result)
        elif self.path == '/disconnect':
            self._send_json(200, agent.disconnect())
        else:
            self._send_json(404, {'error': 'not_found'})

    def log_message(self, format, *args):
        logger.debug(f"{self.address_string()} - {format % args}")


def run_agent(config: AgentConfig, port: int, errors: LastErrorTracker = None):
    agent = PrintAgent(config, errors)
    server = HTTPServer(('', port), AgentHandler)
    server.agent = agent

    print("=" * 50)
    print("  SwiftPOS Print Agent")
    print("=" * 50)
    print(f"Agent API: http://localhost:{port}")
    print(f"Relay: {config.relay_url or config.relay_target}")
    print("=" * 50)
    print("Press Ctrl+C to stop")

    try:
        server.serve_forever()
    except KeyboardInterrupt:
        print("\nStopping...")
    finally:
        server.server_close()
        agent.shutdown()


def run_relay(config: AgentConfig, port: int):
    relay = SharedPrinterRelay(
        config.relay_target,
        spool_command=config.relay_command,
        timeout=config.relay_timeout,
    )
    server = create_relay_server(relay, port=port, path=config.relay_path)
    logger.info(f"Relay listening on port {port}, printing to {config.relay_target}")
    try:
        server.serve_forever()
    except KeyboardInterrupt:
        print("\nStopping...")
    finally:
        server.server_close()


def main():
    parser = argparse.ArgumentParser(description='SwiftPOS receipt print agent')
    parser.add_argument('mode', nargs='?', choices=['agent', 'relay'], default='agent')
    parser.add_argument('--config', type=Path, help='Path to config.json')
    parser.add_argument('--port', type=int, help='HTTP port to listen on')
    parser.add_argument('--verbose', action='store_true', help='Debug logging')
    args = parser.parse_args()

    config = load_config(args.config)
    errors = LastErrorTracker()
    setup_logging(
        log_path=Path(config.log_path) if config.log_path else None,
        level=logging.DEBUG if args.verbose else logging.INFO,
        alert_callback=errors,
    )

    if args.mode == 'relay':
        run_relay(config, args.port or config.relay_port)
    else:
        run_agent(config, args.port or config.agent_port, errors)


if __name__ == '__main__':
    main()
