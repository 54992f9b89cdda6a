# Relay HTTP endpoint for SwiftPOS Print Agent
# Receives a raw command stream and spools it to the shared printer

import json
import logging
from http.server import BaseHTTPRequestHandler, HTTPServer

from .relay import SharedPrinterRelay

logger = logging.getLogger(__name__)

RELAY_PATH = '/api/printer/receipt'
HEALTH_PATH = '/api/health'


class RelayRequestHandler(BaseHTTPRequestHandler):
    """POST /api/printer/receipt with the ESC/POS bytes as the request body"""

    def _send_json(self, status: int, body: dict):
        payload = json.dumps(body).encode()
        self.send_response(status)
        self.send_header('Content-Type', 'application/json')
        self.send_header('Content-Length', str(len(payload)))
        self.end_headers()
        self.wfile.write(payload)

    def do_GET(self):
        if self.path == HEALTH_PATH:
            self._send_json(200, {'status': 'ok', 'target': self.server.relay.target})
        else:
            self._send_json(404, {'success': False, 'message': 'Not found'})

    def do_POST(self):
        if self.path.split('?', 1)[0] != self.server.relay_path:
            self._send_json(404, {'success': False, 'message': 'Not found'})
            return

        try:
            length = int(self.headers.get('Content-Length') or 0)
        except ValueError:
            length = 0
        if length <= 0:
            self._send_json(400, {'success': False, 'message': 'Empty print stream'})
            return

        stream = self.rfile.read(length)
        logger.info(f"Relay request from {self.client_address[0]}: {len(stream)} bytes")
        result = self.server.relay.write(stream)
        if result.ok:
            self._send_json(200, {
                'success': True,
                'message': 'Printed successfully to shared printer',
            })
        else:
            self._send_json(500, {
                'success': False,
                'message': 'Failed to print receipt',
                'error': result.error_kind,
                'detail': result.error.message,
            })

    def log_message(self, format, *args):
        logger.debug(f"{self.address_string()} - {format % args}")


def create_relay_server(relay: SharedPrinterRelay, host: str = '', port: int = 8081,
                        path: str = RELAY_PATH) -> HTTPServer:
    """
    Build the relay HTTP server. Requests are handled one at a time, so two
    jobs never reach the shared printer interleaved.
    """
    server = HTTPServer((host, port), RelayRequestHandler)
    server.relay = relay
    server.relay_path = path
    return server
