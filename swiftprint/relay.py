# Shared Printer Relay for SwiftPOS Print Agent
# Server side: spool a command stream to an OS-level shared printer
# Client side: hand a command stream to the relay endpoint over HTTP

import logging
import os
import shlex
import subprocess
import sys
import tempfile
from typing import Callable, List, Optional

import requests

from .config import DEFAULT_RELAY_TARGET
from .errors import ResourceError, TransportError
from .outcome import RELAY, TransportResult

logger = logging.getLogger(__name__)


class SharedPrinterRelay:
    """
    Copies raw ESC/POS bytes to a printer shared by the host OS.

    The stream is written to a uniquely named temporary file and handed to
    the native spooler (`copy /B` on Windows, `lp -o raw` elsewhere). The
    file is removed on every exit path.

    Success means the spool command exited 0, i.e. the OS accepted the job.
    There is no feedback from the physical printer, so a jammed or offline
    printer is not detected here.
    """

    def __init__(self, target: str = DEFAULT_RELAY_TARGET, spool_command: Optional[str] = None,
                 temp_dir: Optional[str] = None, timeout: int = 30,
                 runner: Optional[Callable] = None):
        self.target = target
        self.spool_command = spool_command
        self.temp_dir = temp_dir
        self.timeout = timeout
        self.runner = runner or subprocess.run

    def build_command(self, path: str, target: str) -> List[str]:
        """Spool command for one file; custom templates use {file} and {target}"""
        if self.spool_command:
            return [part.format(file=path, target=target) for part in shlex.split(self.spool_command)]
        if sys.platform == 'win32':
            return ['cmd', '/c', 'copy', '/B', path, target]
        return ['lp', '-d', target, '-o', 'raw', path]

    def write(self, stream: bytes, target: Optional[str] = None) -> TransportResult:
        target = target or self.target
        data = bytes(stream)
        try:
            fd, path = tempfile.mkstemp(prefix='pos_receipt_', suffix='.bin', dir=self.temp_dir)
        except OSError as e:
            logger.error(f"Could not create temporary receipt file: {e}")
            return TransportResult.failure(RELAY, ResourceError(f"Could not create temporary file: {e}"))

        try:
            result = self._write_and_spool(fd, path, data, target)
        finally:
            removed = self._remove(path)

        if not removed and result.ok:
            return TransportResult.failure(
                RELAY, ResourceError(f"Printed, but temporary file {path} could not be removed")
            )
        return result

    def _write_and_spool(self, fd: int, path: str, data: bytes, target: str) -> TransportResult:
        try:
            with os.fdopen(fd, 'wb') as f:
                f.write(data)
        except OSError as e:
            logger.error(f"Could not write temporary receipt file {path}: {e}")
            return TransportResult.failure(RELAY, ResourceError(f"Could not write temporary file: {e}"))

        command = self.build_command(path, target)
        logger.info(f"Spooling {len(data)} bytes to {target}")
        logger.debug(f"Spool command: {command}")
        try:
            completed = self.runner(
                command, capture_output=True, text=True, errors='replace', timeout=self.timeout
            )
        except subprocess.TimeoutExpired:
            logger.error(f"Spool command timed out after {self.timeout}s")
            return TransportResult.failure(
                RELAY, TransportError(f"Spool command timed out after {self.timeout}s")
            )
        except OSError as e:
            logger.error(f"Spool command could not be started: {e}")
            return TransportResult.failure(RELAY, TransportError(f"Spool command failed to start: {e}"))

        if completed.returncode != 0:
            detail = (completed.stderr or completed.stdout or '').strip()
            logger.error(f"Spool command exited with {completed.returncode}: {detail}")
            return TransportResult.failure(
                RELAY, TransportError(f"Spool command exited with {completed.returncode}: {detail}")
            )

        logger.info(f"Spooler accepted {len(data)} bytes for {target}")
        return TransportResult.success(RELAY)

    def _remove(self, path: str) -> bool:
        try:
            os.unlink(path)
        except FileNotFoundError:
            return True
        except OSError as e:
            logger.error(f"Could not remove temporary receipt file {path}: {e}")
            return False
        return True


class RelayClient:
    """Posts command streams to a relay endpoint on the backend; one attempt, no retry"""

    _ERRORS = {cls.kind: cls for cls in (TransportError, ResourceError)}

    def __init__(self, base_url: str, api_key: str = None, timeout: int = 30,
                 path: str = '/api/printer/receipt'):
        self.base_url = base_url.rstrip('/')
        self.path = path if path.startswith('/') else '/' + path
        self.timeout = timeout
        self.session = requests.Session()

        if api_key:
            self.session.headers.update({'Authorization': f'Bearer {api_key}'})

        self.session.headers.update({
            'Content-Type': 'application/octet-stream',
            'User-Agent': 'SwiftPOS-Print-Agent/1.0'
        })

    def write(self, stream: bytes) -> TransportResult:
        endpoint = f"{self.base_url}{self.path}"
        try:
            response = self.session.post(endpoint, data=bytes(stream), timeout=self.timeout)
        except requests.exceptions.Timeout:
            logger.error(f"Relay {endpoint} timed out after {self.timeout}s")
            return TransportResult.failure(RELAY, TransportError(f"Relay timed out after {self.timeout}s"))
        except requests.exceptions.RequestException as e:
            logger.error(f"Relay {endpoint} unreachable: {e}")
            return TransportResult.failure(RELAY, TransportError(f"Relay unreachable: {e}"))

        try:
            body = response.json()
        except ValueError:
            body = {}

        if response.status_code == 200 and body.get('success', True):
            logger.info(f"Relay accepted {len(stream)} bytes")
            return TransportResult.success(RELAY)

        error_cls = self._ERRORS.get(body.get('error'), TransportError)
        detail = body.get('detail') or body.get('message') or response.text
        logger.error(f"Relay returned {response.status_code}: {detail}")
        return TransportResult.failure(RELAY, error_cls(f"Relay returned {response.status_code}: {detail}"))
