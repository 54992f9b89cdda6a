# Result values passed between the transports, the orchestrator and the caller

from dataclasses import dataclass
from typing import Any, Dict, Optional

from .errors import PrintError

DIRECT = 'direct'
RELAY = 'relay'


@dataclass
class TransportResult:
    """What one transport did with one command stream"""
    ok: bool
    transport: str
    error: Optional[PrintError] = None
    chunks_written: int = 0

    @property
    def error_kind(self) -> Optional[str]:
        return self.error.kind if self.error else None

    @classmethod
    def success(cls, transport: str, chunks_written: int = 0) -> 'TransportResult':
        return cls(ok=True, transport=transport, chunks_written=chunks_written)

    @classmethod
    def failure(cls, transport: str, error: PrintError, chunks_written: int = 0) -> 'TransportResult':
        return cls(ok=False, transport=transport, error=error, chunks_written=chunks_written)


@dataclass
class PrintOutcome:
    """Final result of one print request, as reported to the caller"""
    delivered: bool
    transport: Optional[str] = None
    error_kind: Optional[str] = None
    message: str = ''

    @classmethod
    def from_result(cls, result: TransportResult) -> 'PrintOutcome':
        if result.ok:
            return cls(delivered=True, transport=result.transport)
        return cls(
            delivered=False,
            transport=result.transport,
            error_kind=result.error_kind,
            message=result.error.message if result.error else '',
        )

    def to_dict(self) -> Dict[str, Any]:
        data = {'delivered': self.delivered, 'transport': self.transport}
        if not self.delivered:
            data['error'] = self.error_kind
            data['message'] = self.message
        return data
