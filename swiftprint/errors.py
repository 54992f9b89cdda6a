# Error taxonomy for the SwiftPOS print pipeline
# Each error carries a stable `kind` string reported back to the caller


class PrintError(Exception):
    """Base class for print pipeline failures"""
    kind = 'print_error'

    def __init__(self, message: str = ''):
        super().__init__(message)
        self.message = message


class ValidationError(PrintError):
    """Receipt input is malformed; never reaches a transport"""
    kind = 'validation_error'


class LinkConnectionError(PrintError):
    """Direct link could not be discovered, paired or opened"""
    kind = 'connection_error'


class TransportError(PrintError):
    """Write failed on a connected link, or the relay copy failed"""
    kind = 'transport_error'

    def __init__(self, message: str = '', chunks_written: int = 0):
        super().__init__(message)
        self.chunks_written = chunks_written

    @property
    def partial(self) -> bool:
        return self.chunks_written > 0


class ResourceError(PrintError):
    """Relay temporary artifact could not be written or removed"""
    kind = 'resource_error'


class PrinterBusyError(PrintError):
    """A print job is still draining"""
    kind = 'printer_busy'
