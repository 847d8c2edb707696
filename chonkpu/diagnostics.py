# chonkpu/diagnostics.py
import logging
from typing import Callable, NamedTuple, Optional

log = logging.getLogger(__name__)

MESSAGES = {
    "read_unmapped": "read unmapped address {address:02x}",
    "write_unmapped": "wrote unmapped address {value:02x} -> {address:02x}",
    "read_empty_port": "read empty port {port}",
    "write_port_data": "wrote to IO data register {value:02x} -> {address:02x}",
}


class Diagnostic(NamedTuple):
    kind: str
    address: int
    value: Optional[int] = None

    @property
    def message(self) -> str:
        return MESSAGES[self.kind].format(
            address=self.address, value=self.value or 0, port=self.address >> 1
        )


DiagnosticSink = Callable[[Diagnostic], None]


def log_diagnostic(event: Diagnostic):
    log.warning("%s", event.message)
