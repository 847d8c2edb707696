# chonkpu/components.py
import ctypes
from typing import Optional

from .diagnostics import Diagnostic, DiagnosticSink, log_diagnostic

MEMORY_BASE = 0xF0
MEMORY_SIZE = 16
PORT_COUNT = 2
IO_WINDOW = 2 * PORT_COUNT


def to_byte(value: int) -> int:
    return ctypes.c_uint8(value).value


def sign_extend(value: int, bits: int) -> int:
    """Reads the low `bits` of value as two's complement."""
    sign = 1 << (bits - 1)
    value &= (1 << bits) - 1
    return (value ^ sign) - sign


class Register:
    def __init__(self, name: str, initial_value: int = 0):
        self.name = name
        self.value = ctypes.c_uint8(initial_value)

    def write(self, data: int):
        self.value.value = data

    def read(self) -> int:
        return self.value.value


class RegisterFile:
    # r0 is not a cell: it reads as zero and swallows writes
    def __init__(self, count: int = 7):
        self.registers = [Register(f"R{i}") for i in range(1, count + 1)]

    def read(self, index: int) -> int:
        index &= 7
        if index == 0:
            return 0
        return self.registers[index - 1].read()

    def write(self, index: int, data: int):
        index &= 7
        if index != 0:
            self.registers[index - 1].write(data)

    def values(self) -> list[int]:
        return [r.read() for r in self.registers]

    def named_values(self) -> dict[str, int]:
        return {r.name: r.read() for r in self.registers}

    def clear(self):
        for r in self.registers:
            r.write(0)


class ALU:
    ADD = 0b0
    NOR = 0b1

    def execute(self, op: int, input_a: int, input_b: int) -> int:
        if op == self.NOR:
            result = ~(input_a | input_b)
        else:
            result = input_a + input_b
        return to_byte(result)


class Shifter:
    NO_SHIFT = 0b0
    HALVE = 0b1

    def execute(self, op: int, data: int) -> int:
        if op == self.HALVE:
            # arithmetic: the byte is read as signed so bit 7 is kept
            return to_byte(ctypes.c_int8(data).value >> 1)
        return to_byte(data)


class Port:
    """Single-slot duplex channel. Both slots are overwrite-on-write, consume-on-read."""

    def __init__(self):
        self.out_data: Optional[int] = None
        self.in_data: Optional[int] = None

    def take_in(self) -> Optional[int]:
        data, self.in_data = self.in_data, None
        return data

    def take_out(self) -> Optional[int]:
        data, self.out_data = self.out_data, None
        return data

    def status(self) -> int:
        return ((self.in_data is not None) << 1) | (self.out_data is None)


class Memory:
    """
    8-bit address space of the core.

    0x00-0x03 are the port registers (data at 2p, status at 2p+1),
    0xF0-0xFF is the data memory, everything between is unmapped.
    """

    def __init__(self, size: int = MEMORY_SIZE, on_diagnostic: Optional[DiagnosticSink] = None):
        self.size = size
        self.data = [ctypes.c_uint8(0) for _ in range(size)]
        self.ports = [Port() for _ in range(PORT_COUNT)]
        self.on_diagnostic = on_diagnostic or log_diagnostic

    def clear(self):
        for i in range(self.size):
            self.data[i].value = 0
        self.ports = [Port() for _ in range(PORT_COUNT)]

    def _report(self, kind: str, address: int, value: Optional[int] = None):
        self.on_diagnostic(Diagnostic(kind, address, value))

    def read(self, address: int) -> int:
        address = to_byte(address)
        if address < IO_WINDOW:
            port = self.ports[address >> 1]
            if address & 1:
                return port.status()
            data = port.take_in()
            if data is None:
                self._report("read_empty_port", address)
                return 0
            return data
        if address >= MEMORY_BASE:
            return self.data[address - MEMORY_BASE].value
        self._report("read_unmapped", address)
        return 0

    def write(self, address: int, value: int):
        address = to_byte(address)
        value = to_byte(value)
        if address < IO_WINDOW:
            if address & 1:
                self.ports[address >> 1].out_data = value
            else:
                self._report("write_port_data", address, value)
        elif address >= MEMORY_BASE:
            self.data[address - MEMORY_BASE].value = value
        else:
            self._report("write_unmapped", address, value)

    # Host side of the ports
    def _port(self, p: int) -> Port:
        if not 0 <= p < len(self.ports):
            raise IndexError(f"no such port: {p}")
        return self.ports[p]

    def port_writable(self, p: int) -> bool:
        return self._port(p).in_data is None

    def port_readable(self, p: int) -> bool:
        return self._port(p).out_data is not None

    def port_write(self, p: int, value: int):
        self._port(p).in_data = to_byte(value)

    def port_read(self, p: int) -> Optional[int]:
        return self._port(p).take_out()

    def values(self) -> list[int]:
        return [cell.value for cell in self.data]

    def get_memory_view(self) -> list[dict]:
        view = []
        for i, cell in enumerate(self.data):
            val = cell.value
            view.append({
                "address": MEMORY_BASE + i,
                "hex": f"{val:02X}",
                "decimal": val,
                "binary": f"{val:08b}"
            })
        return view

    def get_port_view(self) -> list[dict]:
        return [
            {"port": p, "in": port.in_data, "out": port.out_data, "status": port.status()}
            for p, port in enumerate(self.ports)
        ]
