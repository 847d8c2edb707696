# chonkpu/cpu.py
import logging
from collections.abc import Sequence
from typing import Optional

from .components import ALU, Memory, RegisterFile, Shifter, to_byte
from .diagnostics import DiagnosticSink
from .isa import (
    OP_BIT_ALU, OP_BIT_HALVE, OP_BIT_IMM, OP_BIT_NOR,
    OP_BNN, OP_JMP, OP_JR, OP_LD, OP_LDX, OP_RESERVED, OP_ST, OP_STX,
    DecodedInstruction, decode, disassemble,
)

log = logging.getLogger(__name__)

ROM_SIZE = 256
HISTORY_LENGTH = 50


class ReservedOpcodeError(NotImplementedError):
    """Raised when the reserved opcode 0x4 reaches the execute stage."""


class Chonkpu:
    """
    Three-stage pipelined core.

    Each call to step() is one clock: execute the decode latch, decode the
    fetch latch, fetch rom[pc], then update pc. Control transfers resolve
    in execute, so the two instructions behind a jump always run.
    """

    def __init__(self, rom: Sequence[int], on_diagnostic: Optional[DiagnosticSink] = None):
        if len(rom) != ROM_SIZE:
            raise ValueError(f"rom must hold {ROM_SIZE} words, got {len(rom)}")
        self.rom = rom
        self.registers = RegisterFile()
        self.memory = Memory(on_diagnostic=on_diagnostic)
        self.alu = ALU()
        self.shifter = Shifter()
        self.reset()

    def reset(self):
        self.registers.clear()
        self.memory.clear()
        self.pc = 0
        self.fetch_stage: Optional[int] = None
        self.decode_stage: Optional[DecodedInstruction] = None
        # address of the instruction sitting in each latch, for the history
        self.fetch_addr: Optional[int] = None
        self.decode_addr: Optional[int] = None
        self.decode_word: Optional[int] = None
        self.cycle_count = 0
        self.history = []

    def step(self):
        pc_inc = 1
        set_pc = False

        # 1. Execute
        dec = self.decode_stage
        if dec is not None:
            pc_inc, set_pc = self._execute(dec)
            self.history.insert(0, f"{self.decode_addr:02x}: {disassemble(self.decode_word)}")
            if len(self.history) > HISTORY_LENGTH:
                self.history.pop()

        # 2. Decode; with nothing fetched yet the latch keeps its value
        if self.fetch_stage is not None:
            self.decode_stage = decode(self.fetch_stage)
            self.decode_word = self.fetch_stage
            self.decode_addr = self.fetch_addr

        # 3. Fetch
        self.fetch_stage = self.rom[self.pc] & 0xFFFF
        self.fetch_addr = self.pc

        # 4. Program counter
        if set_pc:
            self.pc = pc_inc
        else:
            self.pc = to_byte(self.pc + pc_inc)

        self.cycle_count += 1
        if log.isEnabledFor(logging.DEBUG):
            log.debug("cycle %d\n%s", self.cycle_count, self.dump())

    def _execute(self, dec: DecodedInstruction) -> tuple[int, bool]:
        """Runs one decoded instruction. Returns the pc update as (value, absolute)."""
        v1 = self.registers.read(dec.r1 if dec.read_r1 else 0)
        v2 = self.registers.read(dec.r2)
        op = dec.op
        result = 0

        if op & OP_BIT_ALU:
            operand = dec.imm if op & OP_BIT_IMM else v2
            alu_out = self.alu.execute(op & OP_BIT_NOR, v1, operand)
            sh = Shifter.HALVE if op & OP_BIT_HALVE else Shifter.NO_SHIFT
            result = self.shifter.execute(sh, alu_out)
        elif op == OP_LD:
            result = self.memory.read(v2)
        elif op == OP_ST:
            self.memory.write(v2, v1)
        elif op == OP_LDX:
            result = self.memory.read(to_byte(v2 + dec.imm))
        elif op == OP_STX:
            self.memory.write(to_byte(v2 + dec.imm), v1)
        elif op == OP_RESERVED:
            log.error("reserved opcode executed at %02x", self.decode_addr)
            raise ReservedOpcodeError(f"opcode 0x4 is not implemented (at {self.decode_addr:#04x})")
        elif op == OP_JMP:
            return v2, True
        elif op == OP_BNN:
            if not v1 & 0x80:
                return dec.imm, False
        elif op == OP_JR:
            return dec.imm, False

        if dec.write:
            self.registers.write(dec.r1, result)
        return 1, False

    # Host interface
    def port_writable(self, p: int) -> bool:
        return self.memory.port_writable(p)

    def port_readable(self, p: int) -> bool:
        return self.memory.port_readable(p)

    def port_write(self, p: int, value: int):
        self.memory.port_write(p, value)

    def port_read(self, p: int) -> Optional[int]:
        return self.memory.port_read(p)

    def get_state(self) -> dict:
        return {
            "registers": self.registers.named_values(),
            "pc": self.pc,
            "pipeline": {
                "fetch": None if self.fetch_stage is None else {
                    "address": self.fetch_addr,
                    "word": f"{self.fetch_stage:04X}",
                    "text": disassemble(self.fetch_stage),
                },
                "decode": None if self.decode_stage is None else {
                    "address": self.decode_addr,
                    **self.decode_stage._asdict(),
                    "text": disassemble(self.decode_word),
                },
            },
            "ports": self.memory.get_port_view(),
            "simulation": {"cycleCount": self.cycle_count},
            "history": self.history,
            "memoryView": self.memory.get_memory_view(),
        }

    def dump(self) -> str:
        lines = [
            "regs: " + " ".join(f"{r:02x}" for r in self.registers.values()),
            f"pc: {self.pc:02x}",
            "ram content:",
            " " + " ".join(f"{v:02x}" for v in self.memory.values()),
        ]
        if self.fetch_stage is not None:
            lines.append(f"fetching: 0x{self.fetch_stage:04x}")
        if self.decode_stage is not None:
            lines.append(f"decoding: {self.decode_stage}")
        return "\n".join(lines)

    def __repr__(self):
        return f"<Chonkpu pc={self.pc:02x} cycle={self.cycle_count}>"
