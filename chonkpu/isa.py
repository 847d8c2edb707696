# chonkpu/isa.py
from typing import NamedTuple

from .components import sign_extend, to_byte

OP_LD = 0x0
OP_ST = 0x1
OP_LDX = 0x2
OP_STX = 0x3
OP_RESERVED = 0x4
OP_JMP = 0x5
OP_BNN = 0x6
OP_JR = 0x7
OP_ADD = 0x8
OP_NOR = 0x9
OP_ADDI = 0xA
OP_NORI = 0xB
OP_ADDH = 0xC
OP_NORH = 0xD
OP_ADDIH = 0xE
OP_NORIH = 0xF

# Bits of the opcode for the ALU group (0x8-0xF)
OP_BIT_NOR = 0b0001
OP_BIT_IMM = 0b0010
OP_BIT_HALVE = 0b0100
OP_BIT_ALU = 0b1000

# Register slot used when field B holds an immediate; masks to r7
IMM_REGISTER = 15

NO_WRITE_BACK = {OP_ST, OP_STX, OP_RESERVED, OP_JMP, OP_BNN, OP_JR}

MNEMONICS = {
    OP_LD: "LD", OP_ST: "ST", OP_LDX: "LDX", OP_STX: "STX",
    OP_RESERVED: "RSV", OP_JMP: "JMP", OP_BNN: "BNN", OP_JR: "JR",
    OP_ADD: "ADD", OP_NOR: "NOR", OP_ADDI: "ADDI", OP_NORI: "NORI",
    OP_ADDH: "ADDH", OP_NORH: "NORH", OP_ADDIH: "ADDIH", OP_NORIH: "NORIH",
}


class DecodedInstruction(NamedTuple):
    r1: int
    r2: int
    imm: int
    read_r1: bool
    write: bool
    op: int


def make_inst(op: int, a: int = 0, b: int = 0) -> int:
    """Builds a 16-bit instruction word."""
    word = 0
    word |= (b & 0xF) << 0
    word |= (a & 0xF) << 4
    word |= (op & 0xFF) << 8
    return word


def fields(word: int) -> tuple[int, int, int]:
    """Splits a word into (opcode, field A, field B)."""
    return (word >> 8) & 0xFF, (word >> 4) & 0xF, word & 0xF


def decode(word: int) -> DecodedInstruction:
    op, a, b = fields(word)
    op &= 0xF
    if op & OP_BIT_IMM:
        r2 = IMM_REGISTER
        imm = to_byte(sign_extend(b, 4))
    else:
        r2 = b
        imm = 0
    return DecodedInstruction(
        r1=a,
        r2=r2,
        imm=imm,
        read_r1=(op & 7) != 7,
        write=op not in NO_WRITE_BACK,
        op=op,
    )


def disassemble(word: int) -> str:
    op, a, b = fields(word)
    op &= 0xF
    name = MNEMONICS[op]
    imm = sign_extend(b, 4)
    if op == OP_RESERVED:
        return f"{name} {word:#06x}"
    if op == OP_JMP:
        return f"{name} R{b & 7}"
    if op == OP_JR:
        return f"{name} {imm:+d}"
    if op == OP_BNN:
        return f"{name} R{a & 7}, {imm:+d}"
    if op & OP_BIT_IMM:
        return f"{name} R{a & 7}, {imm}"
    return f"{name} R{a & 7}, R{b & 7}"
