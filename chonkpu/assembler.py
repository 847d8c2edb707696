import re

from .cpu import ROM_SIZE
from .isa import (
    OP_ADD, OP_ADDH, OP_ADDI, OP_ADDIH, OP_BNN, OP_JMP, OP_JR, OP_LD, OP_LDX,
    OP_NOR, OP_NORH, OP_NORI, OP_NORIH, OP_ST, OP_STX, make_inst,
)

# register, register
REG_REG_MAP = {
    "LD": OP_LD, "ST": OP_ST, "ADD": OP_ADD, "NOR": OP_NOR,
    "ADDH": OP_ADDH, "NORH": OP_NORH,
}

# register, 4-bit immediate
REG_IMM_MAP = {
    "LDX": OP_LDX, "STX": OP_STX, "ADDI": OP_ADDI, "NORI": OP_NORI,
    "ADDIH": OP_ADDIH, "NORIH": OP_NORIH,
}

IMM_MIN, IMM_MAX = -8, 7


class AsmError(Exception):
    pass


def _register(operand: str) -> int:
    match = re.fullmatch(r"R([0-7])", operand)
    if not match:
        raise AsmError(f"invalid register '{operand}'")
    return int(match.group(1))


def _number(operand: str) -> int:
    try:
        return int(operand, 0)
    except ValueError:
        raise AsmError(f"'{operand}' not found") from None


def _imm(value: int) -> int:
    if not IMM_MIN <= value <= IMM_MAX:
        raise AsmError(f"immediate {value} outside {IMM_MIN}..{IMM_MAX}")
    return value & 0xF


def _target(operand: str, address: int, labels: dict) -> int:
    # relative transfers land two words after the branch plus the offset
    if operand in labels:
        return _imm(labels[operand] - (address + 2))
    return _imm(_number(operand))


def _expect(operands: list, count: int, mnemonic: str):
    if len(operands) != count:
        raise AsmError(f"{mnemonic} expects {count} operand(s), got {len(operands)}")


def _encode(mnemonic: str, operands: list, address: int, labels: dict) -> int:
    if mnemonic in REG_REG_MAP:
        _expect(operands, 2, mnemonic)
        return make_inst(REG_REG_MAP[mnemonic], _register(operands[0]), _register(operands[1]))
    if mnemonic in REG_IMM_MAP:
        _expect(operands, 2, mnemonic)
        return make_inst(REG_IMM_MAP[mnemonic], _register(operands[0]), _imm(_number(operands[1])))
    if mnemonic == "JMP":
        _expect(operands, 1, mnemonic)
        return make_inst(OP_JMP, 0, _register(operands[0]))
    if mnemonic == "BNN":
        _expect(operands, 2, mnemonic)
        return make_inst(OP_BNN, _register(operands[0]), _target(operands[1], address, labels))
    if mnemonic == "JR":
        _expect(operands, 1, mnemonic)
        return make_inst(OP_JR, 0, _target(operands[0], address, labels))
    if mnemonic == "NOP":
        _expect(operands, 0, mnemonic)
        return make_inst(OP_ADD, 0, 0)
    if mnemonic == "DW":
        _expect(operands, 1, mnemonic)
        return _number(operands[0]) & 0xFFFF
    raise AsmError(f"unknown mnemonic '{mnemonic}'")


def assemble(source_code: str) -> tuple[list[int] | None, str | None]:
    lines = source_code.strip().upper().splitlines()
    labels = {}
    instructions = []

    # 1. First pass: count addresses and collect labels
    code_address_counter = 0
    for i, line in enumerate(lines):
        line = re.split(r"[;/]", line)[0].strip()
        if not line: continue

        match = re.match(r'^([A-Z0-9_]+):\s*(.*)', line)
        if match:
            label, rest_of_line = match.groups()
            if label in labels:
                return None, f"Error on line {i + 1}: duplicate label '{label}'."
            labels[label] = code_address_counter
            line = rest_of_line.strip()

        if not line: continue

        parts = line.split(None, 1)
        mnemonic = parts[0]
        operands = [op.strip() for op in parts[1].split(",")] if len(parts) > 1 else []

        instructions.append({
            "address": code_address_counter,
            "mnemonic": mnemonic,
            "operands": operands,
            "line": i + 1
        })
        code_address_counter += 1

    if code_address_counter > ROM_SIZE:
        return None, f"Program of {code_address_counter} words does not fit the ROM ({ROM_SIZE})."

    # 2. Second pass: generate bytecode
    bytecode = [0] * code_address_counter
    for instr in instructions:
        try:
            bytecode[instr["address"]] = _encode(instr["mnemonic"], instr["operands"], instr["address"], labels)
        except AsmError as e:
            return None, f"Error on line {instr['line']}: {e}."

    return bytecode, None
