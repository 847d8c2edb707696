import pytest

from chonkpu.cpu import Chonkpu, ReservedOpcodeError, ROM_SIZE
from chonkpu.isa import (
    OP_ADD, OP_ADDH, OP_ADDI, OP_BNN, OP_JMP, OP_JR, OP_LD, OP_LDX, OP_NORIH,
    OP_RESERVED, OP_ST, OP_STX, make_inst,
)


def steps(cpu, n):
    for _ in range(n):
        cpu.step()


def test_rom_must_hold_256_words():
    with pytest.raises(ValueError):
        Chonkpu([0] * 10)


def test_pipeline_warm_up(make_cpu):
    cpu = make_cpu(make_inst(OP_ADDI, 1, 5))
    assert cpu.fetch_stage is None
    assert cpu.decode_stage is None

    cpu.step()
    assert cpu.fetch_stage == make_inst(OP_ADDI, 1, 5)
    assert cpu.decode_stage is None
    assert cpu.pc == 1

    cpu.step()
    assert cpu.decode_stage.op == OP_ADDI
    assert cpu.registers.read(1) == 0

    cpu.step()
    assert cpu.registers.read(1) == 5
    assert cpu.cycle_count == 3


def test_add_add_store_after_five_steps(make_cpu):
    cpu = make_cpu(
        make_inst(OP_ADDI, 1, 5),
        make_inst(OP_ADDI, 1, 5),
        make_inst(OP_ST, 1, 7),
    )
    cpu.registers.write(7, 0xF0)
    steps(cpu, 4)
    assert cpu.registers.read(1) == 10
    assert cpu.memory.values()[0] == 0
    cpu.step()
    assert cpu.memory.values()[0] == 10


def test_result_is_visible_to_next_instruction(make_cpu):
    cpu = make_cpu(
        make_inst(OP_ADDI, 1, 3),
        make_inst(OP_ADD, 2, 1),
    )
    steps(cpu, 4)
    assert cpu.registers.read(2) == 3


def test_add_then_halve(make_cpu):
    cpu = make_cpu(make_inst(OP_ADDH, 1, 2))
    cpu.registers.write(1, 0x7F)
    cpu.registers.write(2, 0x01)
    steps(cpu, 3)
    assert cpu.registers.read(1) == 0xC0


def test_nor_immediate_halve_ignores_first_register(make_cpu):
    cpu = make_cpu(make_inst(OP_NORIH, 1, 0))
    cpu.registers.write(1, 0x0F)
    steps(cpu, 3)
    # v1 is gated to zero: ~(0 | 0) >> 1
    assert cpu.registers.read(1) == 0xFF


def test_add_immediate_wraps(make_cpu):
    cpu = make_cpu(make_inst(OP_ADDI, 1, 0xF))
    steps(cpu, 3)
    assert cpu.registers.read(1) == 0xFF


def test_zero_register_is_not_written(make_cpu):
    cpu = make_cpu(make_inst(OP_ADDI, 0, 5))
    steps(cpu, 3)
    assert cpu.registers.read(0) == 0
    assert cpu.registers.values() == [0] * 7


def test_branch_delay_slots_execute(make_cpu):
    cpu = make_cpu(
        make_inst(OP_JR, 0, 2),     # 0: to 0 + 2 + 2 = 4
        make_inst(OP_ADDI, 1, 1),   # 1: delay slot
        make_inst(OP_ADDI, 2, 1),   # 2: delay slot
        make_inst(OP_ADDI, 3, 1),   # 3: skipped
        make_inst(OP_ADDI, 4, 1),   # 4: target
    )
    steps(cpu, 3)
    assert cpu.pc == 4
    assert cpu.registers.values()[:4] == [0, 0, 0, 0]

    cpu.step()
    assert cpu.registers.values()[:4] == [1, 0, 0, 0]
    cpu.step()
    assert cpu.registers.values()[:4] == [1, 1, 0, 0]
    cpu.step()
    assert cpu.registers.values()[:4] == [1, 1, 0, 1]
    steps(cpu, 5)
    assert cpu.registers.read(3) == 0


def test_jump_absolute(make_cpu):
    cpu = make_cpu(make_inst(OP_JMP, 0, 5))
    cpu.registers.write(5, 0x10)
    steps(cpu, 3)
    assert cpu.pc == 0x10
    cpu.step()
    assert cpu.fetch_addr == 0x10
    assert cpu.pc == 0x11


def test_branch_taken_when_nonnegative(make_cpu):
    cpu = make_cpu(make_inst(OP_BNN, 1, 3))
    cpu.registers.write(1, 0x7F)
    steps(cpu, 3)
    assert cpu.pc == 5


def test_branch_not_taken_when_negative(make_cpu):
    cpu = make_cpu(make_inst(OP_BNN, 1, 3))
    cpu.registers.write(1, 0x80)
    steps(cpu, 3)
    assert cpu.pc == 3


def test_backward_branch(make_cpu):
    cpu = make_cpu(make_inst(OP_JR, 0, 0xE))  # 0 + 2 - 2
    steps(cpu, 3)
    assert cpu.pc == 0


def test_pc_wraps(make_cpu):
    cpu = make_cpu()
    steps(cpu, ROM_SIZE)
    assert cpu.pc == 0
    cpu.step()
    assert cpu.fetch_addr == 0


def test_load_from_port(make_cpu, diagnostics):
    cpu = make_cpu(make_inst(OP_LD, 1, 0), on_diagnostic=diagnostics.append)
    cpu.port_write(0, 0x2A)
    steps(cpu, 2)
    assert not cpu.port_writable(0)
    cpu.step()
    assert cpu.registers.read(1) == 0x2A
    assert cpu.port_writable(0)
    assert diagnostics == []


def test_store_to_port(make_cpu):
    cpu = make_cpu(make_inst(OP_ST, 1, 2))
    cpu.registers.write(1, 0x55)
    cpu.registers.write(2, 0x01)
    steps(cpu, 3)
    assert cpu.port_readable(0)
    assert cpu.port_read(0) == 0x55
    assert cpu.port_read(0) is None


def test_indexed_load_and_store(make_cpu):
    cpu = make_cpu(
        make_inst(OP_STX, 1, 3),
        make_inst(OP_LDX, 2, 3),
        make_inst(OP_STX, 1, 0xF),
    )
    cpu.registers.write(7, 0xF0)
    cpu.registers.write(1, 9)
    steps(cpu, 5)
    assert cpu.memory.values()[3] == 9
    assert cpu.registers.read(2) == 9
    # 0xF0 - 1 is unmapped
    assert cpu.memory.values() == [0, 0, 0, 9] + [0] * 12


def test_unmapped_load_reports_diagnostic(make_cpu, diagnostics):
    cpu = make_cpu(make_inst(OP_LD, 1, 2), on_diagnostic=diagnostics.append)
    cpu.registers.write(1, 0x33)
    cpu.registers.write(2, 0x10)
    steps(cpu, 3)
    assert cpu.registers.read(1) == 0
    assert [(d.kind, d.address) for d in diagnostics] == [("read_unmapped", 0x10)]


def test_reserved_opcode_is_fatal(make_cpu):
    cpu = make_cpu(make_inst(OP_RESERVED))
    steps(cpu, 2)
    with pytest.raises(ReservedOpcodeError):
        cpu.step()
    assert issubclass(ReservedOpcodeError, NotImplementedError)


def test_rom_is_not_mutated(make_cpu):
    cpu = make_cpu(make_inst(OP_ADDI, 1, 5), make_inst(OP_ST, 1, 1))
    before = list(cpu.rom)
    steps(cpu, 10)
    assert list(cpu.rom) == before


def test_history_and_state(make_cpu):
    cpu = make_cpu(make_inst(OP_ADDI, 1, 5))
    steps(cpu, 3)
    assert cpu.history[0] == "00: ADDI R1, 5"

    state = cpu.get_state()
    assert state["registers"]["R1"] == 5
    assert state["pc"] == 3
    assert state["pipeline"]["fetch"]["address"] == 2
    assert state["pipeline"]["decode"]["text"] == "ADD R0, R0"
    assert state["simulation"]["cycleCount"] == 3
    assert len(state["memoryView"]) == 16

    text = cpu.dump()
    assert "regs: 05 00" in text
    assert "pc: 03" in text
    assert "fetching: 0x0800" in text
    assert "decoding: DecodedInstruction" in text


def test_reset(make_cpu):
    cpu = make_cpu(make_inst(OP_ADDI, 1, 5), make_inst(OP_ST, 1, 1))
    cpu.port_write(1, 3)
    steps(cpu, 6)
    cpu.reset()
    assert cpu.pc == 0
    assert cpu.registers.values() == [0] * 7
    assert cpu.fetch_stage is None
    assert cpu.decode_stage is None
    assert cpu.port_writable(1)
    assert cpu.cycle_count == 0
    assert cpu.history == []


@pytest.mark.parametrize("op, v1, v2, b, expected", [
    (0x8, 0x7F, 0x01, 2, 0x80),     # ADD
    (0x9, 0x0F, 0x30, 2, 0xC0),     # NOR
    (0xA, 0x10, 0x00, 0xD, 0x0D),   # ADDI -3
    (0xB, 0x0F, 0x00, 0x3, 0xF0),   # NORI
    (0xC, 0x7F, 0x01, 2, 0xC0),     # ADDH
    (0xD, 0x0F, 0x30, 2, 0xE0),     # NORH
    (0xE, 0x00, 0x00, 0xE, 0xFF),   # ADDIH -2
    (0xE, 0x10, 0x00, 0x4, 0x0A),   # ADDIH
    (0xF, 0x0F, 0x00, 0x2, 0xFE),   # NORIH, r1 gated to zero
])
def test_alu_opcodes(make_cpu, op, v1, v2, b, expected):
    cpu = make_cpu(make_inst(op, 1, b))
    cpu.registers.write(1, v1)
    cpu.registers.write(2, v2)
    steps(cpu, 3)
    assert cpu.registers.read(1) == expected
