import pytest

from chonkpu.cpu import Chonkpu, ROM_SIZE
from chonkpu.isa import OP_ADD, make_inst

NOP = make_inst(OP_ADD, 0, 0)


@pytest.fixture
def diagnostics():
    """Collects Diagnostic events; pass `diagnostics.append` as the sink."""
    return []


@pytest.fixture
def make_cpu():
    """Builds a core over the given words, padding the rom with NOPs."""
    def _make(*words, on_diagnostic=None):
        rom = list(words) + [NOP] * (ROM_SIZE - len(words))
        return Chonkpu(rom, on_diagnostic=on_diagnostic)
    return _make
