from .cpu import Chonkpu, ReservedOpcodeError
from .diagnostics import Diagnostic

__all__ = ["Chonkpu", "ReservedOpcodeError", "Diagnostic"]
