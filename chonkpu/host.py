# chonkpu/host.py
import argparse
import logging
import sys
import time
from pathlib import Path

from .assembler import assemble
from .cpu import Chonkpu, ReservedOpcodeError, ROM_SIZE
from .loader import RomFormatError, read_rom

log = logging.getLogger(__name__)

DEFAULT_DELAY_MS = 50
OUTPUT_PORT = 0


def run(cpu: Chonkpu, steps=None, delay: float = DEFAULT_DELAY_MS / 1000.0, output=print):
    """Steps the core, printing every byte the program writes to port 0."""
    count = 0
    while steps is None or count < steps:
        cpu.step()
        count += 1
        data = cpu.port_read(OUTPUT_PORT)
        if data is not None:
            output(data)
        if delay:
            time.sleep(delay)
    return count


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(prog="chonkpu", description="Run a CHONKPU rom image.")
    parser.add_argument("rom", help="rom image (256 big-endian 16-bit words) or assembly source with --asm")
    parser.add_argument("--asm", action="store_true", help="assemble the file before running")
    parser.add_argument("--delay", type=float, default=DEFAULT_DELAY_MS, help="milliseconds between cycles")
    parser.add_argument("--steps", type=int, default=None, help="stop after this many cycles")
    parser.add_argument("--trace", action="store_true", help="log the machine state after every cycle")
    parser.add_argument("-v", "--verbose", action="store_true")
    args = parser.parse_args(argv)

    level = logging.DEBUG if args.trace else logging.INFO if args.verbose else logging.WARNING
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")

    try:
        if args.asm:
            bytecode, error = assemble(Path(args.rom).read_text(encoding="utf-8"))
            if error:
                print(error, file=sys.stderr)
                return 1
            rom = bytecode + [0] * (ROM_SIZE - len(bytecode))
        else:
            rom = read_rom(args.rom)
    except (OSError, UnicodeDecodeError, RomFormatError) as e:
        print(f"failed to read rom: {e}", file=sys.stderr)
        return 1

    cpu = Chonkpu(rom)
    try:
        run(cpu, steps=args.steps, delay=args.delay / 1000.0)
    except ReservedOpcodeError as e:
        log.error("%s\n%s", e, cpu.dump())
        return 2
    except KeyboardInterrupt:
        log.info("stopped after %d cycles", cpu.cycle_count)
    return 0


if __name__ == "__main__":
    sys.exit(main())
