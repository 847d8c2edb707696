# chonkpu/main.py

import asyncio
import logging
from typing import Optional

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from .assembler import assemble
from .cpu import Chonkpu, ReservedOpcodeError, ROM_SIZE
from .isa import disassemble

log = logging.getLogger(__name__)

DEFAULT_DELAY_MS = 50

app = FastAPI(title="CHONKPU Simulator API")

origins = [
    "http://localhost",
    "http://localhost:8080",
    "null",
]

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


class Session:
    """The simulator behind the API: one rom, one core and the run controls."""

    def __init__(self):
        self.load([])

    def load(self, bytecode: list[int]):
        self.rom = [w & 0xFFFF for w in bytecode] + [0] * (ROM_SIZE - len(bytecode))
        self.cpu = Chonkpu(self.rom)
        self.is_running = False
        self.breakpoint_pc = -1
        self.fault = None

    def reset(self):
        self.cpu.reset()
        self.is_running = False
        self.breakpoint_pc = -1
        self.fault = None

    def step(self):
        if self.fault:
            self.is_running = False
            raise HTTPException(status_code=500, detail=self.fault)
        try:
            self.cpu.step()
        except ReservedOpcodeError as e:
            self.is_running = False
            self.fault = str(e)
            raise HTTPException(status_code=500, detail=self.fault)

    def get_state(self) -> dict:
        state = self.cpu.get_state()
        state["simulation"].update({
            "isRunning": self.is_running,
            "breakpoint": self.breakpoint_pc,
            "fault": self.fault,
        })
        return state


session = Session()


# --- Request models ---
class AssemblyPayload(BaseModel):
    source: str

class BytecodePayload(BaseModel):
    bytecode: list[int]

class ControlPayload(BaseModel):
    value: int
    steps: Optional[int] = Field(default=None, ge=1)

class PortPayload(BaseModel):
    value: int = Field(ge=0, le=0xFF)
    force: bool = False


def _check_port(p: int):
    if p not in range(len(session.cpu.memory.ports)):
        raise HTTPException(status_code=404, detail=f"Port {p} does not exist.")


@app.post("/assemble", summary="Assemble source")
def assemble_code(payload: AssemblyPayload):
    bytecode, error = assemble(payload.source)
    if error:
        raise HTTPException(status_code=400, detail=error)

    return {
        "bytecode": [f"{val:04X}" for val in bytecode],
        "listing": [f"{addr:02X}: {disassemble(val)}" for addr, val in enumerate(bytecode)],
    }

@app.post("/load", summary="Load bytecode into the rom")
def load_rom(payload: BytecodePayload):
    if len(payload.bytecode) > ROM_SIZE:
        raise HTTPException(status_code=400, detail=f"At most {ROM_SIZE} words fit the rom.")
    session.load(payload.bytecode)
    log.info("loaded %d words", len(payload.bytecode))
    return {"message": f"{len(payload.bytecode)} words loaded into the rom.", "state": session.get_state()}

@app.get("/status", summary="Current state")
def get_status():
    return session.get_state()

@app.post("/run", summary="Run the simulation")
async def run_simulation(control: ControlPayload):
    session.is_running = True
    delay = control.value / 1000.0
    count = 0
    while session.is_running:
        session.step()
        count += 1
        if session.cpu.pc == session.breakpoint_pc:
            session.is_running = False
        elif control.steps is not None and count >= control.steps:
            session.is_running = False
        await asyncio.sleep(delay)
    return {"message": "Simulation paused or stopped.", "state": session.get_state()}

@app.post("/step", summary="Run one cycle")
def execute_step():
    session.step()
    return session.get_state()

@app.post("/pause", summary="Pause the simulation")
def pause_simulation():
    session.is_running = False
    return {"message": "Simulation paused.", "state": session.get_state()}

@app.post("/reset", summary="Reset the simulator")
def reset_simulation():
    session.reset()
    log.info("simulator reset")
    return {"message": "Simulator reset.", "state": session.get_state()}

@app.post("/set_breakpoint", summary="Set a breakpoint")
def set_breakpoint(control: ControlPayload):
    session.breakpoint_pc = control.value
    return {"message": f"Breakpoint set at PC={control.value}."}

@app.get("/ports/{p}", summary="Port handshake flags")
def port_status(p: int):
    _check_port(p)
    return {
        "port": p,
        "readable": session.cpu.port_readable(p),
        "writable": session.cpu.port_writable(p),
    }

@app.post("/ports/{p}/write", summary="Send a byte to the core")
def port_write(p: int, payload: PortPayload):
    _check_port(p)
    if not payload.force and not session.cpu.port_writable(p):
        raise HTTPException(status_code=409, detail=f"Port {p} still holds an unread byte.")
    session.cpu.port_write(p, payload.value)
    return port_status(p)

@app.post("/ports/{p}/read", summary="Take a byte from the core")
def port_read(p: int):
    _check_port(p)
    return {"port": p, "value": session.cpu.port_read(p)}
