"""
Tally Virtual Machine
Executes instruction sequences against a symbol table, a sparse memory
store and an operand stack
"""

from typing import Any, Dict, List, NamedTuple, Optional

from codegen import Instruction, OpCode, generate
from error_handling import (
  TallyRuntimeError,
  TallyUndefinedVariableError,
)
from parsing import create_parser
from utilities import ARITHMETIC_OPS, format_number, is_number


# ============================================================================
# STORAGE
# ============================================================================

class SymbolTable:
  """Variable names in first-seen order; a name keeps the index it got first"""

  def __init__(self):
    self._index: Dict[str, int] = {}
    self._names: List[str] = []

  def resolve(self, name: str) -> int:
    """Slot index for name, appending it if unseen"""
    slot = self._index.get(name)
    if slot is None:
      slot = len(self._names)
      self._index[name] = slot
      self._names.append(name)
    return slot

  def lookup(self, name: str) -> Optional[int]:
    return self._index.get(name)

  def name_of(self, slot: int) -> str:
    return self._names[slot]

  @property
  def names(self) -> List[str]:
    return list(self._names)

  def __contains__(self, name: str) -> bool:
    return name in self._index

  def __len__(self) -> int:
    return len(self._names)


class MemoryStore:
  """Sparse slot -> last stored value mapping"""

  def __init__(self):
    self._cells: Dict[int, Any] = {}

  def is_set(self, slot: int) -> bool:
    return slot in self._cells

  def read(self, slot: int) -> Any:
    return self._cells[slot]

  def write(self, slot: int, value: Any) -> None:
    self._cells[slot] = value

  def __len__(self) -> int:
    return len(self._cells)


class SlotRef(NamedTuple):
  """Operand stack entry produced by PUSH_SLOT"""
  index: int
  name: str


_NO_STORE = object()


# ============================================================================
# VIRTUAL MACHINE
# ============================================================================

class VirtualMachine:
  """
  Stack machine for Tally instruction sequences.

  Symbols and memory outlive a single run so an embedding program (the REPL)
  can keep variables between calls; the operand stack is fresh per run.
  """

  def __init__(self, symbols: Optional[SymbolTable] = None,
               memory: Optional[MemoryStore] = None, debug: bool = False):
    self.symbols = symbols if symbols is not None else SymbolTable()
    self.memory = memory if memory is not None else MemoryStore()
    self.debug = debug
    self.stack: List[Any] = []

  def reset(self) -> None:
    """Forget all variables"""
    self.symbols = SymbolTable()
    self.memory = MemoryStore()
    self.stack = []

  def bindings(self) -> Dict[str, Any]:
    """Assigned variables in slot order"""
    return {
        name: self.memory.read(slot)
        for slot, name in enumerate(self.symbols.names)
        if self.memory.is_set(slot)
    }

  # -- stack helpers --

  def _pop(self, op: OpCode) -> Any:
    if not self.stack:
      raise TallyRuntimeError(f"Operand stack underflow at '{op.value}'")
    return self.stack.pop()

  def _pop_number(self, op: OpCode) -> Any:
    value = self._pop(op)
    if isinstance(value, SlotRef):
      raise TallyRuntimeError(
        f"'{op.value}' expected a value but found a reference to '{value.name}'")
    return value

  def _pop_slot(self, op: OpCode) -> SlotRef:
    slot = self._pop(op)
    if not isinstance(slot, SlotRef):
      raise TallyRuntimeError(f"'{op.value}' expected a variable but found {slot!r}")
    return slot

  # -- execution --

  def execute(self, instr: Instruction) -> None:
    """Execute one instruction; STORE returns the value it wrote"""
    op = instr.op

    if op == OpCode.PUSH_VALUE:
      if not is_number(instr.arg):
        raise TallyRuntimeError(f"push_value expects a number, got {instr.arg!r}")
      self.stack.append(instr.arg)
    elif op == OpCode.PUSH_SLOT:
      self.stack.append(SlotRef(self.symbols.resolve(instr.arg), instr.arg))
    elif op == OpCode.LOAD:
      slot = self._pop_slot(op)
      if not self.memory.is_set(slot.index):
        raise TallyUndefinedVariableError(slot.name, slot.index)
      self.stack.append(self.memory.read(slot.index))
    elif op == OpCode.STORE:
      value = self._pop_number(op)
      slot = self._pop_slot(op)
      self.memory.write(slot.index, value)
      return value
    elif op.value in ARITHMETIC_OPS:
      right = self._pop_number(op)
      left = self._pop_number(op)
      self.stack.append(ARITHMETIC_OPS[op.value](left, right))
    else:
      raise TallyRuntimeError(f"Unknown instruction: {instr!r}")
    return _NO_STORE

  def run(self, instructions: List[Instruction]) -> Any:
    """
    Execute instructions in order and return the program result.

    The result is the value of the last STORE executed in this run. Without
    any STORE it is the value left by the final bare expression statement,
    or None for an empty program.
    """
    self.stack = []
    last_store = _NO_STORE

    for pc, instr in enumerate(instructions):
      stored = self.execute(instr)
      if stored is not _NO_STORE:
        last_store = stored
      if self.debug:
        print(f"[vm] {pc:4d} {instr}  stack={self.stack}")

    if last_store is not _NO_STORE:
      return last_store
    if self.stack:
      # Earlier bare statements leave their values beneath this one
      return self.stack[-1]
    return None


def evaluate(text: str, machine: Optional[VirtualMachine] = None, debug: bool = False) -> Any:
  """Tokenize, parse, compile and run source text"""
  machine = machine if machine is not None else VirtualMachine(debug=debug)
  ast = create_parser(debug).parse_string(text)
  return machine.run(generate(ast, debug))


def format_result(value: Any) -> str:
  return "" if value is None else format_number(value)


# ============================================================================
# FACTORY FUNCTIONS (for compatibility with main.py)
# ============================================================================

def create_interpreter(debug: bool = False) -> VirtualMachine:
  """Factory function returning a virtual machine"""
  return VirtualMachine(debug=debug)


def create_debug_interpreter() -> VirtualMachine:
  """Factory function returning a debug virtual machine"""
  return create_interpreter(debug=True)
