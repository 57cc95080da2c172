"""
Virtual machine tests for Tally
"""

import math
import operator

import pytest
from codegen import Instruction, OpCode, compile_source
from error_handling import (
  TallyArithmeticError,
  TallyRuntimeError,
  TallyUndefinedVariableError,
)
from interpreter import (
  MemoryStore,
  SymbolTable,
  VirtualMachine,
  evaluate,
)


def run(machine, source):
  return machine.run(compile_source(source))


class TestArithmetic:
  """Single operations match Python arithmetic"""

  @pytest.mark.parametrize("op, fn", [
    ("+", operator.add),
    ("-", operator.sub),
    ("*", operator.mul),
    ("/", operator.truediv),
    ("%", operator.mod),
  ])
  @pytest.mark.parametrize("left, right", [(7, 2), (1.5, 0.25), (-9, 4)])
  def test_matches_python(self, machine, op, fn, left, right):
    assert run(machine, f"{left} {op} {right};") == fn(left, right)

  def test_parenthesized_chain(self, machine):
    assert run(machine, "(1+2)+3;") == 6

  def test_sample_program(self, machine):
    # hp/damage+(1.25*2) runs, but the last assignment decides the result
    assert run(machine, "hp=10; damage=5; hp/damage+(1.25*2);") == 5

  def test_bare_expression_result(self, machine):
    assert run(machine, "10 / 4 + (1.25 * 2);") == 5.0

  def test_last_bare_expression_wins_without_store(self, machine):
    assert run(machine, "1; 2; 3 * 3;") == 9


class TestVariables:
  """Slots, stores and loads"""

  def test_assignment_round_trip(self, machine):
    assert run(machine, "x = 5; x;") == 5

  def test_last_store_wins(self, machine):
    assert run(machine, "a=10; a+1;") == 10

  def test_only_assignments(self, machine):
    assert run(machine, "a = 1; b = a + 1;") == 2

  def test_distinct_slots_persist_between_runs(self, machine):
    assert run(machine, "a=1; b=2; a+b;") == 2
    assert run(machine, "a+b;") == 3
    assert run(machine, "a;") == 1
    assert machine.symbols.lookup("a") == 0
    assert machine.symbols.lookup("b") == 1

  def test_reassignment_keeps_slot(self, machine):
    run(machine, "x = 1; y = 2; x = 3;")
    assert machine.symbols.names == ["x", "y"]
    assert machine.bindings() == {"x": 3, "y": 2}

  def test_assignment_from_expression(self, machine):
    assert run(machine, "hp = 10; hp = hp - 3; hp;") == 7

  def test_reset_forgets_variables(self, machine):
    run(machine, "x = 1;")
    machine.reset()
    assert machine.bindings() == {}
    with pytest.raises(TallyUndefinedVariableError):
      run(machine, "x;")

  def test_empty_program(self, machine):
    assert run(machine, "") is None


class TestRuntimeErrors:
  """Fail-fast policies"""

  def test_undefined_read(self, machine):
    with pytest.raises(TallyUndefinedVariableError) as exc_info:
      run(machine, "y + 1;")
    assert exc_info.value.name == "y"
    assert "'y'" in str(exc_info.value)

  def test_self_reference_before_assignment(self, machine):
    with pytest.raises(TallyUndefinedVariableError):
      run(machine, "x = x + 1;")

  @pytest.mark.parametrize("source", ["1 / 0;", "5 % 0;", "x = 0; 3 / x;"])
  def test_division_by_zero(self, machine, source):
    with pytest.raises(TallyArithmeticError):
      run(machine, source)

  def test_arithmetic_error_is_runtime_error(self, machine):
    with pytest.raises(TallyRuntimeError):
      run(machine, "1 / 0;")

  def test_chained_assignment_fails(self, machine):
    with pytest.raises(TallyRuntimeError):
      run(machine, "a = b = 3;")

  def test_result_out_of_float_range(self, machine):
    source = (
      "a = 9007199254740991 * 9007199254740991; b = a * a; c = b * b;"
      " d = c * c; e = d * d; e * 1.5;"
    )
    with pytest.raises(TallyArithmeticError) as exc_info:
      run(machine, source)
    assert "out of range" in str(exc_info.value)

  def test_oversized_literal_evaluates_to_inf(self, machine):
    assert run(machine, "1" * 400 + " * 1.5;") == math.inf

  def test_stack_underflow(self, machine):
    with pytest.raises(TallyRuntimeError) as exc_info:
      machine.run([Instruction(OpCode.ADD)])
    assert "underflow" in str(exc_info.value)

  def test_store_needs_slot(self, machine):
    with pytest.raises(TallyRuntimeError):
      machine.run([
        Instruction(OpCode.PUSH_VALUE, 1),
        Instruction(OpCode.PUSH_VALUE, 2),
        Instruction(OpCode.STORE),
      ])


class TestStorage:
  """Symbol table and memory store"""

  def test_symbol_table_first_seen_index(self):
    symbols = SymbolTable()
    assert symbols.resolve("hp") == 0
    assert symbols.resolve("damage") == 1
    assert symbols.resolve("hp") == 0
    assert len(symbols) == 2
    assert "damage" in symbols
    assert symbols.name_of(1) == "damage"

  def test_memory_is_sparse(self):
    memory = MemoryStore()
    assert not memory.is_set(3)
    memory.write(3, 1.5)
    assert memory.is_set(3)
    assert memory.read(3) == 1.5
    assert len(memory) == 1

  def test_shared_stores(self):
    symbols, memory = SymbolTable(), MemoryStore()
    VirtualMachine(symbols, memory).run(compile_source("x = 4;"))
    assert VirtualMachine(symbols, memory).run(compile_source("x * 2;")) == 8


class TestEvaluate:

  def test_evaluate(self):
    assert evaluate("x = 2; x * 21;") == 2

  def test_evaluate_with_machine(self, machine):
    evaluate("x = 2;", machine)
    assert evaluate("x * 21;", machine) == 42

  def test_debug_trace(self, capsys):
    evaluate("1 + 1;", debug=True)
    out = capsys.readouterr().out
    assert "[vm]" in out
    assert "add" in out
