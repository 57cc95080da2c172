"""
Utilities module for the Tally virtual machine
Arithmetic operation table and value formatting helpers
"""

from typing import Any, Callable, Dict
import math
import operator

from error_handling import TallyArithmeticError, TallyRuntimeError


# ==================== VALUE HELPERS ====================

def is_number(value: Any) -> bool:
  """True for int/float operands, excluding bool and slot references"""
  return isinstance(value, (int, float)) and not isinstance(value, bool)


def format_number(value: Any) -> str:
  """
  Render a result for output

  Integral floats print without a fractional part so that 10/5 shows as 2.

  Examples:
    format_number(2.0) -> "2"
    format_number(1.25) -> "1.25"
    format_number(7) -> "7"
  """
  if isinstance(value, float) and math.isfinite(value) and value.is_integer():
    return str(int(value))
  return repr(value) if isinstance(value, float) else str(value)


# ==================== ARITHMETIC ====================

def binary_arithmetic_op(
  op: Callable[[Any, Any], Any],
  op_name: str
) -> Callable[[Any, Any], Any]:
  """
  Factory for binary arithmetic operations

  Args:
    op: Python operator function (e.g., operator.add)
    op_name: Name for error messages

  Returns:
    Function taking (left, right) numbers and returning the result

  Examples:
    tally_add = binary_arithmetic_op(operator.add, "add")
    tally_add(1, 2) -> 3
  """
  def arithmetic(left: Any, right: Any) -> Any:
    if not is_number(left) or not is_number(right):
      raise TallyRuntimeError(
        f"{op_name} requires numeric operands, got {left!r} and {right!r}"
      )
    try:
      return op(left, right)
    except ZeroDivisionError as e:
      raise TallyArithmeticError(op_name) from e
    except OverflowError as e:
      raise TallyArithmeticError(op_name, "result out of range") from e

  return arithmetic


ARITHMETIC_OPS: Dict[str, Callable[[Any, Any], Any]] = {
  'add': binary_arithmetic_op(operator.add, "addition"),
  'sub': binary_arithmetic_op(operator.sub, "subtraction"),
  'mul': binary_arithmetic_op(operator.mul, "multiplication"),
  'div': binary_arithmetic_op(operator.truediv, "division"),
  'mod': binary_arithmetic_op(operator.mod, "modulo"),
}
