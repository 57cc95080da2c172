"""
Tally Code Generation
Lowers the AST into a flat stack machine instruction sequence
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional

from parsing import ASTNode, create_parser


# ============================================================================
# INSTRUCTIONS
# ============================================================================

class OpCode(str, Enum):
  PUSH_VALUE = "push_value"
  PUSH_SLOT = "push_slot"
  LOAD = "load"
  STORE = "store"
  ADD = "add"
  SUB = "sub"
  MUL = "mul"
  DIV = "div"
  MOD = "mod"


@dataclass(frozen=True)
class Instruction:
  """One VM operation; PUSH_VALUE carries a number, PUSH_SLOT a variable name"""
  op: OpCode
  arg: Any = None

  def __str__(self) -> str:
    return format_instruction(self)


BINARY_OPCODES: Dict[str, OpCode] = {
  '+': OpCode.ADD,
  '-': OpCode.SUB,
  '*': OpCode.MUL,
  '/': OpCode.DIV,
  '%': OpCode.MOD,
}


def format_instruction(instr: Instruction) -> str:
  """Listing form: push &hp, push 10, load, store, add ..."""
  if instr.op == OpCode.PUSH_SLOT:
    return f"push &{instr.arg}"
  if instr.op == OpCode.PUSH_VALUE:
    return f"push {instr.arg}"
  return instr.op.value


def instruction_to_dict(instr: Instruction) -> Dict[str, Any]:
  """Tagged record for external inspection"""
  record: Dict[str, Any] = {'op': instr.op.value}
  if instr.arg is not None:
    record['arg'] = instr.arg
  return record


def format_listing(instructions: List[Instruction]) -> str:
  return "\n".join(f"{i:4d}  {format_instruction(instr)}" for i, instr in enumerate(instructions))


# ============================================================================
# GENERATION (Pure Functions)
# ============================================================================

def gen_node(node: ASTNode, out: List[Instruction], debug: bool = False) -> None:
  """Append the instructions for one AST node, children first"""
  node_type = node.type

  if node_type == "PROGRAM":
    for statement in node.children:
      gen_node(statement, out, debug)
  elif node_type == "NUMBER":
    out.append(Instruction(OpCode.PUSH_VALUE, node.value))
  elif node_type == "IDENTIFIER":
    out.append(Instruction(OpCode.PUSH_SLOT, node.value))
    out.append(Instruction(OpCode.LOAD))
  elif node_type == "ASSIGN":
    # The target stays a slot so STORE finds it beneath the value
    out.append(Instruction(OpCode.PUSH_SLOT, node.value))
    gen_node(node.children[0], out, debug)
    out.append(Instruction(OpCode.STORE))
  elif node_type == "BINARY_OP":
    left, right = node.children
    gen_node(left, out, debug)
    gen_node(right, out, debug)
    out.append(Instruction(BINARY_OPCODES[node.value]))
  else:
    raise ValueError(f"Unknown AST node type: {node_type}")

  if debug:
    print(f"[codegen] {node_type} -> {len(out)} instructions")


def generate(ast: ASTNode, debug: bool = False) -> List[Instruction]:
  """Generate the instruction sequence for a parsed program"""
  out: List[Instruction] = []
  gen_node(ast, out, debug)
  return out


def compile_source(text: str, debug: bool = False) -> List[Instruction]:
  """Tokenize, parse and generate code for source text"""
  ast = create_parser(debug).parse_string(text)
  return generate(ast, debug)


# ============================================================================
# FACTORY FUNCTIONS
# ============================================================================

class CodeGenerator:
  def __init__(self, debug: bool = False):
    self.debug = debug

  def generate(self, ast: ASTNode) -> List[Instruction]:
    return generate(ast, self.debug)

  def compile(self, text: str, parser: Optional[Any] = None) -> List[Instruction]:
    parser = parser or create_parser(self.debug)
    return self.generate(parser.parse_string(text))


def create_code_generator(debug: bool = False) -> CodeGenerator:
  """Factory function returning a code generator"""
  return CodeGenerator(debug=debug)


def create_debug_code_generator() -> CodeGenerator:
  """Factory function returning a debug code generator"""
  return create_code_generator(debug=True)
