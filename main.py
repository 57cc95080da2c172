"""
Tally Programming Language - Main Entry Point
Arithmetic and assignment statements compiled to a stack machine
"""

import sys
import argparse
import json
from typing import Callable, List, Optional
import os

# Readline support for history and auto-completion
try:
  import readline
  READLINE_AVAILABLE = True
except ImportError:
  READLINE_AVAILABLE = False

from parsing import create_parser, create_debug_parser, pretty_print_ast, ast_to_dict
from codegen import generate, format_listing, instruction_to_dict
from interpreter import create_interpreter, create_debug_interpreter, format_result
from error_handling import (
  TallyParseError,
  TallyRuntimeError,
  TallyTokenizerError,
)


VERSION = 'Tally v1.0.0'
HISTORY_FILE = os.path.expanduser("~/.tally_history")


def create_arg_parser() -> argparse.ArgumentParser:
  """Create command line argument parser"""
  parser = argparse.ArgumentParser(
      prog='tally',
      description='Tally - arithmetic and assignment statements on a stack machine',
      formatter_class=argparse.RawDescriptionHelpFormatter,
      epilog="""
Examples:
  %(prog)s 'hp=10; damage=5; hp/damage+(1.25*2);'
  %(prog)s -f program.tally         # Run a program file
  %(prog)s --tokens 'x = 1.25;'     # Show tokens
  %(prog)s --parse 'x = 1 + 2;'     # Show the AST
  %(prog)s --emit 'x = 1 + 2;'      # Show the instruction listing
  %(prog)s --emit --json 'x = 1;'   # Instructions as JSON records
  %(prog)s -i                       # Interactive mode
        """
  )

  parser.add_argument(
      'source',
      nargs='?',
      help='Program text, e.g. "x = 5; x * 2;"'
  )

  parser.add_argument(
      '-f', '--file',
      help='Read the program from a file'
  )

  parser.add_argument(
      '-i', '--interactive',
      action='store_true',
      help='Start interactive mode'
  )

  parser.add_argument(
      '--tokens',
      action='store_true',
      help='Tokenize and show tokens (for debugging)'
  )

  parser.add_argument(
      '--parse',
      action='store_true',
      help='Parse and show the AST (for debugging)'
  )

  parser.add_argument(
      '--emit',
      action='store_true',
      help='Compile and show the instruction listing'
  )

  parser.add_argument(
      '--json',
      action='store_true',
      help='With --tokens, --parse or --emit, print JSON instead of text'
  )

  parser.add_argument(
      '--debug',
      action='store_true',
      help='Enable debug output for all stages'
  )

  parser.add_argument(
      '--version',
      action='version',
      version=VERSION
  )

  return parser


def fail(message: str) -> None:
  print(message, file=sys.stderr)
  sys.exit(1)


def read_source_file(path: str) -> str:
  try:
    with open(path, 'r', encoding='utf-8') as f:
      return f.read()
  except FileNotFoundError:
    fail(f"Error: Program file '{path}' not found")
  except PermissionError:
    fail(f"Error: Permission denied reading '{path}'")
  except UnicodeDecodeError as e:
    fail(f"Error: Cannot decode file '{path}': {e}")
  except OSError as e:
    fail(f"Error: Cannot read '{path}': {e}")


def show_tokens(source: str, as_json: bool = False, debug: bool = False) -> None:
  parser = create_debug_parser() if debug else create_parser()
  tokens = parser.tokenize(source)
  if as_json:
    print(json.dumps([{'kind': t.kind.value, 'value': t.value} for t in tokens], indent=2))
    return
  for token in tokens:
    print(token)


def show_ast(source: str, as_json: bool = False, debug: bool = False) -> None:
  parser = create_debug_parser() if debug else create_parser()
  ast = parser.parse_string(source)
  if as_json:
    print(json.dumps(ast_to_dict(ast), indent=2))
    return
  print(pretty_print_ast(ast), end='')


def show_instructions(source: str, as_json: bool = False, debug: bool = False) -> None:
  parser = create_debug_parser() if debug else create_parser()
  instructions = generate(parser.parse_string(source), debug)
  if as_json:
    print(json.dumps([instruction_to_dict(i) for i in instructions], indent=2))
    return
  if instructions:
    print(format_listing(instructions))


def run_source(source: str, debug: bool = False) -> None:
  """Evaluate a program and print its result"""
  parser = create_debug_parser() if debug else create_parser()
  machine = create_debug_interpreter() if debug else create_interpreter()

  instructions = generate(parser.parse_string(source), debug)
  if debug:
    print(f"Compiled {len(instructions)} instructions")
  result = machine.run(instructions)
  if result is not None:
    print(format_result(result))


def run_guarded(action: Callable[[], None], debug: bool = False) -> None:
  """Run one CLI action, turning every failure into exit status 1"""
  try:
    action()
  except TallyTokenizerError as e:
    fail(str(e))
  except TallyParseError as e:
    fail(str(e))
  except TallyRuntimeError as e:
    fail(f"Runtime error: {e.message}")
  except Exception as e:
    if debug:
      import traceback
      traceback.print_exc()
    fail(f"Unexpected error: {e}")


def setup_readline():
  """Setup readline with history and auto-completion"""
  if not READLINE_AVAILABLE:
    return

  try:
    readline.read_history_file(HISTORY_FILE)
  except (FileNotFoundError, PermissionError, OSError):
    pass  # First time, no history yet, or permission denied

  readline.set_history_length(1000)

  completions = [":tokens ", ":parse ", ":emit ", ":env", ":reset", ":help", "exit"]

  def completer(text, state):
    options = [cmd for cmd in completions if cmd.startswith(text)]
    if state < len(options):
      return options[state]
    return None

  readline.set_completer(completer)
  readline.parse_and_bind("tab: complete")

  import atexit
  atexit.register(save_history)


def save_history():
  try:
    readline.write_history_file(HISTORY_FILE)
  except OSError:
    pass


def print_repl_help() -> None:
  print("REPL Commands:")
  print("  :tokens <src>     - Show tokens")
  print("  :parse <src>      - Show the AST")
  print("  :emit <src>       - Show the instruction listing")
  print("  :env              - Show assigned variables")
  print("  :reset            - Forget all variables")
  print("  :help             - Show this help")
  print("  exit              - Exit REPL")
  print()
  print("Language:")
  print("  hp = 10;                  - Assignment")
  print("  hp / 2 + (1.25 * 2);      - Expression")
  print("  One operator per level: write (1+2)+3, not 1+2+3")


def run_interactive_mode(debug: bool = False) -> None:
  """Run Tally in interactive mode; variables persist between lines"""
  print(f"{VERSION} - Interactive Mode")
  print("Type 'exit' to quit, ':help' for commands")
  if READLINE_AVAILABLE:
    print("Readline enabled: Use ↑/↓ for history, Tab for completion")
  if debug:
    print("Debug mode enabled")
  print()

  setup_readline()

  parser = create_debug_parser() if debug else create_parser()
  machine = create_debug_interpreter() if debug else create_interpreter()

  while True:
    try:
      code = input("tally> ")
    except (KeyboardInterrupt, EOFError):
      print("\nGoodbye!")
      break

    line = code.strip()
    if line in ("exit", "quit"):
      break
    if not line:
      continue

    try:
      if line.startswith(":tokens "):
        for token in parser.tokenize(line[len(":tokens "):]):
          print(token)
      elif line.startswith(":parse "):
        print(pretty_print_ast(parser.parse_string(line[len(":parse "):])), end='')
      elif line.startswith(":emit "):
        instructions = generate(parser.parse_string(line[len(":emit "):]), debug)
        if instructions:
          print(format_listing(instructions))
      elif line == ":env":
        bindings = machine.bindings()
        if bindings:
          for name, value in bindings.items():
            print(f"  {name} = {format_result(value)}")
        else:
          print("  (no variables assigned)")
      elif line == ":reset":
        machine.reset()
        print("Variables cleared")
      elif line == ":help":
        print_repl_help()
      else:
        result = machine.run(generate(parser.parse_string(line), debug))
        if result is not None:
          print(f"=> {format_result(result)}")
    except TallyTokenizerError as e:
      print(str(e))
    except TallyParseError as e:
      print(str(e))
    except TallyRuntimeError as e:
      print(f"Runtime error: {e.message}")
    except Exception as e:
      print(f"Unexpected error: {e}")
      if debug:
        import traceback
        traceback.print_exc()


def show_language_info() -> None:
  """Show Tally language information"""
  print("Tally Programming Language")
  print("=" * 50)
  print("Semicolon-terminated arithmetic and assignment statements")
  print("compiled to a small stack machine.")
  print()


def main(argv: Optional[List[str]] = None) -> None:
  """Main entry point for Tally"""
  arg_parser = create_arg_parser()
  args = arg_parser.parse_args(argv)

  if argv is None:
    argv = sys.argv[1:]
  if not argv:
    show_language_info()
    print("Starting interactive mode...")
    print("Use 'tally --help' for command line options")
    print()
    run_interactive_mode(debug=False)
    return

  if args.interactive:
    run_interactive_mode(debug=args.debug)
    return

  if args.file and args.source is not None:
    arg_parser.error("give either SOURCE or --file, not both")

  if args.file:
    source = read_source_file(args.file)
  elif args.source is not None:
    source = args.source
  else:
    arg_parser.print_help()
    print()
    show_language_info()
    return

  if args.tokens:
    run_guarded(lambda: show_tokens(source, args.json, args.debug), args.debug)
  elif args.parse:
    run_guarded(lambda: show_ast(source, args.json, args.debug), args.debug)
  elif args.emit:
    run_guarded(lambda: show_instructions(source, args.json, args.debug), args.debug)
  else:
    run_guarded(lambda: run_source(source, args.debug), args.debug)


if __name__ == "__main__":
  main()
