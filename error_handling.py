"""
Error handling for the Tally expression language
Exception classes for every pipeline stage plus dictionary helpers for
structured error reports
"""

from typing import Dict, Optional


END_OF_INPUT_TEXT = "end of input"


# ============================================================================
# DATA STRUCTURES (Immutable Dictionaries)
# ============================================================================

def make_parse_error(
    found: str,
    expected: str,
    message: Optional[str] = None
) -> Dict:
    """Create an immutable parse error structure"""
    return {
        'message': message or "Unexpected token",
        'found': found,
        'expected': expected,
    }


def describe_token_text(text: str) -> str:
    """Render token text for messages, naming the end of input explicitly"""
    if text == "":
        return END_OF_INPUT_TEXT
    return f"'{text}'"


def format_parse_error(error: Dict) -> str:
    """Format parse error as string"""
    return (
        f"Parse error: {error['message']} {describe_token_text(error['found'])}"
        f" (expected {error['expected']})"
    )


# ============================================================================
# EXCEPTIONS
# ============================================================================

class TallyError(Exception):
    """Base class for all Tally pipeline failures"""


class TallyTokenizerError(TallyError):
    """Source text contains a character outside the language alphabet"""

    def __init__(self, character: str):
        self.character = character
        super().__init__(f"Tokenize error: unrecognized character {character!r}")


class TallyParseError(TallyError):
    """The parser's lookahead did not match the rule being parsed"""

    def __init__(self, found: str, expected: str, message: Optional[str] = None):
        self.found = found
        self.expected = expected
        self.message = message or "Unexpected token"
        super().__init__(str(self))

    def __str__(self) -> str:
        return format_parse_error(make_parse_error(self.found, self.expected, self.message))


class TallyRuntimeError(TallyError):
    """Virtual machine failure while executing an instruction sequence"""

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class TallyUndefinedVariableError(TallyRuntimeError):
    """A variable was read before any assignment stored a value in its slot"""

    def __init__(self, name: str, slot: int):
        self.name = name
        self.slot = slot
        super().__init__(f"Variable '{name}' is read before it is assigned")


class TallyArithmeticError(TallyRuntimeError):
    """Division or modulo by zero, or a result outside the float range"""

    def __init__(self, op_name: str, reason: str = "by zero"):
        self.op_name = op_name
        self.reason = reason
        super().__init__(f"Arithmetic error: {op_name} {reason}")


def parse_error_to_dict(exc: TallyParseError) -> Dict:
    """Convert a parse exception back to its dictionary form"""
    return make_parse_error(exc.found, exc.expected, exc.message)
