"""
Tally Programming Language Parser
Tokenizer, token stream and recursive descent parser producing a small AST
"""

from typing import List, Dict, Any, Union
from dataclasses import dataclass, field
from enum import Enum

# Import pyparsing with error handling
try:
    from pyparsing import Char, Regex, Word, alphas
except ImportError:
    raise ImportError("pyparsing library not found. Install with: pip install pyparsing")

from error_handling import TallyParseError, TallyTokenizerError


WHITESPACE = " \t\n\r\f"


class TokenKind(str, Enum):
    """Closed set of token kinds"""
    END_OF_INPUT = "END_OF_INPUT"
    PLUS = "PLUS"
    MINUS = "MINUS"
    STAR = "STAR"
    SLASH = "SLASH"
    PERCENT = "PERCENT"
    EQUALS = "EQUALS"
    SEMICOLON = "SEMICOLON"
    LPAREN = "LPAREN"
    RPAREN = "RPAREN"
    NUMBER = "NUMBER"
    IDENTIFIER = "IDENTIFIER"


PUNCTUATION = {
    '+': TokenKind.PLUS,
    '-': TokenKind.MINUS,
    '*': TokenKind.STAR,
    '/': TokenKind.SLASH,
    '%': TokenKind.PERCENT,
    '=': TokenKind.EQUALS,
    ';': TokenKind.SEMICOLON,
    '(': TokenKind.LPAREN,
    ')': TokenKind.RPAREN,
}


@dataclass(frozen=True)
class Token:
    """Tally token: literal text, or the numeric value of a number literal"""
    kind: TokenKind
    value: Union[str, int, float]

    @property
    def text(self) -> str:
        return str(self.value)

    def __str__(self) -> str:
        return f"{self.kind.value}({self.value!r})"


END_OF_INPUT = Token(TokenKind.END_OF_INPUT, "")


@dataclass(frozen=True)
class ASTNode:
    """Abstract syntax tree node"""
    type: str
    value: Any
    children: List['ASTNode'] = field(default_factory=list)

    def __str__(self) -> str:
        if self.children:
            children_str = ", ".join(str(child) for child in self.children)
            return f"{self.type}({self.value}, [{children_str}])"
        return f"{self.type}({self.value})"


# ============================================================================
# TOKENIZER
# ============================================================================

def accumulate_number(literal: str) -> Union[int, float]:
    """
    Fold a number literal into a value.

    Whole and fractional digits share one integer accumulator; the fractional
    digits only grow the divisor, which is applied once at the end. "1.25"
    becomes 125 / 100.

    Accumulator and divisor turn into floats once they pass MAX_EXACT_INT, so
    oversized literals round like doubles and overflow to inf instead of
    raising.
    """
    whole, dot, fraction = literal.partition('.')
    total = 0
    for ch in whole:
        total = _fold_digit(total, ch)
    if not dot:
        return total
    scale = 1
    for ch in fraction:
        total = _fold_digit(total, ch)
        scale = _fold_digit(scale, '0')
    return total / scale


MAX_EXACT_INT = 2 ** 53


def _fold_digit(acc: Union[int, float], ch: str) -> Union[int, float]:
    acc = acc * 10 + (ord(ch) - ord('0'))
    if isinstance(acc, int) and acc > MAX_EXACT_INT:
        return float(acc)
    return acc


class TallyTokenizer:
    """Single pass tokenizer built from pyparsing scanners"""

    def __init__(self):
        self._setup_token_patterns()

    def _setup_token_patterns(self):
        """Setup all token patterns for Tally"""

        # Numbers: ASCII digits with an optional fractional part ("1." is allowed)
        number = Regex(r"[0-9]+(?:\.[0-9]*)?")
        number.set_parse_action(lambda toks: Token(TokenKind.NUMBER, accumulate_number(toks[0])))

        # Identifiers: ASCII letters only
        identifier = Word(alphas)
        identifier.set_parse_action(lambda toks: Token(TokenKind.IDENTIFIER, toks[0]))

        # Operators and punctuation
        punctuation = Char("".join(PUNCTUATION))
        punctuation.set_parse_action(lambda toks: Token(PUNCTUATION[toks[0]], toks[0]))

        self.token_pattern = number | identifier | punctuation
        self.token_pattern.set_whitespace_chars(WHITESPACE)
        # Match positions must index the original text, so tabs stay unexpanded
        self.token_pattern.parse_with_tabs()

    def tokenize(self, text: str) -> List[Token]:
        """Tokenize source text; any character between matches that is not
        whitespace is rejected"""
        tokens = []
        pos = 0
        for toks, start, end in self.token_pattern.scan_string(text):
            self._check_gap(text, pos, start)
            tokens.append(toks[0])
            pos = end
        self._check_gap(text, pos, len(text))
        return tokens

    @staticmethod
    def _check_gap(text: str, start: int, end: int) -> None:
        for ch in text[start:end]:
            if ch not in WHITESPACE:
                raise TallyTokenizerError(ch)


_default_tokenizer = TallyTokenizer()


def tokenize(text: str) -> List[Token]:
    """Tokenize Tally source text"""
    return _default_tokenizer.tokenize(text)


# ============================================================================
# TOKEN STREAM
# ============================================================================

class TokenStream:
    """Peekable token sequence with a forward-only cursor"""

    def __init__(self, tokens: List[Token]):
        self._tokens = list(tokens)
        self._index = 0

    @property
    def position(self) -> int:
        return self._index

    def peek(self, offset: int = 0) -> Token:
        """Token at cursor + offset, or the end-of-input sentinel"""
        index = self._index + offset
        if 0 <= index < len(self._tokens):
            return self._tokens[index]
        return END_OF_INPUT

    def advance(self) -> None:
        if self._index < len(self._tokens):
            self._index += 1

    def at_end(self) -> bool:
        return self.peek().kind == TokenKind.END_OF_INPUT


# ============================================================================
# RECURSIVE DESCENT GRAMMAR
# ============================================================================

ADDITIVE = {TokenKind.PLUS, TokenKind.MINUS}
MULTIPLICATIVE = {TokenKind.STAR, TokenKind.SLASH, TokenKind.PERCENT}


class TallyGrammar:
    """
    Recursive descent rules.

        Block      := Statement*
        Statement  := Expression ';'
        Expression := Identifier '=' Expression | Term ( ('+'|'-') Term )?
        Term       := Factor ( ('*'|'/'|'%') Factor )?
        Factor     := '(' Expression ')' | Identifier | ('-')? Number

    Each level consumes at most one operator, so 1+2+3 is rejected.
    """

    def __init__(self, debug: bool = False):
        self.debug = debug

    def _trace(self, rule: str, stream: TokenStream) -> None:
        if self.debug:
            print(f"[parse] {rule} at token {stream.position}: {stream.peek()}")

    def parse_block(self, stream: TokenStream) -> ASTNode:
        statements = []
        while not stream.at_end():
            statements.append(self.parse_statement(stream))
        return ASTNode("PROGRAM", None, statements)

    def parse_statement(self, stream: TokenStream) -> ASTNode:
        self._trace("statement", stream)
        expression = self.parse_expression(stream)
        token = stream.peek()
        if token.kind != TokenKind.SEMICOLON:
            raise TallyParseError(token.text, ';')
        stream.advance()
        return expression

    def parse_expression(self, stream: TokenStream) -> ASTNode:
        self._trace("expression", stream)
        if (stream.peek().kind == TokenKind.IDENTIFIER
                and stream.peek(1).kind == TokenKind.EQUALS):
            name = self.parse_identifier(stream)
            stream.advance()
            value = self.parse_expression(stream)
            return ASTNode("ASSIGN", name, [value])

        left = self.parse_term(stream)
        token = stream.peek()
        if token.kind in ADDITIVE:
            stream.advance()
            right = self.parse_term(stream)
            return ASTNode("BINARY_OP", token.value, [left, right])
        return left

    def parse_term(self, stream: TokenStream) -> ASTNode:
        self._trace("term", stream)
        left = self.parse_factor(stream)
        token = stream.peek()
        if token.kind in MULTIPLICATIVE:
            stream.advance()
            right = self.parse_factor(stream)
            return ASTNode("BINARY_OP", token.value, [left, right])
        return left

    def parse_factor(self, stream: TokenStream) -> ASTNode:
        self._trace("factor", stream)
        token = stream.peek()
        if token.kind == TokenKind.LPAREN:
            stream.advance()
            inner = self.parse_expression(stream)
            token = stream.peek()
            if token.kind != TokenKind.RPAREN:
                raise TallyParseError(token.text, ')')
            stream.advance()
            return inner
        if token.kind == TokenKind.IDENTIFIER:
            return ASTNode("IDENTIFIER", self.parse_identifier(stream))
        if token.kind in (TokenKind.MINUS, TokenKind.NUMBER):
            return ASTNode("NUMBER", self.parse_value(stream))
        raise TallyParseError(token.text, '<factor>')

    def parse_identifier(self, stream: TokenStream) -> str:
        token = stream.peek()
        if token.kind != TokenKind.IDENTIFIER:
            raise TallyParseError(token.text, '<identifier>')
        stream.advance()
        return token.value

    def parse_value(self, stream: TokenStream) -> Union[int, float]:
        token = stream.peek()
        if token.kind not in (TokenKind.MINUS, TokenKind.NUMBER):
            raise TallyParseError(token.text, '- or <value>')
        sign = 1
        if token.kind == TokenKind.MINUS:
            sign = -1
            stream.advance()
            token = stream.peek()
            # A leading minus applies to number literals only
            if token.kind != TokenKind.NUMBER:
                raise TallyParseError(token.text, '<value>')
        stream.advance()
        return sign * token.value


class TallyParser:
    """Main Tally parser combining tokenizer and grammar"""

    def __init__(self, debug: bool = False):
        self.debug = debug
        self.grammar = TallyGrammar(debug)

    def tokenize(self, text: str) -> List[Token]:
        """Tokenize Tally source code"""
        tokens = tokenize(text)
        if self.debug:
            print(f"[tokenize] {len(tokens)} tokens: {' '.join(str(t) for t in tokens)}")
        return tokens

    def parse_tokens(self, tokens: List[Token]) -> ASTNode:
        """Parse an already tokenized program"""
        program = self.grammar.parse_block(TokenStream(tokens))
        if self.debug:
            print(f"[parse] {len(program.children)} statements")
        return program

    def parse_string(self, text: str) -> ASTNode:
        """Parse Tally source code from string"""
        return self.parse_tokens(self.tokenize(text))

    def parse_file(self, filepath: str) -> ASTNode:
        """Parse a Tally source file"""
        with open(filepath, 'r', encoding='utf-8') as f:
            content = f.read()
        return self.parse_string(content)


# Factory functions for creating parsers
def create_parser(debug: bool = False) -> TallyParser:
    """Create a Tally parser"""
    return TallyParser(debug=debug)


def create_debug_parser() -> TallyParser:
    """Create a Tally parser with debug enabled"""
    return TallyParser(debug=True)


# Utility functions for working with the AST
def find_nodes_by_type(ast: ASTNode, node_type: str) -> List[ASTNode]:
    """Find all nodes of a specific type in the AST"""
    result = []

    def search(node: ASTNode):
        if node.type == node_type:
            result.append(node)
        for child in node.children:
            search(child)

    search(ast)
    return result


def pretty_print_ast(ast: ASTNode, indent: int = 0) -> str:
    """Pretty print an AST node for debugging"""
    result = "  " * indent + f"{ast.type}"
    if ast.value is not None:
        result += f"({repr(ast.value)})"
    result += "\n"

    for child in ast.children:
        result += pretty_print_ast(child, indent + 1)

    return result


def ast_to_dict(ast: ASTNode) -> Dict[str, Any]:
    """Convert AST to dictionary representation"""
    return {
        "type": ast.type,
        "value": ast.value,
        "children": [ast_to_dict(child) for child in ast.children]
    }
