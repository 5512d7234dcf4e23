"""
Lexer for the Rhai dialect

Tokenizes script source into a stream of tokens.

Features:
- Single-pass tokenization
- Position tracking (line, column) of each token's first character
- Nested block comments
- Back-tick template strings with ${...} interpolation
"""

from typing import List, Tuple

from .errors import LexError, LexErrorKind, Position
from .token_types import TT, Tok

# ============================================================================
# Lexer Implementation
# ============================================================================

class Lexer:
    KEYWORDS = {
        'let': TT.LET,
        'const': TT.CONST,
        'fn': TT.FN,
        'private': TT.PRIVATE,
        'if': TT.IF,
        'else': TT.ELSE,
        'while': TT.WHILE,
        'loop': TT.LOOP,
        'do': TT.DO,
        'until': TT.UNTIL,
        'for': TT.FOR,
        'in': TT.IN,
        'break': TT.BREAK,
        'continue': TT.CONTINUE,
        'return': TT.RETURN,
        'throw': TT.THROW,
        'try': TT.TRY,
        'catch': TT.CATCH,
        'import': TT.IMPORT,
        'export': TT.EXPORT,
        'as': TT.AS,
        'this': TT.THIS,
        'true': TT.TRUE,
        'false': TT.FALSE,
    }

    RESERVED = {
        'var', 'static', 'goto', 'exit_loop', 'match', 'case', 'switch',
        'public', 'protected', 'new', 'use', 'with', 'module', 'package',
        'super', 'spawn', 'thread', 'go', 'sync', 'async', 'await', 'yield',
        'default', 'void', 'null', 'nil', 'global', 'shared', 'is',
    }

    # Operator mapping: longest matches first to handle prefixes correctly
    OPERATORS = [
        # Three-character operators
        ('**=', TT.POWEQ),
        ('<<=', TT.SHLEQ),
        ('>>=', TT.SHREQ),
        ('..=', TT.RANGEINCL),

        # Two-character operators
        ('#{', TT.MAPSTART),
        ('==', TT.EQ),
        ('!=', TT.NEQ),
        ('<=', TT.LTE),
        ('>=', TT.GTE),
        ('&&', TT.AND),
        ('||', TT.OR),
        ('??', TT.NULLISH),
        ('?.', TT.QDOT),
        ('?[', TT.QLSQB),
        ('::', TT.DCOLON),
        ('..', TT.RANGE),
        ('=>', TT.ARROW),
        ('+=', TT.PLUSEQ),
        ('-=', TT.MINUSEQ),
        ('*=', TT.STAREQ),
        ('/=', TT.SLASHEQ),
        ('%=', TT.MODEQ),
        ('&=', TT.AMPEQ),
        ('|=', TT.PIPEEQ),
        ('^=', TT.CARETEQ),
        ('**', TT.POW),
        ('<<', TT.SHL),
        ('>>', TT.SHR),

        # Single-character operators
        ('+', TT.PLUS),
        ('-', TT.MINUS),
        ('*', TT.STAR),
        ('/', TT.SLASH),
        ('%', TT.MOD),
        ('^', TT.CARET),
        ('<', TT.LT),
        ('>', TT.GT),
        ('!', TT.NEG),
        ('=', TT.ASSIGN),
        ('(', TT.LPAR),
        (')', TT.RPAR),
        ('[', TT.LSQB),
        (']', TT.RSQB),
        ('{', TT.LBRACE),
        ('}', TT.RBRACE),
        ('.', TT.DOT),
        (',', TT.COMMA),
        (':', TT.COLON),
        (';', TT.SEMI),
        ('&', TT.AMP),
        ('|', TT.PIPE),
    ]

    ESCAPES = {
        'n': '\n',
        't': '\t',
        'r': '\r',
        '\\': '\\',
        '"': '"',
        "'": "'",
        '0': '\0',
        '`': '`',
    }

    def __init__(self, source: str, line: int = 1, column: int = 1):
        self.source = source
        self.pos = 0
        self.line = line
        self.column = column
        self.tokens: List[Tok] = []
        self.start: Tuple[int, int] = (line, column)

    # ========================================================================
    # Main Tokenization
    # ========================================================================

    def tokenize(self) -> List[Tok]:
        """Tokenize entire source, return token list"""
        while True:
            self.skip_trivia()
            if self.pos >= len(self.source):
                break
            self.start = (self.line, self.column)
            self.scan_token()

        self.start = (self.line, self.column)
        self.emit(TT.EOF, None)
        return self.tokens

    def scan_token(self):
        ch = self.peek()

        if ch == '"':
            self.scan_string()
            return

        if ch == '`':
            self.scan_template()
            return

        if ch == "'":
            self.scan_char()
            return

        if ch.isdigit():
            self.scan_number()
            return

        if ch.isalpha() or ch == '_':
            self.scan_identifier()
            return

        self.scan_operator()

    # ========================================================================
    # Token Scanners
    # ========================================================================

    def scan_string(self):
        """Scan "..." literal; a raw newline terminates it with an error."""
        self.advance()
        value = ''

        while True:
            ch = self.peek()
            if self.pos >= len(self.source) or ch == '\n':
                raise self.error(LexErrorKind.UNTERMINATED_STRING)
            if ch == '"':
                self.advance()
                break
            if ch == '\\':
                if self.peek(1) == '\n':
                    # Line continuation: skip the newline and leading indentation
                    self.advance(2)
                    while self.peek() in (' ', '\t'):
                        self.advance()
                    continue
                value += self.scan_escape()
                continue
            value += self.advance()

        self.emit(TT.STRING, value)

    def scan_escape(self) -> str:
        self.advance()  # backslash
        ch = self.advance()

        if ch in self.ESCAPES:
            return self.ESCAPES[ch]

        widths = {'x': 2, 'u': 4, 'U': 8}
        if ch in widths:
            digits = self.advance(widths[ch])
            try:
                return chr(int(digits, 16))
            except ValueError:
                raise self.error(LexErrorKind.MALFORMED_ESCAPE_SEQUENCE, f"\\{ch}{digits}") from None

        raise self.error(LexErrorKind.MALFORMED_ESCAPE_SEQUENCE, f"\\{ch}")

    def scan_template(self):
        """Scan `...` into literal and ${expr} parts.

        Expression parts keep their source text and starting position so the
        parser can tokenize them in place.
        """
        self.advance()
        parts: List[tuple] = []
        text = ''

        while True:
            if self.pos >= len(self.source):
                raise self.error(LexErrorKind.UNTERMINATED_STRING)

            ch = self.peek()
            if ch == '`':
                self.advance()
                break

            if ch == '$' and self.peek(1) == '{':
                if text:
                    parts.append(('str', text))
                    text = ''
                self.advance(2)
                expr_line, expr_col = self.line, self.column
                expr = ''
                depth = 1
                while True:
                    if self.pos >= len(self.source):
                        raise self.error(LexErrorKind.UNTERMINATED_STRING)
                    c = self.peek()
                    if c == '{':
                        depth += 1
                    elif c == '}':
                        depth -= 1
                        if depth == 0:
                            self.advance()
                            break
                    expr += self.advance()
                parts.append(('expr', expr, expr_line, expr_col))
                continue

            text += self.advance()

        if text or not parts:
            parts.append(('str', text))

        self.emit(TT.TEMPLATE, parts)

    def scan_char(self):
        self.advance()
        if self.peek() == '\\':
            value = self.scan_escape()
        elif self.peek() in ("'", '\n', '\0'):
            raise self.error(LexErrorKind.MALFORMED_CHAR, "''")
        else:
            value = self.advance()

        if self.peek() != "'":
            bad = value
            while self.pos < len(self.source) and self.peek() not in ("'", '\n'):
                bad += self.advance()
            raise self.error(LexErrorKind.MALFORMED_CHAR, f"'{bad}'")

        self.advance()
        self.emit(TT.CHAR, value)

    def scan_number(self):
        """Scan integer (dec/hex/oct/bin) or float literal"""
        value = ''

        if self.peek() == '0' and self.peek(1) in ('x', 'o', 'b'):
            radix = {'x': 16, 'o': 8, 'b': 2}[self.peek(1)]
            prefix = self.advance(2)
            while self.peek().isalnum() or self.peek() == '_':
                value += self.advance()
            try:
                number = int(value.replace('_', ''), radix)
            except ValueError:
                raise self.error(LexErrorKind.MALFORMED_NUMBER, prefix + value) from None
            self.emit(TT.INT, number)
            return

        is_float = False
        while self.peek().isdigit() or self.peek() == '_':
            value += self.advance()

        # Decimal part; `1..5` is a range, not a float
        if self.peek() == '.' and self.peek(1).isdigit():
            is_float = True
            value += self.advance()
            while self.peek().isdigit() or self.peek() == '_':
                value += self.advance()

        # Scientific notation
        if self.peek() in ('e', 'E') and (self.peek(1).isdigit() or (self.peek(1) in '+-' and self.peek(2).isdigit())):
            is_float = True
            value += self.advance()
            if self.peek() in ('+', '-'):
                value += self.advance()
            while self.peek().isdigit():
                value += self.advance()

        if self.peek().isalpha() or value.endswith('_'):
            while self.peek().isalnum() or self.peek() == '_':
                value += self.advance()
            raise self.error(LexErrorKind.MALFORMED_NUMBER, value)

        if is_float:
            self.emit(TT.FLOAT, float(value.replace('_', '')))
        else:
            self.emit(TT.INT, int(value.replace('_', '')))

    def scan_identifier(self):
        """Scan identifier, keyword or reserved word"""
        value = ''

        while self.peek().isalnum() or self.peek() == '_':
            value += self.advance()

        if value in self.RESERVED:
            self.emit(TT.RESERVED, value)
            return

        token_type = self.KEYWORDS.get(value, TT.IDENT)
        self.emit(token_type, value)

    def scan_operator(self):
        """Scan operators and punctuation"""
        for op_str, op_type in self.OPERATORS:
            if self.source.startswith(op_str, self.pos):
                self.advance(len(op_str))
                self.emit(op_type, op_str)
                return

        raise self.error(LexErrorKind.UNEXPECTED_INPUT, self.peek())

    # ========================================================================
    # Utilities
    # ========================================================================

    def peek(self, offset: int = 0) -> str:
        """Look ahead at character"""
        idx = self.pos + offset
        if idx < len(self.source):
            return self.source[idx]
        return '\0'

    def advance(self, n: int = 1) -> str:
        """Consume n characters and return them as a string"""
        result = ''
        for _ in range(n):
            if self.pos >= len(self.source):
                break
            ch = self.source[self.pos]
            result += ch
            self.pos += 1
            if ch == '\n':
                self.line += 1
                self.column = 1
            else:
                self.column += 1
        return result

    def skip_trivia(self):
        """Skip whitespace, line comments and (nested) block comments"""
        while self.pos < len(self.source):
            ch = self.peek()
            if ch in (' ', '\t', '\r', '\n'):
                self.advance()
            elif ch == '/' and self.peek(1) == '/':
                while self.pos < len(self.source) and self.peek() != '\n':
                    self.advance()
            elif ch == '/' and self.peek(1) == '*':
                self.start = (self.line, self.column)
                self.advance(2)
                depth = 1
                while depth:
                    if self.pos >= len(self.source):
                        raise self.error(LexErrorKind.UNEXPECTED_INPUT, "/*")
                    if self.peek() == '/' and self.peek(1) == '*':
                        self.advance(2)
                        depth += 1
                    elif self.peek() == '*' and self.peek(1) == '/':
                        self.advance(2)
                        depth -= 1
                    else:
                        self.advance()
            else:
                return

    def emit(self, token_type: TT, value):
        line, column = self.start
        self.tokens.append(Tok(type=token_type, value=value, line=line, column=column))

    def error(self, kind: LexErrorKind, *args) -> LexError:
        line, column = self.start
        return LexError(kind, *args, position=Position(line, column))


def tokenize(source: str, line: int = 1, column: int = 1) -> List[Tok]:
    """Convenience function to tokenize source"""
    return Lexer(source, line, column).tokenize()
