"""
Recursive Descent Parser for the Rhai dialect

Structure:
- Lexer: Token stream from source
- Parser: Recursive descent statements, precedence climbing for binary
  operators, dedicated methods for unary/postfix/primary levels
- AST: lark Tree/Token nodes; every node that can fail at runtime carries
  its source position (Tree.meta or Token line/column)

Function definitions are hoisted out of the statement list into
``Parser.functions`` since they are visible from anywhere in the program.
"""

from typing import Dict, List, Optional, Set, Tuple

from lark import Token, Tree

from .errors import ErrorParsing, LexError, LexErrorKind, ParseErrorType, Position
from .lexer import Lexer
from .token_types import ASSIGN_OPS, TT, Tok
from .tree import make_token, make_tree, tree_label

I64_MAX = 2**63 - 1

# ============================================================================
# Parser
# ============================================================================

# Binary operators: token type -> (precedence, tree label, right associative)
BINARY_OPS: Dict[TT, Tuple[int, str, bool]] = {
    TT.NULLISH: (1, 'nullish', False),
    TT.OR: (2, 'or', False),
    TT.AND: (3, 'and', False),
    TT.PIPE: (4, 'binop', False),
    TT.CARET: (5, 'binop', False),
    TT.AMP: (6, 'binop', False),
    TT.EQ: (7, 'binop', False),
    TT.NEQ: (7, 'binop', False),
    TT.LT: (8, 'binop', False),
    TT.LTE: (8, 'binop', False),
    TT.GT: (8, 'binop', False),
    TT.GTE: (8, 'binop', False),
    TT.IN: (8, 'binop', False),
    TT.RANGE: (9, 'range', False),
    TT.RANGEINCL: (9, 'range_incl', False),
    TT.SHL: (10, 'binop', False),
    TT.SHR: (10, 'binop', False),
    TT.PLUS: (11, 'binop', False),
    TT.MINUS: (11, 'binop', False),
    TT.STAR: (12, 'binop', False),
    TT.SLASH: (12, 'binop', False),
    TT.MOD: (12, 'binop', False),
    TT.POW: (13, 'binop', True),
}

# Statements that end in a block and need no terminating semicolon
BLOCK_STATEMENTS = {'if', 'while', 'loop', 'for', 'try', 'block'}

ASSIGNABLE = {'prop', 'index'}


class Parser:
    """
    Recursive descent parser for the Rhai dialect.

    Expression precedence (lowest to highest):
    1. nullish (??)
    2. or (||)
    3. and (&&)
    4-6. bitwise (| ^ &)
    7. equality (== !=)
    8. comparison (< <= > >= in)
    9. range (.. ..=)
    10. shift (<< >>)
    11. add (+ -)
    12. mul (* / %)
    13. pow (**), right associative
    14. unary (- + !)
    15. postfix (.prop, .method(args), [index], ?. ?[)
    16. primary (literals, identifiers, calls, closures, if, blocks)
    """

    def __init__(self, tokens: List[Tok], max_expr_depth: int = 64):
        self.tokens = tokens
        self.pos = 0
        self.current = tokens[0] if tokens else Tok(TT.EOF, None, 0, 0)
        self.functions: List[Tree] = []
        self._fn_keys: Set[Tuple[str, int]] = set()
        self.loop_depth = 0
        self.fn_depth = 0
        self.block_depth = 0
        self.expr_depth = 0
        self.max_expr_depth = max_expr_depth

    # ========================================================================
    # Token Navigation
    # ========================================================================

    def peek(self, offset: int = 0) -> Tok:
        idx = self.pos + offset
        if idx < len(self.tokens):
            return self.tokens[idx]
        return self.tokens[-1]

    def advance(self) -> Tok:
        prev = self.current
        if self.pos < len(self.tokens) - 1:
            self.pos += 1
        self.current = self.tokens[self.pos]
        return prev

    def check(self, *types: TT) -> bool:
        return self.current.type in types

    def match(self, *types: TT) -> bool:
        if self.check(*types):
            self.advance()
            return True
        return False

    def expect(self, token_type: TT, symbol: str, description: str = "") -> Tok:
        """Consume token of expected type or raise MissingToken"""
        if not self.check(token_type):
            if self.check(TT.EOF) and not description:
                raise self.error(ParseErrorType.UNEXPECTED_EOF)
            raise self.error(ParseErrorType.MISSING_TOKEN, symbol, description)
        return self.advance()

    def expect_ident(self, kind: ParseErrorType = ParseErrorType.VARIABLE_EXPECTED) -> Tok:
        if self.check(TT.IDENT):
            return self.advance()
        if self.check(TT.RESERVED):
            raise self.error(ParseErrorType.RESERVED, self.current.value)
        raise self.error(kind)

    def error(self, kind: ParseErrorType, *args, tok: Optional[Tok] = None) -> ErrorParsing:
        tok = tok or self.current
        return ErrorParsing(kind, *args, position=Position(tok.line, tok.column))

    def unexpected(self) -> ErrorParsing:
        tok = self.current
        if tok.type == TT.EOF:
            return self.error(ParseErrorType.UNEXPECTED_EOF)
        if tok.type == TT.RESERVED:
            return self.error(ParseErrorType.RESERVED, tok.value)
        return LexError(LexErrorKind.UNEXPECTED_INPUT, _token_text(tok), position=Position(tok.line, tok.column))

    # ========================================================================
    # Top-Level Parsing
    # ========================================================================

    def parse(self) -> Tree:
        """Parse entire program"""
        start = self.current
        stmts = self.parse_statements(TT.EOF)
        return make_tree('program', stmts, start)

    def parse_statements(self, terminator: TT) -> List[Tree]:
        """Parse statements up to ``terminator`` (not consumed)."""
        stmts: List[Tree] = []
        # a trailing ';' discards the last value
        discarded = False

        while not self.check(terminator):
            if self.match(TT.SEMI):
                continue

            if self.check(TT.EOF):
                raise self.error(ParseErrorType.MISSING_TOKEN, "}", "to end this statement block")

            stmt = self.parse_statement()
            if stmt is None:
                continue
            stmts.append(stmt)
            discarded = False

            if tree_label(stmt) in BLOCK_STATEMENTS or self.check(terminator):
                continue
            if not self.match(TT.SEMI):
                raise self.error(ParseErrorType.MISSING_TOKEN, ";", "to terminate this statement")
            discarded = True

        if discarded:
            stmts.append(make_tree('unit', [], self.current))
        return stmts

    def parse_statement(self) -> Optional[Tree]:
        tok = self.current
        match tok.type:
            case TT.LET | TT.CONST:
                return self.parse_let_stmt()
            case TT.FN | TT.PRIVATE:
                self.parse_fn_def()
                return None
            case TT.IF:
                return self.parse_if_expr()
            case TT.WHILE:
                return self.parse_while_stmt()
            case TT.LOOP:
                return self.parse_loop_stmt()
            case TT.DO:
                return self.parse_do_stmt()
            case TT.FOR:
                return self.parse_for_stmt()
            case TT.BREAK | TT.CONTINUE:
                return self.parse_break_stmt()
            case TT.RETURN | TT.THROW:
                return self.parse_return_stmt()
            case TT.TRY:
                return self.parse_try_stmt()
            case TT.IMPORT:
                return self.parse_import_stmt()
            case TT.EXPORT:
                return self.parse_export_stmt()
            case TT.LBRACE:
                return self.parse_block()
            case _:
                return self.parse_expr_stmt()

    def parse_let_stmt(self) -> Tree:
        kw = self.advance()
        name = self.expect_ident()
        label = 'const' if kw.type == TT.CONST else 'let'

        if self.match(TT.ASSIGN):
            value = self.parse_expr()
        elif kw.type == TT.CONST:
            raise self.error(ParseErrorType.MISSING_TOKEN, "=", "to define a constant")
        else:
            value = make_tree('unit', [], name)

        return make_tree(label, [make_token('IDENT', name), value], kw)

    def parse_fn_def(self) -> None:
        """[private] fn name(params) { body }, global level only"""
        start = self.current
        private = self.match(TT.PRIVATE)

        if self.block_depth or self.fn_depth:
            raise self.error(ParseErrorType.WRONG_FN_DEFINITION, tok=start)

        self.expect(TT.FN, "fn")
        if not self.check(TT.IDENT):
            if self.check(TT.RESERVED):
                raise self.error(ParseErrorType.RESERVED, self.current.value)
            raise self.error(ParseErrorType.FN_MISSING_NAME)
        name = self.advance()

        if not self.match(TT.LPAR):
            raise self.error(ParseErrorType.FN_MISSING_PARAMS, name.value)

        params: List[Token] = []
        seen: Set[str] = set()
        while not self.check(TT.RPAR):
            param = self.expect_ident()
            if param.value in seen:
                raise self.error(ParseErrorType.FN_DUPLICATED_PARAM, name.value, param.value, tok=param)
            seen.add(param.value)
            params.append(make_token('IDENT', param))
            if not self.match(TT.COMMA):
                break
        self.expect(TT.RPAR, ")", "to close the parameters list of function '%s'" % name.value)

        key = (name.value, len(params))
        if key in self._fn_keys:
            raise self.error(ParseErrorType.FN_DUPLICATED_DEFINITION, name.value, len(params), tok=name)
        self._fn_keys.add(key)

        if not self.check(TT.LBRACE):
            raise self.error(ParseErrorType.FN_MISSING_BODY, name.value)

        saved_loop = self.loop_depth
        self.loop_depth = 0
        self.fn_depth += 1
        try:
            body = self.parse_block()
        finally:
            self.fn_depth -= 1
            self.loop_depth = saved_loop

        children = [make_token('IDENT', name), make_tree('params', params, name), body]
        if private:
            children.append(Token('PRIVATE', 'private'))
        self.functions.append(make_tree('fndef', children, start))

    def parse_if_expr(self) -> Tree:
        """if cond { } [else if ... | else { }]"""
        kw = self.expect(TT.IF, "if")
        cond = self.parse_expr()
        body = self.parse_block()
        children = [cond, body]

        if self.match(TT.ELSE):
            if self.check(TT.IF):
                children.append(self.parse_if_expr())
            else:
                children.append(self.parse_block())

        return make_tree('if', children, kw)

    def parse_while_stmt(self) -> Tree:
        kw = self.advance()
        cond = self.parse_expr()
        body = self.parse_loop_body()
        return make_tree('while', [cond, body], kw)

    def parse_loop_stmt(self) -> Tree:
        kw = self.advance()
        body = self.parse_loop_body()
        return make_tree('loop', [body], kw)

    def parse_do_stmt(self) -> Tree:
        """do { } while|until cond"""
        kw = self.advance()
        body = self.parse_loop_body()
        if self.check(TT.WHILE, TT.UNTIL):
            mode = self.advance()
        else:
            raise self.error(ParseErrorType.MISSING_TOKEN, "while", "for the do statement")
        cond = self.parse_expr()
        return make_tree('do', [body, Token(mode.type.name, mode.value), cond], kw)

    def parse_for_stmt(self) -> Tree:
        """for x in expr { } | for (x, i) in expr { }"""
        kw = self.advance()
        names: List[Token] = []

        if self.match(TT.LPAR):
            names.append(make_token('IDENT', self.expect_ident()))
            self.expect(TT.COMMA, ",", "after the iteration variable name")
            names.append(make_token('IDENT', self.expect_ident()))
            self.expect(TT.RPAR, ")", "to close the iteration variable names")
        else:
            names.append(make_token('IDENT', self.expect_ident()))

        if len(names) == 2 and names[0].value == names[1].value:
            raise self.error(ParseErrorType.DUPLICATED_VARIABLE, names[0].value)

        self.expect(TT.IN, "in", "after the iteration variable")
        iterable = self.parse_expr()
        body = self.parse_loop_body()
        return make_tree('for', [make_tree('for_vars', names, kw), iterable, body], kw)

    def parse_loop_body(self) -> Tree:
        self.loop_depth += 1
        try:
            return self.parse_block()
        finally:
            self.loop_depth -= 1

    def parse_break_stmt(self) -> Tree:
        kw = self.advance()
        if not self.loop_depth:
            raise self.error(ParseErrorType.LOOP_BREAK, tok=kw)

        if kw.type == TT.CONTINUE:
            return make_tree('continue', [], kw)

        children = [] if self.check(TT.SEMI, TT.RBRACE, TT.EOF) else [self.parse_expr()]
        return make_tree('break', children, kw)

    def parse_return_stmt(self) -> Tree:
        kw = self.advance()
        label = 'return' if kw.type == TT.RETURN else 'throw'
        children = [] if self.check(TT.SEMI, TT.RBRACE, TT.EOF) else [self.parse_expr()]
        return make_tree(label, children, kw)

    def parse_try_stmt(self) -> Tree:
        kw = self.advance()
        body = self.parse_block()
        self.expect(TT.CATCH, "catch", "for the 'try' statement")

        catch_vars: List[Token] = []
        if self.match(TT.LPAR):
            catch_vars.append(make_token('IDENT', self.expect_ident()))
            self.expect(TT.RPAR, ")", "to enclose the catch variable")

        handler = self.parse_block()
        return make_tree('try', [body, make_tree('catch_var', catch_vars, kw), handler], kw)

    def parse_import_stmt(self) -> Tree:
        """import "path" [as name]"""
        kw = self.advance()
        path = self.parse_expr()
        alias: List[Token] = []
        if self.match(TT.AS):
            alias.append(make_token('IDENT', self.expect_ident()))
        return make_tree('import', [path, make_tree('alias', alias, kw)], kw)

    def parse_export_stmt(self) -> Tree:
        """export let|const ... | export name [as alias]"""
        kw = self.advance()
        if self.block_depth or self.fn_depth:
            raise self.error(ParseErrorType.WRONG_EXPORT, tok=kw)

        if self.check(TT.LET, TT.CONST):
            decl = self.parse_let_stmt()
            return make_tree('export', [decl], kw)

        name = self.expect_ident()
        alias = name
        if self.match(TT.AS):
            alias = self.expect_ident()
        return make_tree('export_var', [make_token('IDENT', name), make_token('IDENT', alias)], kw)

    def parse_block(self) -> Tree:
        lbrace = self.expect(TT.LBRACE, "{", "to start a statement block")
        self.block_depth += 1
        try:
            stmts = self.parse_statements(TT.RBRACE)
        finally:
            self.block_depth -= 1
        self.expect(TT.RBRACE, "}", "to end this statement block")
        return make_tree('block', stmts, lbrace)

    def parse_expr_stmt(self) -> Tree:
        start = self.current
        expr = self.parse_expr()

        if self.current.type in ASSIGN_OPS:
            op = self.advance()
            if not _is_assignable(expr):
                raise self.error(ParseErrorType.ASSIGNMENT_TO_INVALID_LHS, "", tok=start)
            value = self.parse_expr()
            return make_tree('assign', [expr, Token('OP', op.value), value], op)

        return make_tree('expr_stmt', [expr], start)

    # ========================================================================
    # Expressions
    # ========================================================================

    def parse_expr(self) -> Tree:
        self.expr_depth += 1
        try:
            if self.expr_depth > self.max_expr_depth:
                raise self.error(ParseErrorType.EXPR_TOO_DEEP)
            return self.parse_binary_expr(0)
        finally:
            self.expr_depth -= 1

    def parse_binary_expr(self, min_prec: int) -> Tree:
        left = self.parse_unary_expr()

        while self.current.type in BINARY_OPS:
            prec, label, right_assoc = BINARY_OPS[self.current.type]
            if prec < min_prec:
                break
            op = self.advance()
            right = self.parse_binary_expr(prec if right_assoc else prec + 1)

            if label == 'binop':
                left = make_tree('binop', [left, Token('OP', op.value), right], op)
            else:
                left = make_tree(label, [left, right], op)

        return left

    def parse_unary_expr(self) -> Tree:
        """Parse unary operators: -expr, +expr, !expr"""
        if self.check(TT.MINUS, TT.PLUS, TT.NEG):
            op = self.advance()
            operand = self.parse_unary_expr()
            if op.type == TT.PLUS:
                return operand
            return make_tree('unary', [Token('OP', op.value), operand], op)

        return self.parse_postfix_expr()

    def parse_postfix_expr(self) -> Tree:
        """
        Parse postfix chains:
        - property access: expr.prop / expr?.prop
        - method calls: expr.name(args) / expr?.name(args)
        - indexing: expr[index] / expr?[index]
        """
        expr = self.parse_primary_expr()

        while True:
            if self.check(TT.DOT, TT.QDOT):
                dot = self.advance()
                safe = 'q' if dot.type == TT.QDOT else ''
                if not self.check(TT.IDENT):
                    if self.check(TT.RESERVED):
                        raise self.error(ParseErrorType.RESERVED, self.current.value)
                    raise self.error(ParseErrorType.PROPERTY_EXPECTED)
                name = self.advance()
                if self.match(TT.LPAR):
                    args = self.parse_arg_list(name.value)
                    expr = make_tree(safe + 'method', [expr, make_token('IDENT', name), args], name)
                else:
                    expr = make_tree(safe + 'prop', [expr, make_token('IDENT', name)], name)
                continue

            if self.check(TT.LSQB, TT.QLSQB):
                bracket = self.advance()
                if self.check(TT.RSQB):
                    raise self.error(ParseErrorType.MALFORMED_INDEX_EXPR, "expecting an index expression")
                index = self.parse_expr()
                self.expect(TT.RSQB, "]", "for a matching [ in this index expression")
                label = 'qindex' if bracket.type == TT.QLSQB else 'index'
                expr = make_tree(label, [expr, index], bracket)
                continue

            return expr

    def parse_primary_expr(self) -> Tree:
        tok = self.current

        match tok.type:
            case TT.INT:
                self.advance()
                if tok.value > I64_MAX:
                    raise LexError(LexErrorKind.MALFORMED_NUMBER, str(tok.value), position=Position(tok.line, tok.column))
                return make_token('INT', tok)
            case TT.FLOAT:
                self.advance()
                return make_token('FLOAT', tok)
            case TT.STRING:
                self.advance()
                return make_token('STRING', tok)
            case TT.CHAR:
                self.advance()
                return make_token('CHAR', tok)
            case TT.TEMPLATE:
                self.advance()
                return self.parse_template(tok)
            case TT.TRUE | TT.FALSE:
                self.advance()
                return make_token('BOOL', tok, tok.type == TT.TRUE)
            case TT.THIS:
                self.advance()
                return make_token('THIS', tok)
            case TT.LPAR:
                self.advance()
                if self.match(TT.RPAR):
                    return make_tree('unit', [], tok)
                expr = self.parse_expr()
                self.expect(TT.RPAR, ")", "for a matching ( in this expression")
                return expr
            case TT.LSQB:
                return self.parse_array_literal()
            case TT.MAPSTART:
                return self.parse_map_literal()
            case TT.PIPE | TT.OR:
                return self.parse_closure()
            case TT.IF:
                return self.parse_if_expr()
            case TT.LBRACE:
                return self.parse_block()
            case TT.IDENT:
                return self.parse_identifier_expr()
            case TT.FN | TT.PRIVATE:
                raise self.error(ParseErrorType.WRONG_FN_DEFINITION)
            case TT.EXPORT:
                raise self.error(ParseErrorType.WRONG_EXPORT)
            case _:
                raise self.unexpected()

    def parse_identifier_expr(self) -> Tree:
        """name | name(args) | ns::name | ns::name(args)"""
        name = self.advance()

        if self.check(TT.DCOLON):
            path = [make_token('IDENT', name)]
            while self.match(TT.DCOLON):
                path.append(make_token('IDENT', self.expect_ident(ParseErrorType.VARIABLE_EXPECTED)))
            target = path.pop()
            namespace = make_tree('path', path, name)
            if self.match(TT.LPAR):
                args = self.parse_arg_list(target.value)
                return make_tree('ns_call', [namespace, target, args], name)
            return make_tree('ns_var', [namespace, target], name)

        if self.match(TT.LPAR):
            args = self.parse_arg_list(name.value)
            return make_tree('call', [make_token('IDENT', name), args], name)

        return make_token('IDENT', name)

    def parse_arg_list(self, fn_name: str) -> Tree:
        """Arguments after an opening paren, through the closing paren"""
        start = self.current
        args: List[Tree] = []

        while not self.check(TT.RPAR):
            if self.check(TT.EOF):
                raise self.error(ParseErrorType.MISSING_TOKEN, ")", "to close the arguments list of this function call")
            args.append(self.parse_expr())
            if not self.match(TT.COMMA):
                break

        if not self.check(TT.RPAR):
            raise self.error(ParseErrorType.MISSING_TOKEN, ")", "to close the arguments list of this function call")
        self.advance()
        return make_tree('args', args, start)

    def parse_array_literal(self) -> Tree:
        start = self.advance()
        items: List[Tree] = []

        while not self.check(TT.RSQB):
            items.append(self.parse_expr())
            if not self.match(TT.COMMA):
                break

        self.expect(TT.RSQB, "]", "to end this array literal")
        return make_tree('array', items, start)

    def parse_map_literal(self) -> Tree:
        start = self.advance()
        pairs: List[Tree] = []
        seen: Set[str] = set()

        while not self.check(TT.RBRACE):
            if self.check(TT.IDENT, TT.STRING):
                key = self.advance()
            elif self.check(TT.EOF):
                raise self.error(ParseErrorType.MISSING_TOKEN, "}", "to end this object map literal")
            elif self.check(TT.RESERVED):
                raise self.error(ParseErrorType.RESERVED, self.current.value)
            else:
                raise self.error(ParseErrorType.PROPERTY_EXPECTED)

            if key.value in seen:
                raise self.error(ParseErrorType.DUPLICATED_PROPERTY, key.value, tok=key)
            seen.add(key.value)

            self.expect(TT.COLON, ":", "to follow the property '%s' in this object map literal" % key.value)
            value = self.parse_expr()
            pairs.append(make_tree('pair', [make_token('KEY', key), value], key))

            if not self.match(TT.COMMA):
                break

        self.expect(TT.RBRACE, "}", "to end this object map literal")
        return make_tree('map', pairs, start)

    def parse_closure(self) -> Tree:
        """|a, b| expr or || expr"""
        start = self.advance()
        params: List[Token] = []

        if start.type == TT.PIPE:
            seen: Set[str] = set()
            while not self.check(TT.PIPE):
                param = self.expect_ident()
                if param.value in seen:
                    raise self.error(ParseErrorType.FN_DUPLICATED_PARAM, "anonymous function", param.value, tok=param)
                seen.add(param.value)
                params.append(make_token('IDENT', param))
                if not self.match(TT.COMMA):
                    break
            self.expect(TT.PIPE, "|", "to close the parameters list of anonymous function")

        saved_loop = self.loop_depth
        self.loop_depth = 0
        self.fn_depth += 1
        try:
            body = self.parse_expr()
        finally:
            self.fn_depth -= 1
            self.loop_depth = saved_loop

        return make_tree('closure', [make_tree('params', params, start), body], start)

    def parse_template(self, tok: Tok) -> Tree:
        """Back-tick string: literal parts stay STRING tokens, ${...} parts parse in place"""
        parts: List[object] = []

        for part in tok.value:
            if part[0] == 'str':
                parts.append(Token('STRING', part[1], line=tok.line, column=tok.column))
                continue

            _, source, line, column = part
            sub = Parser(Lexer(source, line, column).tokenize(), self.max_expr_depth)
            if sub.check(TT.EOF):
                raise self.error(ParseErrorType.EXPR_EXPECTED, "${}", tok=tok)
            parts.append(sub.parse_expr())
            if not sub.check(TT.EOF):
                raise sub.unexpected()

        return make_tree('template', parts, tok)


def _is_assignable(expr) -> bool:
    label = tree_label(expr)
    if label is None:
        return getattr(expr, 'type', None) in ('IDENT', 'THIS')
    if label in ASSIGNABLE:
        return _is_assignable(expr.children[0])
    return False


def _token_text(tok: Tok) -> str:
    if tok.type == TT.STRING:
        return '"%s"' % tok.value
    return str(tok.value)


def parse_source(source: str, max_expr_depth: int = 64) -> Tuple[Tree, List[Tree]]:
    """Tokenize and parse, returning the statement tree and hoisted functions."""
    parser = Parser(Lexer(source).tokenize(), max_expr_depth)
    program = parser.parse()
    return program, parser.functions
