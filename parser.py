from __future__ import annotations
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Union

from lexer import MavaParseError, Token


@dataclass
class SourceLocation:
    file: str
    line: int
    column: int
    statement: str


@dataclass
class Node:
    location: SourceLocation


class Statement(Node):
    pass


class Expression(Node):
    pass


@dataclass
class Block(Node):
    statements: List[Statement]
    return_expr: Optional[Expression]


@dataclass
class Program(Node):
    block: Block


@dataclass
class Assignment(Statement):
    target: str
    indices: List[Expression]
    expression: Expression


@dataclass
class ExpressionStatement(Statement):
    expression: Expression


@dataclass
class IfBranch:
    condition: Expression
    block: Block


@dataclass
class IfStatement(Statement):
    condition: Expression
    then_block: Block
    elifs: List[IfBranch]
    else_block: Optional[Block]


@dataclass
class WhileStatement(Statement):
    condition: Expression
    block: Block


@dataclass
class ForStatement(Statement):
    counter: str
    start: Expression
    stop: Expression
    block: Block


@dataclass
class FuncDef(Statement):
    name: str
    params: List[str]
    body: Block


@dataclass
class Literal(Expression):
    # NUMBER literals hold a float; STRING literals hold the raw token text.
    value: Union[float, bool, str, None]
    literal_type: str


@dataclass
class ListLiteral(Expression):
    items: List[Expression]


@dataclass
class IndexExpression(Expression):
    base: Expression
    indices: List[Expression]


@dataclass
class Identifier(Expression):
    name: str


@dataclass
class CallExpression(Expression):
    name: str
    args: List[Expression]
    # Token text of each argument, whitespace dropped (used by assert).
    arg_texts: List[str] = field(default_factory=list)


@dataclass
class UnaryOp(Expression):
    op: str
    operand: Expression


@dataclass
class BinaryOp(Expression):
    op: str
    left: Expression
    right: Expression


@dataclass
class TernaryExpression(Expression):
    condition: Expression
    then_expr: Expression
    else_expr: Expression


# Binary precedence levels, loosest first. "in" and the ternary sit above
# these and are parsed separately.
BINARY_LEVELS = (
    {"OR": "||"},
    {"AND": "&&"},
    {"EQ": "==", "NEQ": "!="},
    {"LT": "<", "LTE": "<=", "GT": ">", "GTE": ">="},
    {"PLUS": "+", "MINUS": "-"},
    {"STAR": "*", "SLASH": "/", "PERCENT": "%"},
)


class Parser:
    def __init__(self, tokens: List[Token], filename: str, source_lines: List[str]):
        self.tokens = tokens
        self.filename = filename
        self.source_lines = source_lines
        self.index = 0

    def parse(self) -> Program:
        first: Token = self._peek()
        block = self._parse_block_body(stop_tokens={"EOF"})
        self._consume("EOF")
        return Program(location=self._location_from_token(first), block=block)

    def _parse_block_body(self, stop_tokens: Iterable[str]) -> Block:
        start: Token = self._peek()
        statements: List[Statement] = []
        return_expr: Optional[Expression] = None
        while self._peek().type not in stop_tokens:
            if self._match("NEWLINE"):
                continue
            if self._peek().type == "RETURN":
                self._consume("RETURN")
                return_expr = self._parse_expression()
                self._consume_newlines()
                break
            statements.append(self._parse_statement())
            self._consume_newlines()
        if self._peek().type not in stop_tokens:
            token = self._peek()
            raise MavaParseError(
                f"Expected end of block after return but found {token.type} at {self.filename}:{token.line}:{token.column}"
            )
        return Block(location=self._location_from_token(start), statements=statements, return_expr=return_expr)

    def _parse_statement(self) -> Statement:
        token = self._peek()
        if token.type == "DEF":
            return self._parse_func()
        if token.type == "IF":
            return self._parse_if()
        if token.type == "WHILE":
            return self._parse_while()
        if token.type == "FOR":
            return self._parse_for()
        if token.type == "IDENT" and self._peek_next().type == "EQUALS":
            return self._parse_assignment()
        if self._looks_like_index_assignment():
            return self._parse_assignment()
        expr: Expression = self._parse_expression()
        return ExpressionStatement(location=expr.location, expression=expr)

    def _parse_assignment(self) -> Assignment:
        ident = self._consume("IDENT")
        indices: List[Expression] = []
        while self._match("LBRACKET"):
            indices.append(self._parse_expression())
            self._consume("RBRACKET")
        self._consume("EQUALS")
        expr = self._parse_expression()
        location: SourceLocation = self._location_from_token(ident)
        return Assignment(location=location, target=ident.value, indices=indices, expression=expr)

    def _parse_func(self) -> FuncDef:
        keyword = self._consume("DEF")
        name_token = self._consume("IDENT")
        self._consume("LPAREN")
        params: List[str] = []
        if self._peek().type != "RPAREN":
            while True:
                name_tok = self._consume("IDENT")
                if name_tok.value in params:
                    raise MavaParseError(
                        f"Duplicate parameter '{name_tok.value}' at {self.filename}:{name_tok.line}:{name_tok.column}"
                    )
                params.append(name_tok.value)
                if not self._match("COMMA"):
                    break
        self._consume("RPAREN")
        block: Block = self._parse_block()
        location: SourceLocation = self._location_from_token(keyword)
        return FuncDef(location=location, name=name_token.value, params=params, body=block)

    def _parse_if(self) -> IfStatement:
        keyword = self._consume("IF")
        condition: Expression = self._parse_expression()
        then_block: Block = self._parse_block()
        elifs: List[IfBranch] = []
        else_block: Optional[Block] = None
        while self._match_after_newlines("ELSE"):
            if self._match("IF"):
                cond: Expression = self._parse_expression()
                block: Block = self._parse_block()
                elifs.append(IfBranch(condition=cond, block=block))
                continue
            else_block = self._parse_block()
            break
        return IfStatement(
            location=self._location_from_token(keyword),
            condition=condition,
            then_block=then_block,
            elifs=elifs,
            else_block=else_block,
        )

    def _parse_while(self) -> WhileStatement:
        keyword = self._consume("WHILE")
        condition: Expression = self._parse_expression()
        block: Block = self._parse_block()
        return WhileStatement(location=self._location_from_token(keyword), condition=condition, block=block)

    def _parse_for(self) -> ForStatement:
        keyword = self._consume("FOR")
        counter = self._consume("IDENT")
        self._consume("EQUALS")
        start: Expression = self._parse_expression()
        self._consume("TO")
        stop: Expression = self._parse_expression()
        block: Block = self._parse_block()
        return ForStatement(
            location=self._location_from_token(keyword),
            counter=counter.value,
            start=start,
            stop=stop,
            block=block,
        )

    def _parse_block(self) -> Block:
        self._consume_newlines()
        opening = self._peek()
        if opening.type != "LBRACE":
            raise MavaParseError(
                f"Expected '{{' to start block but found {opening.type} at {self.filename}:{opening.line}:{opening.column}"
            )
        self._consume("LBRACE")
        block = self._parse_block_body(stop_tokens={"RBRACE"})
        self._consume("RBRACE")
        block.location = self._location_from_token(opening)
        return block

    def _parse_expression(self) -> Expression:
        return self._parse_in()

    def _parse_in(self) -> Expression:
        expr = self._parse_ternary()
        while self._peek().type == "IN":
            op_token = self._consume("IN")
            right = self._parse_ternary()
            expr = BinaryOp(location=self._location_from_token(op_token), op="in", left=expr, right=right)
        return expr

    def _parse_ternary(self) -> Expression:
        condition = self._parse_binary(0)
        if self._peek().type != "QUESTION":
            return condition
        question = self._consume("QUESTION")
        then_expr = self._parse_ternary()
        self._consume("COLON")
        else_expr = self._parse_ternary()
        return TernaryExpression(
            location=self._location_from_token(question),
            condition=condition,
            then_expr=then_expr,
            else_expr=else_expr,
        )

    def _parse_binary(self, level: int) -> Expression:
        if level == len(BINARY_LEVELS):
            return self._parse_power()
        operators = BINARY_LEVELS[level]
        expr = self._parse_binary(level + 1)
        while self._peek().type in operators:
            op_token = self._consume(self._peek().type)
            right = self._parse_binary(level + 1)
            expr = BinaryOp(
                location=self._location_from_token(op_token),
                op=operators[op_token.type],
                left=expr,
                right=right,
            )
        return expr

    def _parse_power(self) -> Expression:
        base = self._parse_unary()
        if self._peek().type != "CARET":
            return base
        caret = self._consume("CARET")
        # Right associative: 2 ^ 3 ^ 2 == 2 ^ 9
        exponent = self._parse_power()
        return BinaryOp(location=self._location_from_token(caret), op="^", left=base, right=exponent)

    def _parse_unary(self) -> Expression:
        token = self._peek()
        if token.type == "MINUS" or token.type == "BANG":
            self._consume(token.type)
            operand = self._parse_unary()
            return UnaryOp(location=self._location_from_token(token), op=token.value, operand=operand)
        return self._parse_postfix()

    def _parse_postfix(self) -> Expression:
        expr = self._parse_primary()
        if self._peek().type != "LBRACKET":
            return expr
        lbracket = self._peek()
        indices: List[Expression] = []
        while self._match("LBRACKET"):
            indices.append(self._parse_expression())
            self._consume("RBRACKET")
        return IndexExpression(location=self._location_from_token(lbracket), base=expr, indices=indices)

    def _parse_primary(self) -> Expression:
        token = self._peek()
        location: SourceLocation = self._location_from_token(token)
        if token.type == "NUMBER":
            self._consume("NUMBER")
            return Literal(location=location, value=float(token.value), literal_type="NUMBER")
        if token.type == "STRING":
            self._consume("STRING")
            return Literal(location=location, value=token.value, literal_type="STRING")
        if token.type == "TRUE" or token.type == "FALSE":
            self._consume(token.type)
            return Literal(location=location, value=token.type == "TRUE", literal_type="BOOLEAN")
        if token.type == "NULL":
            self._consume("NULL")
            return Literal(location=location, value=None, literal_type="NULL")
        if token.type == "LBRACKET":
            return self._parse_list_literal()
        if token.type == "IDENT":
            ident: Token = self._consume("IDENT")
            if self._match("LPAREN"):
                args: List[Expression] = []
                arg_texts: List[str] = []
                if self._peek().type != "RPAREN":
                    while True:
                        first = self.index
                        args.append(self._parse_expression())
                        arg_texts.append("".join(tok.value for tok in self.tokens[first:self.index]))
                        if not self._match("COMMA"):
                            break
                self._consume("RPAREN")
                return CallExpression(location=location, name=ident.value, args=args, arg_texts=arg_texts)
            return Identifier(location=location, name=ident.value)
        if token.type == "LPAREN":
            self._consume("LPAREN")
            expr: Expression = self._parse_expression()
            self._consume("RPAREN")
            return expr
        raise MavaParseError(
            f"Unexpected token {token.type} in expression at {self.filename}:{token.line}:{token.column}"
        )

    def _parse_list_literal(self) -> ListLiteral:
        lbracket = self._consume("LBRACKET")
        items: List[Expression] = []
        if self._peek().type != "RBRACKET":
            while True:
                items.append(self._parse_expression())
                if not self._match("COMMA"):
                    break
        self._consume("RBRACKET")
        return ListLiteral(location=self._location_from_token(lbracket), items=items)

    def _looks_like_index_assignment(self) -> bool:
        i = self.index
        tokens = self.tokens
        if i >= len(tokens) or tokens[i].type != "IDENT":
            return False
        i += 1
        if i >= len(tokens) or tokens[i].type != "LBRACKET":
            return False

        # Walk balanced bracket groups like a[1][2] to the token after them.
        while i < len(tokens) and tokens[i].type == "LBRACKET":
            depth = 0
            while i < len(tokens):
                tok = tokens[i]
                if tok.type == "LBRACKET":
                    depth += 1
                elif tok.type == "RBRACKET":
                    depth -= 1
                    if depth == 0:
                        i += 1
                        break
                elif tok.type == "EOF":
                    return False
                i += 1
            if depth != 0:
                return False
        return i < len(tokens) and tokens[i].type == "EQUALS"

    def _consume(self, token_type: str) -> Token:
        token = self._peek()
        if token.type != token_type:
            raise MavaParseError(
                f"Expected token {token_type} but found {token.type} at {self.filename}:{token.line}:{token.column}"
            )
        self.index += 1
        return token

    def _match(self, token_type: str) -> bool:
        if self._peek().type == token_type:
            self.index += 1
            return True
        return False

    def _match_after_newlines(self, token_type: str) -> bool:
        saved = self.index
        self._consume_newlines()
        if self._match(token_type):
            return True
        self.index = saved
        return False

    def _consume_newlines(self) -> None:
        while self._match("NEWLINE"):
            continue

    def _peek(self) -> Token:
        return self.tokens[self.index]

    def _peek_next(self) -> Token:
        return self.tokens[min(self.index + 1, len(self.tokens) - 1)]

    def _location_from_token(self, token: Token) -> SourceLocation:
        line_index = token.line - 1
        statement = ""
        if 0 <= line_index < len(self.source_lines):
            statement = self.source_lines[line_index].strip()
        return SourceLocation(file=self.filename, line=token.line, column=token.column, statement=statement)
