from __future__ import annotations
import json
import operator
import os
import re
import sys
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Callable, Deque, Dict, List, Optional

import numpy as np

import linalg
from environment import Environment
from errors import (
    AssertionFailedError,
    CallDepthError,
    IndexOutOfRangeError,
    IOFailureError,
    MavaRuntimeError,
    TypeMismatchError,
    UnboundFunctionError,
)
from functions import Function, FunctionRegistry, collect_functions
from lexer import Lexer, MavaError
from parser import (
    Assignment,
    BinaryOp,
    Block,
    CallExpression,
    Expression,
    ExpressionStatement,
    ForStatement,
    FuncDef,
    Identifier,
    IfStatement,
    IndexExpression,
    ListLiteral,
    Literal,
    Parser,
    Program,
    SourceLocation,
    Statement,
    TernaryExpression,
    UnaryOp,
    WhileStatement,
)
from values import NULL, VOID, Value, boolean, make_list, number, string


class ReturnSignal(Exception):
    """Carries a block's return value up to the enclosing call.

    A fresh instance is raised for every return, so nothing about a pending
    return is shared between calls or interpreters.
    """

    def __init__(self, value: Value) -> None:
        super().__init__(value)
        self.value = value


_ESCAPED_CHAR = re.compile(r"\\(.)")


def string_literal_text(raw: str) -> str:
    # Drop the quotes; a backslash keeps the next character literally, so
    # "\n" is the letter n and "\"" is a quote.
    return _ESCAPED_CHAR.sub(r"\1", raw[1:-1])


def _ieee(op: Callable[[Any, Any], Any], a: float, b: float) -> float:
    # numpy float64 arithmetic follows IEEE-754: x / 0 is +-inf or nan,
    # never an exception.
    with np.errstate(all="ignore"):
        return float(op(np.float64(a), np.float64(b)))


@dataclass
class Frame:
    name: str
    env: Environment
    frame_id: str
    call_location: Optional[SourceLocation]


@dataclass
class StateEntry:
    step_index: int
    state_id: str
    frame_id: Optional[str]
    source_location: Optional[SourceLocation]
    statement: Optional[str]
    env_snapshot: Optional[Dict[str, str]]
    rule: str
    extra: Dict[str, Any] = field(default_factory=dict)


# Outside verbose mode only the most recent steps are kept; tracebacks use
# frame_last_entry, which holds one entry per live frame.
STATE_HISTORY_LIMIT = 1000


class StateLogger:
    def __init__(self, verbose: bool) -> None:
        self.verbose = verbose
        self.entries: Deque[StateEntry] = deque(maxlen=None if verbose else STATE_HISTORY_LIMIT)
        self.next_state_index = 0
        self.frame_last_entry: Dict[str, StateEntry] = {}

    def record(
        self,
        *,
        frame: Optional[Frame],
        location: Optional[SourceLocation],
        rule: str,
        env_snapshot: Optional[Dict[str, str]] = None,
        extra: Optional[Dict[str, Any]] = None,
    ) -> StateEntry:
        step_index = self.next_state_index
        entry = StateEntry(
            step_index=step_index,
            state_id=f"s_{step_index:06d}",
            frame_id=frame.frame_id if frame else None,
            source_location=location,
            statement=location.statement if location else None,
            env_snapshot=env_snapshot,
            rule=rule,
            extra=extra or {},
        )
        self.entries.append(entry)
        if frame:
            self.frame_last_entry[frame.frame_id] = entry
        self.next_state_index += 1
        return entry

    def last_entry_for_frame(self, frame_id: str) -> Optional[StateEntry]:
        return self.frame_last_entry.get(frame_id)

    def forget_frame(self, frame_id: str) -> None:
        self.frame_last_entry.pop(frame_id, None)


BuiltinImpl = Callable[["Interpreter", List[Value], CallExpression, SourceLocation], Value]


@dataclass
class BuiltinFunction:
    name: str
    min_args: int
    max_args: int
    impl: BuiltinImpl


class Builtins:
    def __init__(self) -> None:
        self.table: Dict[str, BuiltinFunction] = {}
        self._register("print", 1, 1, self._print)
        self._register("println", 0, 1, self._println)
        self._register("input", 0, 1, self._input)
        self._register("assert", 1, 1, self._assert)
        self._register("size", 1, 1, self._size)
        self._register("transpose", 1, 1, self._transpose)
        self._register("rows", 1, 1, self._rows)
        self._register("columns", 1, 1, self._columns)
        self._register("determinant", 1, 1, self._determinant)
        self._register("matrixSum", 1, 1, self._matrix_sum)

    def _register(self, name: str, min_args: int, max_args: int, impl: BuiltinImpl) -> None:
        self.table[name] = BuiltinFunction(name=name, min_args=min_args, max_args=max_args, impl=impl)

    def names(self) -> set:
        return set(self.table)

    def invoke(
        self,
        interpreter: "Interpreter",
        name: str,
        args: List[Value],
        call: CallExpression,
        location: SourceLocation,
    ) -> Value:
        builtin = self.table.get(name)
        if builtin is None:
            raise UnboundFunctionError(f"no such function: {name}/{len(args)}", location=location, rule="CALL")
        supplied = len(args)
        if supplied < builtin.min_args or supplied > builtin.max_args:
            if builtin.min_args == builtin.max_args:
                expected = str(builtin.min_args)
            else:
                expected = f"{builtin.min_args} to {builtin.max_args}"
            raise UnboundFunctionError(
                f"{name} expects {expected} arguments but received {supplied}", location=location, rule=name
            )
        return builtin.impl(interpreter, args, call, location)

    def _print(self, interpreter: "Interpreter", args: List[Value], _: CallExpression, __: SourceLocation) -> Value:
        interpreter.write(args[0].render())
        return VOID

    def _println(self, interpreter: "Interpreter", args: List[Value], _: CallExpression, __: SourceLocation) -> Value:
        text = args[0].render() if args else ""
        interpreter.write(text + "\n")
        return VOID

    def _input(self, interpreter: "Interpreter", args: List[Value], _: CallExpression, location: SourceLocation) -> Value:
        if args:
            path = args[0]
            if not path.is_string():
                raise TypeMismatchError(f"input expects a file path string, got {path.type}", location=location, rule="input")
            try:
                with open(path.value, "r", encoding="utf-8") as handle:
                    text = handle.read()
            except OSError as exc:
                raise IOFailureError(f"Failed to read {path.value}: {exc}", location=location, rule="input") from exc
            interpreter.io_log.append({"event": "INPUT", "path": path.value, "text": text})
            return string(text)
        try:
            text = interpreter.input_provider()
        except EOFError as exc:
            raise IOFailureError("input reached end of stream", location=location, rule="input") from exc
        except OSError as exc:
            raise IOFailureError(f"Failed to read input: {exc}", location=location, rule="input") from exc
        interpreter.io_log.append({"event": "INPUT", "text": text})
        return string(text)

    def _assert(self, _: "Interpreter", args: List[Value], call: CallExpression, location: SourceLocation) -> Value:
        value = args[0]
        if not value.is_boolean():
            raise TypeMismatchError(f"assert expects a boolean, got {value.type}", location=location, rule="assert")
        if not value.value:
            source_text = call.arg_texts[0] if call.arg_texts else location.statement
            raise AssertionFailedError(source_text, location.line, location=location)
        return VOID

    def _size(self, _: "Interpreter", args: List[Value], __: CallExpression, location: SourceLocation) -> Value:
        value = args[0]
        if value.is_string() or value.is_list():
            return number(len(value.value))
        raise TypeMismatchError(f"size expects a string or list, got {value.type}", location=location, rule="size")

    def _transpose(self, _: "Interpreter", args: List[Value], __: CallExpression, ___: SourceLocation) -> Value:
        return linalg.transpose(args[0])

    def _rows(self, _: "Interpreter", args: List[Value], __: CallExpression, ___: SourceLocation) -> Value:
        return number(linalg.rows(args[0]))

    def _columns(self, _: "Interpreter", args: List[Value], __: CallExpression, ___: SourceLocation) -> Value:
        return number(linalg.columns(args[0]))

    def _determinant(self, _: "Interpreter", args: List[Value], __: CallExpression, ___: SourceLocation) -> Value:
        return number(linalg.determinant(args[0]))

    def _matrix_sum(self, _: "Interpreter", args: List[Value], __: CallExpression, ___: SourceLocation) -> Value:
        return number(linalg.matrix_sum(args[0]))


# Python frames, not Mava calls: one Mava call costs about ten of them.
DEFAULT_RECURSION_LIMIT = 12000


class Interpreter:
    def __init__(
        self,
        *,
        source: str,
        filename: str,
        verbose: bool = False,
        input_provider: Optional[Callable[[], str]] = None,
        output_sink: Optional[Callable[[str], None]] = None,
        recursion_limit: int = DEFAULT_RECURSION_LIMIT,
    ) -> None:
        self.source = source
        self._source_lines = source.splitlines()
        self.filename = filename if filename.startswith("<") else os.path.abspath(filename)
        self.verbose = verbose
        self.recursion_limit = recursion_limit
        self.input_provider = input_provider or input
        self.output_sink = output_sink or (lambda text: print(text, end="", flush=True))
        self.builtins = Builtins()
        self.functions = FunctionRegistry(reserved=self.builtins.names())
        self.global_env = Environment()
        self.logger = StateLogger(verbose=verbose)
        self.io_log: List[Dict[str, Any]] = []
        self.call_stack: List[Frame] = []
        self.frame_counter = 0
        self._binary_ops: Dict[str, Callable[[Value, Value], Value]] = {
            "+": self._add,
            "-": self._subtract,
            "*": self._multiply,
            "/": self._divide,
            "%": self._modulus,
            "^": self._power,
            "<": self._ordering(operator.lt),
            "<=": self._ordering(operator.le),
            ">": self._ordering(operator.gt),
            ">=": self._ordering(operator.ge),
            "==": lambda a, b: boolean(a.equals(b)),
            "!=": lambda a, b: boolean(not a.equals(b)),
            "&&": self._and,
            "||": self._or,
            "in": self._in,
        }

    def parse(self, source: Optional[str] = None) -> Program:
        text = self.source if source is None else source
        lexer = Lexer(text, self.filename)
        tokens = lexer.tokenize()
        parser = Parser(tokens, self.filename, text.splitlines())
        return parser.parse()

    def run(self) -> Value:
        program = self.parse()
        result = self.execute(program)
        self.call_stack.pop()
        return result

    def execute(self, program: Program) -> Value:
        """Register ``program``'s functions, then run it in the global frame.

        Returns the value of a top-level ``return``, else VOID. The top-level
        frame stays on the call stack so later programs (REPL input) share it.
        """
        collect_functions(program, self.functions)
        if not self.call_stack:
            self.call_stack.append(self._new_frame("<top-level>", self.global_env, None))
        previous_limit = sys.getrecursionlimit()
        if previous_limit < self.recursion_limit:
            sys.setrecursionlimit(self.recursion_limit)
        try:
            self._execute_body(program.block, self.global_env)
        except ReturnSignal as signal:
            return signal.value
        except MavaRuntimeError as error:
            if self.logger.entries:
                error.step_index = self.logger.entries[-1].step_index
            raise
        except MavaError:
            raise
        except RecursionError as exc:
            depth = len(self.call_stack) - 1
            innermost = self.call_stack[-1]
            deep = CallDepthError(
                f"maximum call depth exceeded after {depth} nested calls (innermost: {innermost.name})",
                location=innermost.call_location,
                rule="CALL",
            )
            if self.logger.entries:
                deep.step_index = self.logger.entries[-1].step_index
            raise deep from exc
        except Exception as exc:
            # Convert unexpected Python-level exceptions into MavaRuntimeError
            # so callers (REPL/CLI) can format them as tracebacks.
            loc = None
            if self.logger.entries:
                loc = self.logger.entries[-1].source_location
            wrapped = MavaRuntimeError(f"Internal interpreter error: {exc}", location=loc, rule="internal")
            if self.logger.entries:
                wrapped.step_index = self.logger.entries[-1].step_index
            raise wrapped from exc
        finally:
            sys.setrecursionlimit(previous_limit)
        return VOID

    def write(self, text: str) -> None:
        self.output_sink(text)
        self.io_log.append({"event": "PRINT", "text": text})

    # Statements

    def _execute_block(self, block: Block, env: Environment) -> Value:
        return self._execute_body(block, env.child())

    def _execute_body(self, block: Block, env: Environment) -> Value:
        execute_stmt = self._execute_statement
        for statement in block.statements:
            execute_stmt(statement, env)
        if block.return_expr is not None:
            self._log_step(rule="RETURN", location=block.return_expr.location, env=env)
            value = self._evaluate_expression(block.return_expr, env)
            raise ReturnSignal(value)
        return VOID

    def _execute_statement(self, statement: Statement, env: Environment) -> None:
        self._log_step(rule=statement.__class__.__name__, location=statement.location, env=env)
        try:
            if isinstance(statement, Assignment):
                value = self._evaluate_expression(statement.expression, env)
                if statement.indices:
                    self._assign_indexed(statement, value, env)
                else:
                    env.assign(statement.target, value)
                return
            if isinstance(statement, ExpressionStatement):
                self._evaluate_expression(statement.expression, env)
                return
            if isinstance(statement, IfStatement):
                self._execute_if(statement, env)
                return
            if isinstance(statement, WhileStatement):
                self._execute_while(statement, env)
                return
            if isinstance(statement, ForStatement):
                self._execute_for(statement, env)
                return
            if isinstance(statement, FuncDef):
                # Registered by collect_functions before execution started.
                return
            raise MavaRuntimeError("Unsupported statement", location=statement.location)
        except MavaRuntimeError as error:
            if error.location is None:
                error.location = statement.location
            raise

    def _assign_indexed(self, statement: Assignment, new_value: Value, env: Environment) -> None:
        target = env.resolve(statement.target)
        if not target.is_list():
            raise TypeMismatchError(
                f"Indexed assignment requires a list, '{statement.target}' is {target.type}", rule="ASSIGN"
            )
        eval_expr = self._evaluate_expression
        for node in statement.indices[:-1]:
            target = self._index_value(target, eval_expr(node, env))
            if not target.is_list():
                raise TypeMismatchError(f"Indexed assignment requires a list, got {target.type}", rule="ASSIGN")
        index = eval_expr(statement.indices[-1], env)
        if not index.is_number():
            raise TypeMismatchError(f"Index must be a number, got {index.type}", rule="ASSIGN")
        items: List[Value] = target.value
        i = self._checked_index(index, len(items))
        items[i] = new_value

    def _execute_if(self, statement: IfStatement, env: Environment) -> Value:
        eval_expr = self._evaluate_expression
        if self._condition(eval_expr(statement.condition, env), "if"):
            return self._execute_block(statement.then_block, env)
        for branch in statement.elifs:
            if self._condition(eval_expr(branch.condition, env), "else if"):
                return self._execute_block(branch.block, env)
        if statement.else_block:
            return self._execute_block(statement.else_block, env)
        return VOID

    def _execute_while(self, statement: WhileStatement, env: Environment) -> Value:
        eval_expr = self._evaluate_expression
        while self._condition(eval_expr(statement.condition, env), "while"):
            self._execute_block(statement.block, env)
        return VOID

    def _execute_for(self, statement: ForStatement, env: Environment) -> Value:
        eval_expr = self._evaluate_expression
        start = eval_expr(statement.start, env)
        stop = eval_expr(statement.stop, env)
        if not (start.is_number() and stop.is_number()):
            raise TypeMismatchError(f"for bounds must be numbers, got {start.type} and {stop.type}", rule="for")
        for i in range(start.as_int(), stop.as_int() + 1):
            env.assign(statement.counter, number(i))
            self._execute_block(statement.block, env)
        return VOID

    def _condition(self, value: Value, rule: str) -> bool:
        if not value.is_boolean():
            raise TypeMismatchError(f"{rule} condition must be a boolean, got {value.type}", rule=rule)
        return value.value

    # Expressions

    def _evaluate_expression(self, expression: Expression, env: Environment) -> Value:
        try:
            return self._evaluate(expression, env)
        except MavaRuntimeError as error:
            if error.location is None:
                error.location = expression.location
            raise

    def _evaluate(self, expression: Expression, env: Environment) -> Value:
        if isinstance(expression, Literal):
            kind = expression.literal_type
            if kind == "NUMBER":
                return number(expression.value)
            if kind == "STRING":
                return string(string_literal_text(expression.value))
            if kind == "BOOLEAN":
                return boolean(expression.value)
            return NULL
        if isinstance(expression, BinaryOp):
            # Both operands are always evaluated; && and || do not short-circuit.
            left = self._evaluate_expression(expression.left, env)
            right = self._evaluate_expression(expression.right, env)
            return self._binary_ops[expression.op](left, right)
        if isinstance(expression, Identifier):
            return env.resolve(expression.name)
        if isinstance(expression, CallExpression):
            return self._call(expression, env)
        if isinstance(expression, IndexExpression):
            value = self._evaluate_expression(expression.base, env)
            for node in expression.indices:
                value = self._index_value(value, self._evaluate_expression(node, env))
            return value
        if isinstance(expression, ListLiteral):
            return make_list([self._evaluate_expression(item, env) for item in expression.items])
        if isinstance(expression, UnaryOp):
            operand = self._evaluate_expression(expression.operand, env)
            if expression.op == "-" and operand.is_number():
                return number(-operand.value)
            if expression.op == "!" and operand.is_boolean():
                return boolean(not operand.value)
            raise TypeMismatchError(f"bad operand type for unary {expression.op}: {operand.type}", rule="UNARY")
        if isinstance(expression, TernaryExpression):
            condition = self._evaluate_expression(expression.condition, env)
            if self._condition(condition, "?:"):
                return self._evaluate_expression(expression.then_expr, env)
            return self._evaluate_expression(expression.else_expr, env)
        raise MavaRuntimeError("Unsupported expression", location=expression.location)

    def _index_value(self, target: Value, index: Value) -> Value:
        if not index.is_number() or not (target.is_list() or target.is_string()):
            raise TypeMismatchError(f"Problem resolving indexes on {target} at {index}", rule="INDEX")
        i = self._checked_index(index, len(target.value))
        if target.is_string():
            return string(target.value[i])
        return target.value[i]

    def _checked_index(self, index: Value, size: int) -> int:
        i = index.as_int()
        if i < 0 or i >= size:
            raise IndexOutOfRangeError(f"Index {i} out of range for length {size}", rule="INDEX")
        return i

    def _mismatch(self, op: str, left: Value, right: Value) -> TypeMismatchError:
        return TypeMismatchError(f"unsupported operand types for {op}: {left.type} and {right.type}", rule=op)

    def _add(self, left: Value, right: Value) -> Value:
        if left.is_number() and right.is_number():
            return number(left.value + right.value)
        if (left.is_matrix() and right.is_matrix()) or (left.is_vector() and right.is_vector()):
            return linalg.elementwise_add(left, right)
        if left.is_list():
            # Appends in place: every alias of the list sees the new element.
            left.value.append(right)
            return left
        if left.is_string():
            return string(left.value + right.render())
        if right.is_string():
            return string(left.render() + right.value)
        raise self._mismatch("+", left, right)

    def _subtract(self, left: Value, right: Value) -> Value:
        if left.is_number() and right.is_number():
            return number(left.value - right.value)
        if (left.is_matrix() and right.is_matrix()) or (left.is_vector() and right.is_vector()):
            return linalg.elementwise_subtract(left, right)
        if left.is_list():
            items: List[Value] = left.value
            for i, item in enumerate(items):
                if right.equals(item):
                    del items[i]
                    break
            return left
        raise self._mismatch("-", left, right)

    def _multiply(self, left: Value, right: Value) -> Value:
        if left.is_number() and right.is_number():
            return number(left.value * right.value)
        if left.is_string() and right.is_number():
            return string(left.value * max(right.as_int(), 0))
        if left.is_list() and right.is_number():
            return make_list(left.value * max(right.as_int(), 0))
        if left.is_list() and right.is_list():
            if left.is_vector() and right.is_vector():
                return linalg.elementwise_multiply(left, right)
            if (left.is_vector() or left.is_matrix()) and (right.is_vector() or right.is_matrix()):
                return linalg.matrix_multiply(left, right)
        raise self._mismatch("*", left, right)

    def _divide(self, left: Value, right: Value) -> Value:
        if left.is_number() and right.is_number():
            return number(_ieee(np.divide, left.value, right.value))
        raise self._mismatch("/", left, right)

    def _modulus(self, left: Value, right: Value) -> Value:
        if left.is_number() and right.is_number():
            # fmod: the result takes the sign of the dividend.
            return number(_ieee(np.fmod, left.value, right.value))
        raise self._mismatch("%", left, right)

    def _power(self, left: Value, right: Value) -> Value:
        if left.is_number() and right.is_number():
            return number(_ieee(np.power, left.value, right.value))
        if right.is_number() and (left.is_vector() or left.is_matrix()):
            return linalg.elementwise_power(left, right.value)
        raise self._mismatch("^", left, right)

    def _and(self, left: Value, right: Value) -> Value:
        if left.is_boolean() and right.is_boolean():
            return boolean(left.value and right.value)
        raise self._mismatch("&&", left, right)

    def _or(self, left: Value, right: Value) -> Value:
        if left.is_boolean() and right.is_boolean():
            return boolean(left.value or right.value)
        raise self._mismatch("||", left, right)

    def _in(self, left: Value, right: Value) -> Value:
        if right.is_list():
            return boolean(any(item.equals(left) for item in right.value))
        raise self._mismatch("in", left, right)

    def _ordering(self, test: Callable[[Any, Any], bool]) -> Callable[[Value, Value], Value]:
        def compare(left: Value, right: Value) -> Value:
            if left.is_number() and right.is_number():
                # Raw IEEE comparison: no tolerance, and NaN orders false.
                return boolean(test(left.value, right.value))
            return boolean(test(left.compare_to(right), 0))

        return compare

    # Calls

    def _call(self, expression: CallExpression, env: Environment) -> Value:
        name = expression.name
        argc = len(expression.args)
        location = expression.location
        if name in self.builtins.table:
            args = [self._evaluate_expression(arg, env) for arg in expression.args]
            extra: Dict[str, Any] = {"builtin": name}
            if self.verbose:
                extra["args"] = [a.render() for a in args]
            self._log_step(rule=name, location=location, env=env, extra=extra)
            return self.builtins.invoke(self, name, args, expression, location)
        function = self.functions.lookup(name, argc)
        args = [self._evaluate_expression(arg, env) for arg in expression.args]
        self._log_step(rule="CALL", location=location, env=env, extra={"function": f"{name}/{argc}"})
        return self._call_user_function(function, args, location)

    def _call_user_function(self, function: Function, args: List[Value], call_location: SourceLocation) -> Value:
        # Functions see the global frame, never the caller's locals.
        env = Environment(parent=self.global_env)
        for param, arg in zip(function.params, args):
            env.define(param, arg)
        frame = self._new_frame(function.name, env, call_location)
        self.call_stack.append(frame)
        try:
            self._execute_body(function.body, env)
            result = VOID
        except ReturnSignal as signal:
            result = signal.value
        # Frames of failed calls stay on the stack for the traceback.
        self.call_stack.pop()
        self.logger.forget_frame(frame.frame_id)
        return result

    def _new_frame(self, name: str, env: Environment, call_location: Optional[SourceLocation]) -> Frame:
        frame_id = f"f_{self.frame_counter:04d}"
        self.frame_counter += 1
        return Frame(name=name, env=env, frame_id=frame_id, call_location=call_location)

    def _log_step(
        self,
        *,
        rule: str,
        location: Optional[SourceLocation],
        env: Optional[Environment] = None,
        extra: Optional[Dict[str, Any]] = None,
    ) -> None:
        frame = self.call_stack[-1] if self.call_stack else None
        env_snapshot = env.snapshot() if (self.verbose and env is not None) else None
        self.logger.record(frame=frame, location=location, rule=rule, env_snapshot=env_snapshot, extra=extra)


@dataclass
class TracebackFrame:
    name: str
    location: Optional[SourceLocation]
    statement: Optional[str]
    state_entry: Optional[StateEntry]


class TracebackFormatter:
    """Renders a runtime error and the live call stack.

    Text output leads with the error category and source position, then lists
    the stack innermost last. Runs of recursive calls to the same function are
    collapsed to their outer and inner ends.
    """

    # Frames kept at each end of a collapsed recursive run.
    RUN_EDGE = 2

    def __init__(self, interpreter: Interpreter) -> None:
        self.interpreter = interpreter

    def build_frames(self) -> List[TracebackFrame]:
        frames: List[TracebackFrame] = []
        for frame in self.interpreter.call_stack:
            entry = self.interpreter.logger.last_entry_for_frame(frame.frame_id)
            location = entry.source_location if entry else frame.call_location
            frames.append(
                TracebackFrame(
                    name=frame.name,
                    location=location,
                    statement=entry.statement if entry else None,
                    state_entry=entry,
                )
            )
        return frames

    def _collapse(self, frames: List[TracebackFrame]) -> List[Any]:
        out: List[Any] = []
        i = 0
        while i < len(frames):
            j = i
            while j < len(frames) and frames[j].name == frames[i].name:
                j += 1
            run = frames[i:j]
            if len(run) > 2 * self.RUN_EDGE + 1:
                out.extend(run[: self.RUN_EDGE])
                out.append((run[0].name, len(run) - 2 * self.RUN_EDGE))
                out.extend(run[-self.RUN_EDGE :])
            else:
                out.extend(run)
            i = j
        return out

    def format_text(self, error: MavaError, verbose: bool) -> str:
        category = getattr(error, "category", "runtime")
        message = getattr(error, "message", str(error))
        location = getattr(error, "location", None)
        lines = [f"error[{category}]: {message}"]
        if location:
            lines.append(f"  --> {location.file}:{location.line}:{location.column}")
        lines.append("call stack (innermost last):")
        for item in self._collapse(self.build_frames()):
            if isinstance(item, tuple):
                name, skipped = item
                lines.append(f"  ... {skipped} more calls to {name}")
                continue
            where = f"{item.location.file}:{item.location.line}" if item.location else "<unknown>"
            text = f"  {item.name} at {where}"
            if item.statement:
                text += f": {item.statement}"
            if item.state_entry:
                text += f"  [step {item.state_entry.step_index}]"
            lines.append(text)
            if verbose and item.state_entry and item.state_entry.env_snapshot:
                for key, val in item.state_entry.env_snapshot.items():
                    lines.append(f"      {key} = {val}")
        rule = getattr(error, "rule", None) or "runtime"
        lines.append(f"{error.__class__.__name__} (rule: {rule})")
        return "\n".join(lines)

    def to_json(self, error: MavaError) -> str:
        stack: List[Dict[str, Any]] = []
        for frame in self.build_frames():
            entry: Dict[str, Any] = {"name": frame.name, "location": _location_json(frame.location)}
            if frame.state_entry:
                entry["step_index"] = frame.state_entry.step_index
                entry["rule"] = frame.state_entry.rule
                if frame.state_entry.env_snapshot is not None:
                    entry["env"] = frame.state_entry.env_snapshot
            stack.append(entry)
        data = {
            "error": {
                "type": error.__class__.__name__,
                "category": getattr(error, "category", "runtime"),
                "message": getattr(error, "message", str(error)),
                "rule": getattr(error, "rule", None),
                "location": _location_json(getattr(error, "location", None)),
                "step_index": getattr(error, "step_index", None),
            },
            "call_stack": stack,
        }
        return json.dumps(data, indent=2)


def _location_json(location: Optional[SourceLocation]) -> Optional[Dict[str, Any]]:
    if location is None:
        return None
    return {
        "file": location.file,
        "line": location.line,
        "column": location.column,
        "statement": location.statement,
    }
