from __future__ import annotations
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Set, Tuple

from errors import FunctionRedefinitionError, UnboundFunctionError
from parser import Block, ForStatement, FuncDef, IfStatement, Program, SourceLocation, WhileStatement


@dataclass
class Function:
    name: str
    params: List[str]
    body: Block
    location: Optional[SourceLocation] = None

    @property
    def arity(self) -> int:
        return len(self.params)


@dataclass
class FunctionRegistry:
    """User functions keyed by (name, arity)."""

    reserved: Set[str] = field(default_factory=set)
    _functions: Dict[Tuple[str, int], Function] = field(default_factory=dict)

    def register(self, function: Function) -> None:
        key = (function.name, function.arity)
        if function.name in self.reserved:
            raise FunctionRedefinitionError(
                f"Function name '{function.name}' conflicts with built-in",
                location=function.location,
                rule="DEF",
            )
        if key in self._functions:
            previous = self._functions[key].location
            where = f" (first defined at line {previous.line})" if previous else ""
            raise FunctionRedefinitionError(
                f"Function {function.name}/{function.arity} is already defined{where}",
                location=function.location,
                rule="DEF",
            )
        self._functions[key] = function

    def lookup(self, name: str, arity: int) -> Function:
        function = self._functions.get((name, arity))
        if function is None:
            raise UnboundFunctionError(f"no such function: {name}/{arity}", rule="CALL")
        return function


def _iter_declarations(block: Block) -> Iterable[FuncDef]:
    for statement in block.statements:
        if isinstance(statement, FuncDef):
            yield statement
            yield from _iter_declarations(statement.body)
        elif isinstance(statement, IfStatement):
            yield from _iter_declarations(statement.then_block)
            for branch in statement.elifs:
                yield from _iter_declarations(branch.block)
            if statement.else_block is not None:
                yield from _iter_declarations(statement.else_block)
        elif isinstance(statement, (ForStatement, WhileStatement)):
            yield from _iter_declarations(statement.block)


def collect_functions(program: Program, registry: FunctionRegistry) -> FunctionRegistry:
    """Register every function declared anywhere in ``program``.

    Runs before evaluation so calls may precede declarations in the source.
    """
    for decl in _iter_declarations(program.block):
        registry.register(Function(name=decl.name, params=list(decl.params), body=decl.body, location=decl.location))
    return registry
