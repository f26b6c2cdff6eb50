"""Syntax tree shapes understood by the script interpreter.

Only the fragment emitted by the TorchScript serializer is modelled: enough
to declare classes and functions, bind names and call builtins.
"""
from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, List, Optional, Tuple


class Expression:
    pass


class Statement:
    pass


@dataclass
class Literal(Expression):
    value: Any


@dataclass
class Identifier(Expression):
    name: str


@dataclass
class ListExpr(Expression):
    items: List[Expression] = field(default_factory=list)


@dataclass
class TupleExpr(Expression):
    items: List[Expression] = field(default_factory=list)


@dataclass
class AttributeExpr(Expression):
    target: Expression
    member: str


@dataclass
class SubscriptExpr(Expression):
    target: Expression
    index: Expression


@dataclass
class CallExpr(Expression):
    target: Expression
    arguments: List[Expression] = field(default_factory=list)
    keywords: List[Tuple[str, Expression]] = field(default_factory=list)


@dataclass
class Pass(Statement):
    pass


@dataclass
class Return(Statement):
    expression: Expression


@dataclass
class FunctionDef(Statement):
    name: str
    parameters: List[str]
    body: List[Statement]


@dataclass
class ClassDef(Statement):
    name: str
    bases: List[str]
    body: List[Statement]


@dataclass
class VarDecl(Statement):
    name: str


@dataclass
class Assign(Statement):
    target: Expression
    expression: Expression


@dataclass
class If(Statement):
    condition: Expression
    then: List[Statement]
    orelse: List[Statement] = field(default_factory=list)


@dataclass
class CallStatement(Statement):
    call: CallExpr


@dataclass
class Import(Statement):
    modules: List[Tuple[str, Optional[str]]]


@dataclass
class Program:
    body: List[Statement]
    filename: str = ""


def dotted_name(expression: Expression) -> Optional[str]:
    """Returns 'a.b.c' for an identifier/attribute chain, None otherwise."""
    if isinstance(expression, Identifier):
        return expression.name
    if isinstance(expression, AttributeExpr):
        target = dotted_name(expression.target)
        if target is not None:
            return f"{target}.{expression.member}"
    return None
