from __future__ import annotations
import ast
from typing import List

from ..errors import UnsupportedExpression
from . import syntax as s


def parse_source(code: str, filename: str = "<archive>") -> s.Program:
    """Parses archive source into the interpreter's syntax tree."""
    try:
        tree = ast.parse(code, filename=filename)
    except SyntaxError as e:
        raise UnsupportedExpression(f"Cannot parse Python source '{filename}': {e.msg}.") from e
    return s.Program(body=_statements(tree.body), filename=filename)


def _statements(nodes: List[ast.stmt]) -> List[s.Statement]:
    return [_statement(n) for n in nodes]


def _statement(node: ast.stmt) -> s.Statement:
    if isinstance(node, ast.Pass):
        return s.Pass()
    if isinstance(node, ast.Return):
        value = _expression(node.value) if node.value is not None else s.Literal(None)
        return s.Return(value)
    if isinstance(node, ast.FunctionDef):
        args = node.args
        params = [a.arg for a in args.posonlyargs + args.args]
        return s.FunctionDef(node.name, params, _statements(node.body))
    if isinstance(node, ast.ClassDef):
        bases = [ast.unparse(b) for b in node.bases]
        return s.ClassDef(node.name, bases, _statements(node.body))
    if isinstance(node, ast.AnnAssign):
        if node.value is None:
            if not isinstance(node.target, ast.Name):
                raise UnsupportedExpression("Unsupported variable declaration.")
            return s.VarDecl(node.target.id)
        return s.Assign(_expression(node.target), _expression(node.value))
    if isinstance(node, ast.Assign):
        if len(node.targets) != 1:
            raise UnsupportedExpression("Chained assignment is not supported.")
        return s.Assign(_expression(node.targets[0]), _expression(node.value))
    if isinstance(node, ast.If):
        return s.If(_expression(node.test), _statements(node.body), _statements(node.orelse))
    if isinstance(node, ast.Expr):
        if isinstance(node.value, ast.Call):
            return s.CallStatement(_expression(node.value))
        if isinstance(node.value, ast.Constant) and isinstance(node.value.value, str):
            # docstring
            return s.Pass()
    if isinstance(node, ast.Import):
        return s.Import([(alias.name, alias.asname) for alias in node.names])
    raise UnsupportedExpression(f"Unsupported statement '{type(node).__name__}' at line {node.lineno}.")


def _expression(node: ast.expr) -> s.Expression:
    if isinstance(node, ast.Constant):
        return s.Literal(node.value)
    if isinstance(node, ast.Name):
        return s.Identifier(node.id)
    if isinstance(node, ast.List):
        return s.ListExpr([_expression(e) for e in node.elts])
    if isinstance(node, ast.Tuple):
        return s.TupleExpr([_expression(e) for e in node.elts])
    if isinstance(node, ast.Attribute):
        return s.AttributeExpr(_expression(node.value), node.attr)
    if isinstance(node, ast.Subscript):
        return s.SubscriptExpr(_expression(node.value), _expression(node.slice))
    if isinstance(node, ast.Call):
        keywords = []
        for keyword in node.keywords:
            if keyword.arg is None:
                raise UnsupportedExpression("Keyword argument unpacking is not supported.")
            keywords.append((keyword.arg, _expression(keyword.value)))
        return s.CallExpr(_expression(node.func), [_expression(a) for a in node.args], keywords)
    if isinstance(node, ast.UnaryOp) and isinstance(node.operand, ast.Constant):
        value = node.operand.value
        if isinstance(node.op, ast.USub) and isinstance(value, (int, float)):
            return s.Literal(-value)
        if isinstance(node.op, ast.UAdd) and isinstance(value, (int, float)):
            return s.Literal(value)
    raise UnsupportedExpression(f"Unsupported expression '{type(node).__name__}'.")
