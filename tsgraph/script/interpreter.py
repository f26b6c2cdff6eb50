from __future__ import annotations
import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from ..errors import ScriptError, SourceNotFound, UnknownSymbol, UnsupportedExpression
from ..runtime.builtins import Registry, TraceNode
from ..runtime.objects import (MISSING, ModuleObject, Namespace, TensorObject, TypeRef,
                               define_class, get_member, is_module_class, set_member)
from . import syntax as s
from .scope import PackageScope, Scope

logger = logging.getLogger(__name__)

# names that evaluate to a type reference when nothing else binds them
TYPE_NAMES = ('Tensor', 'int', 'float', 'bool', 'str', 'List', 'Optional', 'Dict', 'Tuple', 'Any')


class Function:
    """A function declared in archive code, closed over its defining scope."""

    def __init__(self, interpreter: Interpreter, definition: s.FunctionDef, closure: Scope, module: str = ""):
        self.interpreter = interpreter
        self.definition = definition
        self.closure = closure
        self.type_module = module
        self.type_name = definition.name

    @property
    def parameters(self) -> List[str]:
        return self.definition.parameters

    def __call__(self, *args):
        return self.interpreter.apply(self, None, args)

    def __repr__(self) -> str:
        return f"<function {self.type_module}.{self.type_name}>"


@dataclass
class TraceResult:
    inputs: List[str] = field(default_factory=list)
    outputs: List[str] = field(default_factory=list)
    nodes: List[TraceNode] = field(default_factory=list)


class Interpreter:
    """Tree-walking evaluator for the serialized-code subset.

    `source_loader` maps an archive-relative file name ('code/__torch__.py')
    to a parsed `syntax.Program` or raises `SourceNotFound`. `constants`
    returns the archive constant table on first use of `CONSTANTS`.
    """

    def __init__(self, source_loader: Callable[[str], s.Program],
                 constants: Optional[Callable[[], List[Any]]] = None):
        self.source_loader = source_loader
        self.constants = constants or (lambda: [])
        self.root = Scope()
        self.registry = Registry(self.root)
        self.packages: Dict[str, Namespace] = {}

    # structural entry points

    def package(self, name: str, file: Optional[str] = None) -> Namespace:
        """Loads (once) and returns the namespace of a dotted package."""
        if name not in self.packages:
            file = file or 'code/' + name.replace('.', '/') + '.py'
            program = self.source_loader(file)
            globals_ = self.root.get_qualified(name)
            if not isinstance(globals_, Namespace):
                globals_ = Namespace(name)
                self.root.set_qualified(name, globals_)
            globals_.file = file
            self.packages[name] = globals_
            logger.debug(f"Loading package '{name}' from '{file}'")
            globals_.members.update({'__name__': name, '__file__': file})
            self.block(program.body, PackageScope(self.root, globals_))
        return self.packages[name]

    def resolve(self, name: str) -> Any:
        """Finds a registered builtin or a class/function declared in archive code."""
        value = self.root.get_qualified(name)
        if value is not MISSING:
            return value
        module_name, _, member = name.rpartition('.')
        if not module_name:
            return MISSING
        package = self.package(module_name)
        return package.members.get(member, MISSING)

    def invoke(self, name: str, args=()) -> Any:
        target = self.resolve(name)
        if target is MISSING:
            return self.registry.stub(name, args)
        return self.call(target, None, list(args))

    # tracing entry point

    def trace(self, obj: Any, method: Any) -> TraceResult:
        """Runs `method` on `obj` with placeholder tensors for every non-self parameter."""
        if not isinstance(method, Function):
            raise UnknownSymbol("Entry point is not a script function.")
        self.registry.reset_trace()
        result = TraceResult()
        args = []
        for parameter in method.parameters:
            if parameter != 'self':
                args.append(self.registry.placeholder(parameter))
                result.inputs.append(parameter)
        try:
            value = self.apply(method, obj, args)
        except ScriptError:
            self.registry.rollback_trace()
            raise
        result.outputs = [self.registry.identify(t) for t in _flatten_tensors(value)]
        result.nodes = list(self.registry.nodes)
        return result

    # evaluation

    def apply(self, function: Function, obj: Any, args) -> Any:
        args = list(args)
        scope = function.closure.push()
        for i, parameter in enumerate(function.parameters):
            if parameter == 'self' and i == 0 and obj is not None:
                scope.set('self', obj)
            else:
                scope.set(parameter, args.pop(0) if args else None)
        return self.block(function.definition.body, scope)

    def call(self, target: Any, obj: Any, args: List[Any], kwargs: Optional[Dict[str, Any]] = None) -> Any:
        if isinstance(target, Function):
            return self.apply(target, obj, args)
        if is_module_class(target):
            instance = target.__new__(target)
            init = target.members.get('__init__')
            if isinstance(init, Function):
                self.apply(init, instance, args)
            return instance
        if callable(target):
            try:
                return target(*args, **(kwargs or {}))
            except TypeError as e:
                raise UnsupportedExpression(f"Invalid call to '{getattr(target, '__name__', target)}': {e}.") from e
        raise UnsupportedExpression(f"'{type(target).__name__}' object is not callable.")

    def block(self, statements: List[s.Statement], scope: Scope) -> Any:
        pending = deque(statements)
        while pending:
            statement = pending.popleft()
            if isinstance(statement, s.Pass):
                continue
            if isinstance(statement, s.Return):
                return self.evaluate(statement.expression, scope)
            if isinstance(statement, s.FunctionDef):
                module = scope.get('__name__')
                scope.set(statement.name, Function(self, statement, scope, module if isinstance(module, str) else ""))
            elif isinstance(statement, s.ClassDef):
                module = scope.get('__name__')
                cls = define_class(module if isinstance(module, str) else "", statement.name)
                scope.set(statement.name, cls)
                self.block(statement.body, scope.push(cls.members))
            elif isinstance(statement, s.VarDecl):
                scope.set(statement.name, None)
            elif isinstance(statement, s.Assign):
                self.assign(statement.target, self.evaluate(statement.expression, scope), scope)
            elif isinstance(statement, s.If):
                condition = self.evaluate(statement.condition, scope)
                if condition is True:
                    pending.extendleft(reversed(statement.then))
                elif condition is False:
                    pending.extendleft(reversed(statement.orelse))
                else:
                    raise UnsupportedExpression("Unknown condition.")
            elif isinstance(statement, s.CallStatement):
                self.evaluate(statement.call, scope)
            elif isinstance(statement, s.Import):
                for module_name, alias in statement.modules:
                    namespace = self.package(module_name)
                    if alias:
                        scope.set(alias, namespace)
            else:
                raise UnsupportedExpression(f"Unknown statement '{type(statement).__name__}'.")
        return None

    def assign(self, target: s.Expression, value: Any, scope: Scope) -> None:
        if isinstance(target, s.Identifier):
            scope.set(target.name, value)
            return
        if isinstance(target, s.SubscriptExpr) and isinstance(target.target, s.Identifier):
            name = target.target.name
            index = self.evaluate(target.index, scope)
            container = scope.get(name)
            if name == '__annotations__' and not isinstance(container, dict):
                container = {}
                scope.set(name, container)
            if isinstance(container, (dict, list)):
                container[index] = value
                return
            raise UnsupportedExpression(f"Cannot assign item of '{name}'.")
        if isinstance(target, s.AttributeExpr):
            set_member(self.evaluate(target.target, scope), target.member, value)
            return
        if isinstance(target, s.TupleExpr):
            if (isinstance(value, (list, tuple)) and len(value) == len(target.items)
                    and all(isinstance(item, s.Identifier) for item in target.items)):
                for item, v in zip(target.items, value):
                    scope.set(item.name, v)
                return
            raise UnsupportedExpression("Tuple assignment arity mismatch.")
        raise UnsupportedExpression(f"Unsupported assignment target '{type(target).__name__}'.")

    def evaluate(self, expression: s.Expression, scope: Scope) -> Any:
        if isinstance(expression, s.Literal):
            return expression.value
        if isinstance(expression, s.ListExpr):
            return [self.evaluate(item, scope) for item in expression.items]
        if isinstance(expression, s.TupleExpr):
            return tuple(self.evaluate(item, scope) for item in expression.items)
        if isinstance(expression, s.Identifier):
            return self._identifier(expression.name, scope)
        if isinstance(expression, s.AttributeExpr):
            return get_member(self._target(expression.target, scope), expression.member)
        if isinstance(expression, s.SubscriptExpr):
            return self._subscript(expression, scope)
        if isinstance(expression, s.CallExpr):
            return self._call(expression, scope)
        raise UnsupportedExpression(f"Unknown expression '{type(expression).__name__}'.")

    def _identifier(self, name: str, scope: Scope) -> Any:
        if name == 'None':
            return None
        if name == 'True':
            return True
        if name == 'False':
            return False
        value = scope.get(name)
        if value is not MISSING:
            return value
        if name in TYPE_NAMES:
            return TypeRef(name)
        if name == 'CONSTANTS':
            constants = Namespace('CONSTANTS')
            for i, constant in enumerate(self.constants() or []):
                constants.members[f"c{i}"] = constant
            self.root.set('CONSTANTS', constants)
            return constants
        raise UnknownSymbol(f"Unknown identifier '{name}'.")

    def _target(self, expression: s.Expression, scope: Scope) -> Any:
        """Evaluates the left side of 'x.member', loading packages for unbound dotted names."""
        name = s.dotted_name(expression)
        if name is None:
            return self.evaluate(expression, scope)
        root = name.split('.')[0]
        bound = scope.get(root)
        if root in ('None', 'True', 'False', 'CONSTANTS') or (bound is not MISSING and not isinstance(bound, Namespace)):
            return self.evaluate(expression, scope)
        value = scope.get_qualified(name)
        if value is MISSING:
            value = self.package(name)
        return value

    def _subscript(self, expression: s.SubscriptExpr, scope: Scope) -> Any:
        if isinstance(expression.target, s.Identifier) and scope.get(expression.target.name) is MISSING:
            name = expression.target.name
            if name in TYPE_NAMES:
                items = expression.index.items if isinstance(expression.index, s.TupleExpr) else [expression.index]
                return TypeRef(f"{name}[{','.join(_type_name(i) for i in items)}]")
        target = self.evaluate(expression.target, scope)
        index = self.evaluate(expression.index, scope)
        try:
            return target[index]
        except (KeyError, IndexError, TypeError) as e:
            raise UnsupportedExpression(f"Cannot index '{type(target).__name__}' with '{index}'.") from e

    def _call(self, expression: s.CallExpr, scope: Scope) -> Any:
        args = [self.evaluate(a, scope) for a in expression.arguments]
        kwargs = {k: self.evaluate(v, scope) for k, v in expression.keywords}
        callee = expression.target
        if isinstance(callee, s.AttributeExpr):
            name = s.dotted_name(callee)
            try:
                target = self._target(callee.target, scope)
            except SourceNotFound:
                if name is None:
                    raise
                return self.registry.stub(name, args)
            try:
                function = get_member(target, callee.member)
            except UnknownSymbol:
                if name is None or isinstance(target, ModuleObject):
                    raise
                return self.registry.stub(name, args)
            obj = target if isinstance(target, ModuleObject) else None
            return self.call(function, obj, args, kwargs)
        function = self.evaluate(callee, scope)
        return self.call(function, None, args, kwargs)


def _type_name(expression: s.Expression) -> str:
    name = s.dotted_name(expression)
    return name if name is not None else type(expression).__name__


def _flatten_tensors(value: Any) -> List[TensorObject]:
    if isinstance(value, TensorObject):
        return [value]
    if isinstance(value, (list, tuple)):
        return [t for item in value for t in _flatten_tensors(item)]
    return []
