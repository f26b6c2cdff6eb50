from __future__ import annotations
import logging
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional, Tuple

from ..errors import ScriptRuntimeError, UnknownSymbol, UnsupportedExpression
from ..script.scope import Scope
from .objects import (MISSING, Storage, StorageType, TensorObject, TypeRef,
                      find_member, is_tensor, is_tensor_list)

logger = logging.getLogger(__name__)

# qualified name -> (dtype, bytes per element)
STORAGE_TYPES = {
    "torch.ByteStorage": ("uint8", 1),
    "torch.CharStorage": ("int8", 1),
    "torch.ShortStorage": ("int16", 2),
    "torch.IntStorage": ("int32", 4),
    "torch.LongStorage": ("int64", 8),
    "torch.HalfStorage": ("float16", 2),
    "torch.FloatStorage": ("float32", 4),
    "torch.DoubleStorage": ("float64", 8),
    "torch.QInt8Storage": ("qint8", 1),
}

# qualified name -> number of placeholder tensors returned
TRACED_OPERATORS = {
    "torch._convolution": 1,
    "torch.addmm": 1,
    "torch.relu_": 1,
    "torch.relu": 1,
    "torch.max_pool2d": 1,
    "torch.view": 1,
    "torch.matmul": 1,
    "torch.flatten": 1,
    "torch.add_": 1,
    "torch.add": 1,
    "torch.mul_": 1,
    "torch.mean": 1,
    "torch.log_softmax": 1,
    "torch.dropout": 1,
    "torch.dropout_": 1,
    "torch.adaptive_avg_pool2d": 1,
    "torch.batch_norm": 1,
    "torch.cat": 1,
    "torch.select": 1,
    "torch.unsqueeze": 1,
}


@dataclass
class TraceArgument:
    """One value flowing into a traced operator."""
    id: str
    tensor: TensorObject
    initializer: Any = None


@dataclass
class TraceNode:
    """An operator invocation recorded while tracing."""
    operator: str
    qualified_name: str
    inputs: List[List[TraceArgument]] = field(default_factory=list)
    outputs: List[str] = field(default_factory=list)
    attributes: List[Tuple[str, Any]] = field(default_factory=list)
    # arena index of the module folded into this node
    module: Optional[int] = None


@dataclass
class PackedParams:
    """Opaque result of a quantized prepack call."""
    kind: str
    arguments: tuple = ()


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


class Registry:
    """Builtin callables, storage constructors and traced operators.

    Everything is bound into the given (outermost) scope under its dotted
    name, so archive code reaches `torch.relu` the same way it reaches a
    class it declared itself.
    """

    def __init__(self, scope: Scope):
        self.scope = scope
        self.nodes: List[TraceNode] = []
        self.identified: List[TensorObject] = []
        self._next_id = 0
        self._register_functions()
        for name, (dtype, itemsize) in STORAGE_TYPES.items():
            self.register_constructor(name, dtype, itemsize)
        for name, output_count in TRACED_OPERATORS.items():
            self.register_operator(name, output_count)

    def register_function(self, name: str, function: Callable) -> None:
        self.scope.set_qualified(name, function)

    def register_constructor(self, name: str, dtype: str, itemsize: int) -> None:
        self.scope.set_qualified(name, StorageType(name, dtype, itemsize))

    def register_operator(self, name: str, output_count: int) -> None:
        def operator(*args, **kwargs):
            outputs = [self.placeholder() for _ in range(output_count)]
            self._add(name, args, kwargs, outputs)
            return outputs[0] if output_count == 1 else tuple(outputs)
        operator.__name__ = name.rpartition('.')[2]
        self.scope.set_qualified(name, operator)

    def lookup(self, name: str) -> Any:
        return self.scope.get_qualified(name)

    def placeholder(self, name: Optional[str] = None, size=None) -> TensorObject:
        """A fresh symbolic tensor carrying one dataflow identifier."""
        return TensorObject(size=size, outputs=[name if name is not None else self._new_id()])

    def identify(self, tensor: TensorObject) -> str:
        if not tensor.outputs:
            tensor.outputs = [self._new_id()]
            self.identified.append(tensor)
        return tensor.outputs[0]

    def reset_trace(self) -> None:
        self.nodes = []
        self.identified = []

    def rollback_trace(self) -> None:
        """Drops the nodes of an aborted trace and the ids it handed to existing tensors."""
        for tensor in self.identified:
            tensor.outputs = []
        self.reset_trace()

    def stub(self, name: str, args=()) -> Any:
        """Shape-only stand-ins for symbols the registry does not model."""
        if name == 'torch.conv2d':
            return self.placeholder(size=[0, 0, 0, 0])
        if name == 'torch.max_pool2d_with_indices':
            return self.placeholder(), self.placeholder()
        if name == 'torch.list_with_default':
            return [0]
        if name == 'torch.size':
            return 0
        raise UnknownSymbol(f"Unknown symbol '{name}'.")

    def has_stub(self, name: str) -> bool:
        return name in ('torch.conv2d', 'torch.max_pool2d_with_indices', 'torch.list_with_default', 'torch.size')

    def _new_id(self) -> str:
        self._next_id += 1
        return str(self._next_id)

    def _add(self, name: str, args, kwargs, outputs: List[TensorObject]) -> None:
        node = TraceNode(operator=name.rpartition('.')[2], qualified_name=name)
        args = list(args)
        # leading tensors (or tensor lists) are inputs, the rest is dropped
        while args:
            argument = args[0]
            if is_tensor(argument):
                node.inputs.append([TraceArgument(self.identify(argument), argument)])
            elif is_tensor_list(argument):
                node.inputs.append([TraceArgument(self.identify(t), t) for t in argument])
            else:
                break
            args.pop(0)
        node.outputs = [self.identify(t) for t in outputs]
        node.attributes = [(k, v) for k, v in kwargs.items()]
        logger.debug(f"Traced {name}: {len(node.inputs)} inputs")
        self.nodes.append(node)

    def _register_functions(self) -> None:
        f = self.register_function
        f('annotate', lambda type, value: value)
        f('unchecked_cast', lambda type, value: value)
        f('collections.OrderedDict', lambda args=None: OrderedDict(args or []))
        f('int', self._int)
        f('float', self._float)
        f('getattr', self._getattr)
        f('uninitialized', self._uninitialized)
        f('ops.prim.unchecked_unwrap_optional', lambda value: value)
        f('ops.prim.NumToTensor', lambda value: TensorObject(value=value, outputs=[self._new_id()]))
        f('ops.prim.RaiseException', self._raise)
        f('ops.quantized.conv_prepack', lambda *args: PackedParams('conv_prepack', args))
        f('ops.quantized.linear_prepack', lambda *args: PackedParams('linear_prepack', args))
        f('torch.__is__', self._is)
        f('torch.__isnot__', lambda left, right: not self._is(left, right))
        f('torch.__not__', self._not)
        f('torch._unwrap_optional', lambda value: value)
        f('torch._utils._rebuild_tensor_v2', self._rebuild_tensor)
        f('torch._utils._rebuild_qtensor', self._rebuild_qtensor)
        f('torch._utils._rebuild_parameter', lambda data, requires_grad=False, backward_hooks=None: data)
        f('torch.dim', lambda tensor: len(tensor.size) if is_tensor(tensor) and tensor.size else 0)
        f('torch.eq', self._eq)
        f('torch.ne', lambda left, right: not self._eq(left, right))
        f('torch.gt', lambda left, right: self._compare(left, right) > 0)
        f('torch.lt', lambda left, right: self._compare(left, right) < 0)
        f('torch.mul', self._mul)
        f('torch.q_scale', lambda tensor: -1)
        f('torch.t', lambda tensor: tensor)
        for kind in ('boollist', 'doublelist', 'intlist', 'tensorlist'):
            f(f'torch.jit._pickle.build_{kind}', lambda data: data)

    @staticmethod
    def _int(value=0):
        return int(value) if _is_number(value) else 0

    @staticmethod
    def _float(value=0.0):
        return float(value) if _is_number(value) else 0.0

    @staticmethod
    def _getattr(obj, name, default=None):
        value = find_member(obj, name)
        return default if value is MISSING else value

    def _uninitialized(self, type=None):
        if isinstance(type, TypeRef) and type.name == 'Tensor':
            return self.placeholder()
        return None

    @staticmethod
    def _raise(message=''):
        raise ScriptRuntimeError(str(message))

    @staticmethod
    def _is(left, right):
        if left is None and right is None:
            return True
        if left is None or right is None:
            return False
        raise UnsupportedExpression("Unsupported operands for 'torch.__is__'.")

    @staticmethod
    def _not(value):
        if isinstance(value, bool):
            return not value
        raise UnsupportedExpression("Unsupported operand for 'torch.__not__'.")

    @staticmethod
    def _eq(left, right):
        if isinstance(left, str) and isinstance(right, str):
            return left == right
        if _is_number(left) and _is_number(right):
            return left == right
        raise UnsupportedExpression("Unsupported operands for comparison.")

    @staticmethod
    def _compare(left, right) -> int:
        if _is_number(left) and _is_number(right):
            return (left > right) - (left < right)
        raise UnsupportedExpression("Unsupported operands for comparison.")

    def _mul(self, left, right):
        if _is_number(left) and _is_number(right):
            return left * right
        if is_tensor(left) and is_tensor(right):
            return self.placeholder()
        raise UnsupportedExpression("Unsupported operands for 'torch.mul'.")

    @staticmethod
    def _rebuild_tensor(storage, storage_offset=0, size=None, stride=None,
                        requires_grad=False, backward_hooks=None, metadata=None):
        tensor = TensorObject(storage=storage, storage_offset=storage_offset or 0,
                              size=list(size) if size is not None else None,
                              stride=list(stride) if stride is not None else None,
                              requires_grad=bool(requires_grad))
        if isinstance(storage, Storage):
            tensor.type_module = storage.type_module
            tensor.type_name = storage.type_name.replace('Storage', 'Tensor')
        return tensor

    def _rebuild_qtensor(self, storage, storage_offset=0, size=None, stride=None,
                         quantizer_params=None, requires_grad=False, backward_hooks=None):
        tensor = self._rebuild_tensor(storage, storage_offset, size, stride, requires_grad)
        tensor.quantizer_params = quantizer_params
        return tensor
