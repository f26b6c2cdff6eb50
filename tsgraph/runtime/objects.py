from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from ..errors import UnknownSymbol


class _Missing:
    """Sentinel for 'name not bound', since None is a legal script value."""

    def __repr__(self) -> str:
        return "MISSING"

    def __bool__(self) -> bool:
        return False


MISSING = _Missing()


class Namespace:
    """A dotted package (or builtin namespace) holding named members."""

    def __init__(self, name: str = "", file: Optional[str] = None):
        self.name = name
        self.file = file
        self.members: Dict[str, Any] = {}

    def __repr__(self) -> str:
        return f"Namespace({self.name!r})"


@dataclass(frozen=True)
class TypeRef:
    """A type annotation evaluated as a value, e.g. List[int]."""
    name: str


@dataclass
class Storage:
    """Raw byte buffer backing one or more tensors."""
    dtype: str
    itemsize: int
    size: Any = None
    data: Optional[bytes] = None
    key: Optional[str] = None
    type_module: str = "torch"
    type_name: str = "Storage"


class StorageType:
    """Registered storage constructor such as torch.FloatStorage."""

    def __init__(self, qualified_name: str, dtype: str, itemsize: int):
        module, _, name = qualified_name.rpartition('.')
        self.type_module = module
        self.type_name = name
        self.dtype = dtype
        self.itemsize = itemsize

    def __call__(self, size=None) -> Storage:
        return Storage(dtype=self.dtype, itemsize=self.itemsize, size=size,
                       type_module=self.type_module, type_name=self.type_name)

    def __repr__(self) -> str:
        return f"{self.type_module}.{self.type_name}"


@dataclass(eq=False)
class TensorObject:
    """A tensor as materialized from the archive or produced while tracing."""
    type_module: str = "torch"
    type_name: str = "Tensor"
    storage: Optional[Storage] = None
    storage_offset: int = 0
    size: Optional[List[int]] = None
    stride: Optional[List[int]] = None
    name: str = ""
    requires_grad: bool = False
    quantizer_params: Any = None
    value: Any = None
    outputs: List[str] = field(default_factory=list)
    owner: Optional[int] = None
    initializer: Any = None

    @property
    def dtype(self) -> Optional[str]:
        return self.storage.dtype if self.storage is not None else None

    @property
    def identifier(self) -> Optional[str]:
        return self.outputs[0] if len(self.outputs) == 1 else None


class ModuleObject:
    """Instance of a module class, either declared in archive code or generic.

    Subclasses are created at load time by `define_class`; instances are
    populated by the unpickler (`__setstate__`) or by the model.json walker.
    """
    type_module = "torch"
    type_name = "Module"
    members: Dict[str, Any] = {}

    def __new__(cls, *args, **kwargs):
        obj = super().__new__(cls)
        obj.fields = {}
        obj.index = None
        obj.parent = None
        obj.identifier = None
        obj.hidden = False
        return obj

    def __init__(self, *args, **kwargs):
        pass

    def __setstate__(self, state):
        if isinstance(state, dict):
            self.fields.update(state)
        else:
            self.fields['__state__'] = state

    def __repr__(self) -> str:
        return f"<{self.type_module}.{self.type_name} {self.identifier or ''}>"

    def tensors(self) -> List[Tuple[str, TensorObject]]:
        return [(k, v) for k, v in self.fields.items() if isinstance(v, TensorObject)]

    def submodules(self) -> List[Tuple[str, "ModuleObject"]]:
        return [(k, v) for k, v in self.fields.items()
                if not k.startswith('__') and isinstance(v, ModuleObject)]


def define_class(module_name: str, name: str, members: Optional[Dict[str, Any]] = None) -> type:
    """Creates a ModuleObject subclass standing for a class declared in an archive."""
    return type(name, (ModuleObject,), {
        "type_module": module_name,
        "type_name": name,
        "members": members if members is not None else {},
    })


def is_module_class(value: Any) -> bool:
    return isinstance(value, type) and issubclass(value, ModuleObject)


class FieldKind(Enum):
    TENSOR = "tensor"
    MODULE = "module"
    LIST = "list"
    SCALAR = "scalar"


def classify(value: Any) -> FieldKind:
    """Maps a module field value onto the closed set of field kinds."""
    if isinstance(value, TensorObject):
        return FieldKind.TENSOR
    if isinstance(value, ModuleObject):
        return FieldKind.MODULE
    if isinstance(value, (list, tuple, dict)):
        return FieldKind.LIST
    return FieldKind.SCALAR


def is_tensor(value: Any) -> bool:
    return isinstance(value, TensorObject)


def is_tensor_list(value: Any) -> bool:
    return isinstance(value, (list, tuple)) and len(value) > 0 and all(isinstance(v, TensorObject) for v in value)


def get_member(target: Any, name: str) -> Any:
    """Reads `target.name` with script semantics, raising UnknownSymbol when absent."""
    if isinstance(target, Namespace):
        if name in target.members:
            return target.members[name]
    elif isinstance(target, ModuleObject):
        if name in target.fields:
            return target.fields[name]
        if name in type(target).members:
            return type(target).members[name]
    elif is_module_class(target):
        if name in target.members:
            return target.members[name]
    elif isinstance(target, dict):
        if name in target:
            return target[name]
    elif target is not None and not name.startswith('_') and hasattr(target, name):
        return getattr(target, name)
    raise UnknownSymbol(f"Unknown member '{name}' of '{describe(target)}'.")


def find_member(target: Any, name: str) -> Any:
    """Like get_member but returns MISSING instead of raising."""
    try:
        return get_member(target, name)
    except UnknownSymbol:
        return MISSING


def set_member(target: Any, name: str, value: Any) -> None:
    if isinstance(target, Namespace):
        target.members[name] = value
    elif isinstance(target, ModuleObject):
        target.fields[name] = value
    elif is_module_class(target):
        target.members[name] = value
    elif isinstance(target, dict):
        target[name] = value
    else:
        raise UnknownSymbol(f"Cannot set member '{name}' of '{describe(target)}'.")


def describe(value: Any) -> str:
    if isinstance(value, Namespace):
        return value.name
    if isinstance(value, (ModuleObject, TensorObject, Storage)) or is_module_class(value):
        return f"{value.type_module}.{value.type_name}"
    return type(value).__name__
