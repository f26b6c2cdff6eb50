from __future__ import annotations
from dataclasses import dataclass, field
from typing import List, Dict, Any, Optional

from .tensor import Tensor, TensorType


@dataclass
class Argument:
    """A named value in the dataflow namespace, optionally bound to an initializer."""
    id: str
    initializer: Optional[Tensor] = None
    declared_type: Optional[TensorType] = None

    @property
    def type(self) -> Optional[TensorType]:
        if self.initializer is not None:
            return self.initializer.type
        return self.declared_type


@dataclass
class Parameter:
    name: str
    visible: bool = True
    arguments: List[Argument] = field(default_factory=list)


class Attribute:
    """A node attribute, typed and possibly hidden according to its schema."""

    def __init__(self, schema: Optional[Dict[str, Any]], name: str, value: Any):
        self.name = name
        self.value = value
        self.type: Optional[str] = None
        self._visible = True
        if schema:
            self.type = schema.get('type')
            self.value = _coerce(self.type, value)
            if 'visible' in schema and not schema['visible']:
                self._visible = False
            elif 'default' in schema:
                default = schema['default']
                if _deep_equal(default, self.value):
                    self._visible = False
                elif (isinstance(self.value, list) and not isinstance(default, list)
                      and all(_deep_equal(default, item) for item in self.value)):
                    self._visible = False

    @property
    def visible(self) -> bool:
        return self._visible and self.name != 'training'

    def __repr__(self) -> str:
        return f"Attribute({self.name}={self.value!r})"


@dataclass
class Node:
    operator: str
    name: str = ""
    inputs: List[Parameter] = field(default_factory=list)
    outputs: List[Parameter] = field(default_factory=list)
    attributes: List[Attribute] = field(default_factory=list)
    category: str = ""
    documentation: Optional[Dict[str, Any]] = None


@dataclass
class Graph:
    name: str = ""
    inputs: List[Parameter] = field(default_factory=list)
    outputs: List[Parameter] = field(default_factory=list)
    nodes: List[Node] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "inputs": [_parameter_dict(p) for p in self.inputs],
            "outputs": [_parameter_dict(p) for p in self.outputs],
            "nodes": [
                {
                    "operator": n.operator,
                    "name": n.name,
                    "category": n.category,
                    "inputs": [_parameter_dict(p) for p in n.inputs],
                    "outputs": [_parameter_dict(p) for p in n.outputs],
                    "attributes": {a.name: jsonable(a.value) for a in n.attributes if a.visible},
                }
                for n in self.nodes
            ],
        }


@dataclass
class Model:
    format: str
    producer: str = ""
    graphs: List[Graph] = field(default_factory=list)

    @property
    def graph(self) -> Graph:
        return self.graphs[0]


def _parameter_dict(parameter: Parameter) -> Dict[str, Any]:
    return {
        "name": parameter.name,
        "arguments": [
            {"id": a.id, "type": str(a.type) if a.type is not None else None,
             "initializer": a.initializer is not None}
            for a in parameter.arguments
        ],
    }


def jsonable(value: Any) -> Any:
    if isinstance(value, (list, tuple)):
        return [jsonable(v) for v in value]
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    return str(value)


def _deep_equal(a: Any, b: Any) -> bool:
    if isinstance(a, (list, tuple)) or isinstance(b, (list, tuple)):
        return (isinstance(a, (list, tuple)) and isinstance(b, (list, tuple)) and len(a) == len(b)
                and all(_deep_equal(x, y) for x, y in zip(a, b)))
    if isinstance(a, bool) or isinstance(b, bool):
        return isinstance(a, bool) and isinstance(b, bool) and a == b
    return a == b


def _coerce(type_name: Optional[str], value: Any) -> Any:
    if type_name == 'boolean':
        if value == 'False':
            return False
        if value == 'True':
            return True
    elif type_name in ('int32', 'int64'):
        if isinstance(value, str):
            try:
                return int(value, 10)
            except ValueError:
                return value
    elif type_name in ('float32', 'float64'):
        if isinstance(value, str):
            try:
                return float(value)
            except ValueError:
                return value
    elif type_name in ('int32[]', 'int64[]'):
        if isinstance(value, tuple):
            value = list(value)
        if isinstance(value, list):
            return [int(v) if isinstance(v, float) and v.is_integer() else v for v in value]
    return value
