from __future__ import annotations
import logging
from collections import deque
from typing import Any, Dict, List, Optional

from ..ir.metadata import Metadata
from ..ir.model_ir import Argument, Attribute, Graph, Node, Parameter
from ..ir.tensor import DISPLAY_LIMIT, Tensor
from ..runtime.builtins import TraceNode
from ..runtime.objects import FieldKind, ModuleObject, TensorObject, classify
from .arena import ModuleArena, parameter_count
from .passes.folding import apply_folding_pass

logger = logging.getLogger(__name__)


def build_graph(container, metadata: Metadata, config=None) -> Graph:
    """Turns a loaded container into a normalized graph.

    Order matters: tracing assigns dataflow ids to the parameter tensors it
    touches, the module walk then indexes those ids, and the folding pass
    matches traced nodes against them before modules become nodes.
    """
    display_limit = getattr(config, 'display_limit', DISPLAY_LIMIT)
    graph = Graph(name=container.name)

    trace = container.trace() if getattr(config, 'trace', True) else None
    if trace is not None:
        graph.inputs = [Parameter(name, arguments=[Argument(name)]) for name in trace.inputs]
        graph.outputs = [Parameter(name, arguments=[Argument(name)]) for name in trace.outputs]

    arena = ModuleArena()
    parameters: Dict[str, TensorObject] = {}
    root = container.data
    if isinstance(root, ModuleObject):
        _register_modules(root, arena, parameters, display_limit)

    if trace is not None:
        folded = apply_folding_pass(trace.nodes, parameters, arena)
        logger.info(f"Traced {len(trace.nodes)} operators, folded {folded} modules")
        for trace_node in trace.nodes:
            graph.nodes.append(_traced_node(trace_node, arena, metadata))

    if isinstance(root, ModuleObject):
        _module_nodes(root, arena, graph)
    return graph


def _register_modules(root: ModuleObject, arena: ModuleArena,
                      parameters: Dict[str, TensorObject], display_limit: int) -> None:
    arena.add(root)
    queue = deque([root])
    while queue:
        module = queue.popleft()
        for name, value in module.fields.items():
            kind = classify(value)
            if kind is FieldKind.TENSOR:
                if value.owner is not None:
                    continue
                value.owner = module.index
                value.initializer = Tensor.from_tensor_object(value, display_limit)
                if value.identifier is not None:
                    parameters[value.identifier] = value
            elif kind is FieldKind.MODULE:
                if name.startswith('__') or value.index is not None:
                    continue
                arena.add(value, module.index, name)
                queue.append(value)
    logger.debug(f"Registered {len(arena)} modules, {len(parameters)} identified parameters")


def _schema_name(items: List[Dict[str, Any]], index: int) -> str:
    if index < len(items) and items[index].get('name'):
        return items[index]['name']
    return str(index)


def _traced_node(trace_node: TraceNode, arena: ModuleArena, metadata: Metadata) -> Node:
    schema = metadata.get_schema(trace_node.operator) or {}
    node = Node(operator=trace_node.operator,
                category=schema.get('category', ''),
                documentation=metadata.documentation(trace_node.operator))
    if trace_node.module is not None:
        node.name = arena.qualified_name(trace_node.module)
    schema_inputs = schema.get('inputs', [])
    for i, arguments in enumerate(trace_node.inputs):
        node.inputs.append(Parameter(_schema_name(schema_inputs, i),
                                     arguments=[Argument(a.id, a.initializer) for a in arguments]))
    schema_outputs = schema.get('outputs', [])
    for i, identifier in enumerate(trace_node.outputs):
        node.outputs.append(Parameter(_schema_name(schema_outputs, i), arguments=[Argument(identifier)]))
    for name, value in trace_node.attributes:
        node.attributes.append(Attribute(metadata.get_attribute_schema(trace_node.operator, name), name, value))
    return node


def _module_nodes(module: ModuleObject, arena: ModuleArena, graph: Graph) -> None:
    if not module.hidden and parameter_count(module) > 0:
        node = Node(operator='Module', name=arena.qualified_name(module.index))
        for name, tensor in module.tensors():
            node.inputs.append(Parameter(name, arguments=[Argument('', tensor.initializer)]))
            if tensor.outputs:
                node.outputs.append(Parameter(name, arguments=[Argument(i) for i in tensor.outputs]))
        graph.nodes.append(node)
    for _, child in module.submodules():
        # shared modules are emitted under their first parent only
        if child.parent == module.index and child.index != module.index:
            _module_nodes(child, arena, graph)
