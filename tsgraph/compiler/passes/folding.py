from __future__ import annotations
import logging
from typing import Dict, List, Tuple

from ...runtime.builtins import TraceArgument, TraceNode
from ...runtime.objects import TensorObject
from ..arena import ModuleArena, parameter_count


def apply_folding_pass(nodes: List[TraceNode], parameters: Dict[str, TensorObject], arena: ModuleArena) -> int:
    """Folds parameter-only modules into the traced operator that consumes all of their tensors.

    A node qualifies when every input resolving through `parameters` is owned
    by one module, that module is not folded yet, and the number of resolved
    inputs equals the module's parameter count. The module is then hidden and
    the matching arguments receive the tensors as initializers. Returns the
    number of folds.
    """
    folded = 0
    for node in nodes:
        matches: List[Tuple[TraceArgument, TensorObject]] = []
        for arguments in node.inputs:
            for argument in arguments:
                tensor = parameters.get(argument.id)
                if tensor is not None:
                    matches.append((argument, tensor))
        if not matches:
            continue

        owners = {tensor.owner for _, tensor in matches}
        if len(owners) != 1 or None in owners:
            continue
        module = arena[owners.pop()]
        if module.hidden or len(matches) != parameter_count(module):
            continue

        logging.info(f"Folding module '{arena.qualified_name(module.index)}' into {node.operator}")
        module.hidden = True
        node.module = module.index
        for argument, tensor in matches:
            argument.initializer = tensor.initializer
        folded += 1
    return folded
