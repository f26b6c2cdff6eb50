from __future__ import annotations
from typing import List, Optional

from ..runtime.objects import ModuleObject

# running-statistics counter kept by batch norm modules; never a weight
BOOKKEEPING_FIELD = 'num_batches_tracked'


class ModuleArena:
    """Index-addressed registry of discovered modules.

    Parents are stored as arena indices, so the module tree can be walked
    upward for qualified names without modules owning references to each
    other. A module registered twice keeps its first index, parent and
    identifier.
    """

    def __init__(self):
        self.modules: List[ModuleObject] = []

    def __len__(self) -> int:
        return len(self.modules)

    def __getitem__(self, index: int) -> ModuleObject:
        return self.modules[index]

    def add(self, module: ModuleObject, parent: Optional[int] = None, identifier: Optional[str] = None) -> int:
        if module.index is not None:
            return module.index
        module.index = len(self.modules)
        module.parent = parent
        if module.identifier is None:
            module.identifier = identifier
        self.modules.append(module)
        return module.index

    def qualified_name(self, index: Optional[int]) -> str:
        names = []
        while index is not None:
            module = self.modules[index]
            if module.identifier:
                names.append(module.identifier)
            index = module.parent
        return '.'.join(reversed(names))


def parameter_count(module: ModuleObject) -> int:
    return sum(1 for name, _ in module.tensors() if name != BOOKKEEPING_FIELD)
