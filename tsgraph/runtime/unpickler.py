from __future__ import annotations
import io
import logging
import pickle
from typing import Any, Dict, Mapping, Optional

from ..errors import FormatError, SourceNotFound, UnknownSymbol
from .objects import MISSING, Storage, StorageType, define_class

logger = logging.getLogger(__name__)


class ArchiveUnpickler(pickle.Unpickler):
    """Replays a TorchScript pickle against the interpreter's runtime.

    Globals resolve through the interpreter (builtins, storage types and
    classes declared in archive code). Storage references are memoized by
    key and get their payload from `storage_map`.
    """

    def __init__(self, data: bytes, interpreter, storage_map: Optional[Mapping[str, bytes]] = None):
        super().__init__(io.BytesIO(data))
        self.interpreter = interpreter
        self.storage_map = storage_map if storage_map is not None else {}
        self.deserialized_objects: Dict[str, Any] = {}

    def find_class(self, module: str, name: str) -> Any:
        qualified_name = f"{module}.{name}"
        try:
            target = self.interpreter.resolve(qualified_name)
        except SourceNotFound:
            target = MISSING
        if target is not MISSING:
            return target
        if module == '__torch__' or module.startswith('__torch__.'):
            logger.debug(f"No source for '{qualified_name}', using an opaque module class")
            return define_class(module, name)
        registry = self.interpreter.registry
        if registry.has_stub(qualified_name):
            return lambda *args: registry.stub(qualified_name, args)
        raise UnknownSymbol(f"Unknown symbol '{qualified_name}'.")

    def persistent_load(self, saved_id: Any) -> Any:
        saved_id = list(saved_id)
        typename = saved_id.pop(0) if saved_id else None
        if typename != 'storage':
            raise FormatError(f"Unknown persistent load type '{typename}'.")
        data_type = saved_id.pop(0)
        root_key = str(saved_id.pop(0))
        saved_id.pop(0)  # location
        size = saved_id.pop(0) if saved_id else None
        if root_key in self.deserialized_objects:
            storage = self.deserialized_objects[root_key]
        else:
            storage = self._storage(data_type, size)
            storage.key = root_key
            storage.data = self.storage_map.get(root_key)
            logger.debug(f"Resolved storage '{root_key}' ({storage.dtype}, {size} elements)")
            self.deserialized_objects[root_key] = storage
        view_metadata = saved_id.pop(0) if saved_id else None
        if view_metadata:
            view_key = str(view_metadata[0])
            # TODO: materialize storage views as byte slices of the root storage
            return self.deserialized_objects.setdefault(view_key, None)
        return storage

    def _storage(self, data_type: Any, size: Any) -> Storage:
        if isinstance(data_type, str):
            data_type = self.interpreter.resolve(data_type)
        if isinstance(data_type, StorageType):
            return data_type(size)
        raise FormatError(f"Unknown storage type '{data_type}'.")


def unpickle(data: bytes, interpreter, storage_map: Optional[Mapping[str, bytes]] = None) -> Any:
    return ArchiveUnpickler(data, interpreter, storage_map).load()
