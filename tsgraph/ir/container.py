from __future__ import annotations
import json
import logging
from typing import Any, Dict, List, Optional, Sequence

import numpy as np
import onnx
from onnx import TensorProto

from ..errors import FormatError, ScriptError, SourceNotFound, UnknownSymbol, with_identifier
from ..runtime.builtins import STORAGE_TYPES
from ..runtime.objects import MISSING, ModuleObject, TensorObject, find_member
from ..runtime.unpickler import unpickle
from ..script.interpreter import Function, Interpreter, TraceResult
from ..script.parser import parse_source
from ..script import syntax
from .archive import Entry, find_version_entry

logger = logging.getLogger(__name__)

# model.json tensor tables name their element types after onnx.TensorProto.DataType
TENSOR_DATA_TYPES = ('FLOAT', 'FLOAT16', 'DOUBLE', 'INT32', 'INT64')

_STORAGE_BY_DTYPE = {dtype: name for name, (dtype, _) in STORAGE_TYPES.items()}


def storage_type_name(data_type: str) -> str:
    """Maps a model.json dataType literal to the storage constructor that holds it."""
    if data_type not in TENSOR_DATA_TYPES:
        raise FormatError(f"Unknown tensor data type '{data_type}'.")
    np_dtype = np.dtype(onnx.helper.tensor_dtype_to_np_dtype(TensorProto.DataType.Value(data_type)))
    return _STORAGE_BY_DTYPE[np_dtype.name]


class Container:
    """Front end over the entries of one TorchScript archive.

    Finds the version signature, then materializes the module tree either
    from `data.pkl` (pickled object graph) or from `model.json` (tensor table
    plus module description).
    """

    def __init__(self, identifier: str, entries: Sequence[Entry]):
        self.identifier = identifier
        self.entries = list(entries)
        self._data_by_name: Dict[str, bytes] = {e.name: e.data for e in self.entries}
        self.name = ''
        self.producer = ''
        self.script: Optional[str] = None
        self._constants: Any = MISSING

        version_entry = find_version_entry(self.entries)
        if version_entry is None:
            raise FormatError('TorchScript container does not contain version signature.')
        self.prefix = version_entry.name[:-len('version')]
        self.version = json.loads(version_entry.data.decode('utf-8'))

        self.interpreter = Interpreter(self.parse, lambda: self.constants)

        pickle_data = self._data_by_name.get(self.prefix + 'data.pkl')
        model_json = self._data_by_name.get(self.prefix + 'model.json')
        if pickle_data:
            logger.info(f"Reading pickled module tree from '{self.prefix}data.pkl'")
            self.data = unpickle(pickle_data, self.interpreter, self._storage('data'))
        elif model_json is not None:
            logger.info(f"Reading module description from '{self.prefix}model.json'")
            self.data = self._load_model_json(json.loads(model_json.decode('utf-8')))
        else:
            raise FormatError(f"TorchScript container does not contain '{self.prefix}data.pkl' or '{self.prefix}model.json'.")

    @property
    def constants(self) -> List[Any]:
        if self._constants is MISSING:
            self._constants = []
            data = self._data_by_name.get(self.prefix + 'constants.pkl')
            if data:
                self._constants = list(unpickle(data, self.interpreter, self._storage('constants')))
        return self._constants

    def parse(self, file: str) -> syntax.Program:
        """Source provider for the interpreter: archive-relative file to syntax tree."""
        key = self.prefix + file
        data = self._data_by_name.get(key)
        if data is None:
            raise SourceNotFound(f"Python source '{file}' not found.")
        return parse_source(data.decode('utf-8'), key)

    def entry_point(self) -> Function:
        if self.script:
            package = self.interpreter.package('__model__', self.script)
            method = package.members.get('forward', MISSING)
        else:
            method = find_member(self.data, 'forward')
        if not isinstance(method, Function):
            raise UnknownSymbol("Module has no 'forward' method.")
        return method

    def trace(self) -> Optional[TraceResult]:
        """Symbolically runs forward(); returns None (and logs) when the code is out of reach."""
        try:
            return self.interpreter.trace(self.data, self.entry_point())
        except ScriptError as error:
            logger.warning(with_identifier(str(error), self.identifier))
            return None

    def _storage(self, dirname: str) -> Dict[str, bytes]:
        prefix = self.prefix + dirname + '/'
        return {e.name[len(prefix):]: e.data for e in self.entries if e.name.startswith(prefix)}

    def _load_model_json(self, model: Dict[str, Any]) -> ModuleObject:
        producer = model.get('producerName') or ''
        if model.get('producerVersion'):
            producer += f" v{model['producerVersion']}"
        self.producer = producer
        main = model.get('mainModule') or {}
        self.name = main.get('name', '')
        arena = main.get('torchscriptArena')
        if arena:
            self.script = arena.get('key')

        tensors = [self._tensor(t) for t in model.get('tensors', [])]
        self._constants = tensors

        root = ModuleObject()
        queue = [(root, main)]
        while queue:
            module, definition = queue.pop(0)
            for submodule in definition.get('submodules', []):
                child = ModuleObject()
                module.fields[submodule.get('name', '')] = child
                queue.append((child, submodule))
            for parameter in definition.get('parameters', []) + definition.get('arguments', []):
                if 'tensorId' not in parameter:
                    continue
                index = int(parameter['tensorId'])
                if not 0 <= index < len(tensors):
                    raise FormatError(f"Invalid tensor index '{index}' for parameter '{parameter.get('name')}'.")
                module.fields[parameter['name']] = tensors[index]
        return root

    def _tensor(self, definition: Dict[str, Any]) -> TensorObject:
        storage_type = self.interpreter.resolve(storage_type_name(definition.get('dataType')))
        dims = definition.get('dims')
        size = [int(d) for d in dims] if dims is not None else None
        key = (definition.get('data') or {}).get('key', '')
        storage = storage_type(size)
        storage.key = key
        storage.data = self._data_by_name.get(self.prefix + key)
        return TensorObject(storage=storage, size=size, name=key,
                            storage_offset=int(definition.get('offset', 0)))
