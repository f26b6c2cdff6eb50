from __future__ import annotations
import copy
import json
import logging
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)

DEFAULT_METADATA_PATH = Path(__file__).with_name("torchscript-metadata.json")


class Metadata:
    """Operator schemas (category, inputs, outputs, attributes) keyed by operator name."""

    def __init__(self, data: Optional[str] = None):
        self._map: Dict[str, Dict[str, Any]] = {}
        self._attribute_cache: Dict[str, Dict[str, Dict[str, Any]]] = {}
        if data:
            items = json.loads(data)
            for item in items or []:
                if item.get('name') and item.get('schema'):
                    self._map[item['name']] = item['schema']

    @staticmethod
    def open(path: Optional[str] = None) -> Metadata:
        """Returns the process-wide schema store for `path` (bundled schemas by default)."""
        return _open(str(path or DEFAULT_METADATA_PATH))

    def get_schema(self, operator: str) -> Optional[Dict[str, Any]]:
        return self._map.get(operator)

    def get_attribute_schema(self, operator: str, name: str) -> Optional[Dict[str, Any]]:
        attributes = self._attribute_cache.get(operator)
        if attributes is None:
            schema = self.get_schema(operator) or {}
            attributes = {a['name']: a for a in schema.get('attributes', [])}
            self._attribute_cache[operator] = attributes
        return attributes.get(name)

    def documentation(self, operator: str) -> Optional[Dict[str, Any]]:
        schema = self.get_schema(operator)
        if schema is None:
            return None
        schema = copy.deepcopy(schema)
        schema['name'] = operator
        return schema


@lru_cache(maxsize=None)
def _open(path: str) -> Metadata:
    try:
        return Metadata(Path(path).read_text(encoding='utf-8'))
    except (OSError, ValueError) as e:
        logger.warning(f"Cannot read operator metadata '{path}': {e}")
        return Metadata(None)
