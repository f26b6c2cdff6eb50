from __future__ import annotations
from typing import Any, Dict, Optional

from ..runtime.objects import MISSING, Namespace, find_member, set_member


class Scope:
    """One frame of the lexical scope chain.

    Frames are linked innermost to outermost. Closures keep the `Scope`
    handle they were defined in; calling them pushes a new frame onto it.
    """

    def __init__(self, parent: Optional[Scope] = None, frame: Optional[Dict[str, Any]] = None):
        self.parent = parent
        self.frame = frame if frame is not None else {}

    def push(self, frame: Optional[Dict[str, Any]] = None) -> Scope:
        return Scope(self, frame)

    def get(self, name: str) -> Any:
        fallback = MISSING
        scope = self
        while scope is not None:
            if name in scope.frame:
                value = scope.frame[name]
                if not scope.shadows(value):
                    return value
                if fallback is MISSING:
                    fallback = value
            scope = scope.parent
        return fallback

    def shadows(self, value: Any) -> bool:
        return False

    def set(self, name: str, value: Any) -> None:
        self.frame[name] = value

    def get_qualified(self, name: str) -> Any:
        """Resolves 'a.b.c' by looking up 'a' and walking its members."""
        parts = name.split('.')
        value = self.get(parts[0])
        for part in parts[1:]:
            if value is MISSING:
                break
            value = find_member(value, part)
        return value

    def set_qualified(self, name: str, value: Any) -> None:
        """Binds 'a.b.c', creating intermediate namespaces on the way."""
        parts = name.split('.')
        if len(parts) == 1:
            self.set(name, value)
            return
        parent = self.get(parts[0])
        if parent is MISSING or parent is None:
            parent = Namespace(parts[0])
            self.set(parts[0], parent)
        for i, part in enumerate(parts[1:-1], start=2):
            child = find_member(parent, part)
            if child is MISSING or child is None:
                child = Namespace('.'.join(parts[:i]))
                set_member(parent, part, child)
            parent = child
        set_member(parent, parts[-1], value)


class PackageScope(Scope):
    """Top-level frame of a package whose bindings are the namespace members.

    Sub-package namespaces live among the members too ('__torch__.torch'),
    so lookups skip them in favour of an outer binding of the same name.
    """

    def __init__(self, parent: Scope, namespace: Namespace):
        super().__init__(parent, namespace.members)
        self.namespace = namespace

    def shadows(self, value: Any) -> bool:
        return isinstance(value, Namespace) and value.name.startswith(self.namespace.name + '.')
