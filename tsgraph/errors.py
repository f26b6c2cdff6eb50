from __future__ import annotations


class TorchScriptError(Exception):
    """Base class for every error raised while loading a TorchScript archive."""


class FormatError(TorchScriptError):
    """The archive is missing required entries or holds values we cannot read."""


class ScriptError(TorchScriptError):
    """Raised while evaluating archive source code or builtin calls."""


class UnknownSymbol(ScriptError):
    pass


class SourceNotFound(UnknownSymbol):
    pass


class UnsupportedExpression(ScriptError):
    pass


class ScriptRuntimeError(ScriptError):
    """An exception raised on purpose by the archive code (ops.prim.RaiseException)."""


def with_identifier(message: str, identifier: str) -> str:
    """Normalizes trailing punctuation and appends the archive identifier once."""
    suffix = f" in '{identifier}'"
    if message.endswith('.'):
        message = message[:-1]
    if message.endswith(suffix):
        return message + '.'
    return f"{message}{suffix}."
