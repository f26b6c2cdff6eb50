from __future__ import annotations
import logging
import zipfile
from pathlib import Path
from typing import Optional, Sequence

from ..compiler.graph_builder import build_graph
from ..errors import FormatError, TorchScriptError, with_identifier
from .archive import Entry, match, read_archive
from .container import Container
from .metadata import Metadata
from .model_ir import Model

logger = logging.getLogger(__name__)


def open_model(identifier: str, entries: Sequence[Entry], metadata: Optional[Metadata] = None, config=None) -> Model:
    """Builds a Model from already-read archive entries.

    Any failure is re-raised as a TorchScriptError whose message names the
    archive; errors from outside the library become FormatError.
    """
    if metadata is None:
        metadata = Metadata.open(getattr(config, 'metadata_path', None) or None)
    try:
        container = Container(identifier, entries)
        graph = build_graph(container, metadata, config)
    except TorchScriptError as e:
        raise type(e)(with_identifier(str(e), identifier)) from e
    except Exception as e:
        raise FormatError(with_identifier(str(e) or type(e).__name__, identifier)) from e
    return Model(format=f"TorchScript v{container.version}", producer=container.producer, graphs=[graph])


def load_torchscript_as_model_ir(path: str, config=None) -> Model:
    """Reads a TorchScript zip archive from disk into the Model IR."""
    if not path:
        raise FormatError("No TorchScript archive given.")
    logger.info(f"Loading TorchScript archive '{path}'")
    try:
        entries = read_archive(path)
    except (zipfile.BadZipFile, OSError) as e:
        raise FormatError(with_identifier(str(e), Path(path).name)) from e
    if not match(Path(path).name, entries):
        logger.warning(f"'{path}' does not look like a TorchScript archive")
    return open_model(Path(path).name, entries, config=config)
