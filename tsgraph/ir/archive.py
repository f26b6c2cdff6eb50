from __future__ import annotations
import zipfile
from dataclasses import dataclass
from typing import List, Optional, Sequence

EXTENSIONS = ('pt', 'pt1', 'pth', 'pkl', 'h5', 't7', 'dms', 'model', 'ckpt')


@dataclass
class Entry:
    name: str
    data: bytes


def read_archive(path: str) -> List[Entry]:
    """Reads every file entry of a zip archive, in archive order."""
    with zipfile.ZipFile(path) as archive:
        return [Entry(info.filename, archive.read(info)) for info in archive.infolist() if not info.is_dir()]


def find_version_entry(entries: Sequence[Entry]) -> Optional[Entry]:
    return next((e for e in entries if e.name == 'version' or e.name.endswith('/version')), None)


def match(identifier: str, entries: Sequence[Entry]) -> bool:
    """True when the file name and entries look like a TorchScript archive."""
    extension = identifier.rsplit('.', 1)[-1].lower()
    if extension not in EXTENSIONS and not identifier.endswith('.pth.tar'):
        return False
    version = find_version_entry(entries)
    if version is None:
        return False
    prefix = version.name[:-len('version')]
    names = {e.name for e in entries}
    return prefix + 'model.json' in names or prefix + 'data.pkl' in names
