"""File helpers shared by uploads and relayed shareables."""

import os
from pathlib import Path


def safe_file_name(name: str) -> str:
    """Reduce a client-supplied name to a bare file name."""
    cleaned = Path(name.replace("\\", "/")).name
    if cleaned in ("", ".", ".."):
        raise ValueError("File name must not be empty")
    return cleaned


def write_file(directory: Path, name: str, data: bytes) -> Path:
    """Write ``data`` to ``directory/name`` via a temp file and rename."""
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / name
    tmp = path.with_name(f".{name}.part")
    tmp.write_bytes(data)
    os.replace(tmp, path)
    return path
