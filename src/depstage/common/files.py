"""File-system helpers shared by metadata writers."""
from __future__ import annotations

import os
import shutil
import tempfile


def atomic_write_text(path: str, text: str) -> None:
    """Write ``text`` to ``path`` so readers see either the old or the new file."""
    directory = os.path.dirname(path) or "."
    os.makedirs(directory, exist_ok=True)
    fd, tmp = tempfile.mkstemp(dir=directory, prefix=f".{os.path.basename(path)}-")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            fh.write(text)
            fh.flush()
            os.fsync(fh.fileno())
        os.replace(tmp, path)
    except BaseException:
        if os.path.exists(tmp):
            os.unlink(tmp)
        raise


def copy_file(source: str, dest: str) -> str:
    """Copy ``source`` to ``dest`` creating parent directories."""
    os.makedirs(os.path.dirname(dest) or ".", exist_ok=True)
    shutil.copyfile(source, dest)
    return dest
