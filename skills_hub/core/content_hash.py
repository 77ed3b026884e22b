"""Order-independent content fingerprints of skill directories."""
import hashlib
import logging
import os
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)

IGNORED_NAMES = frozenset({".git"})
_CHUNK_SIZE = 64 * 1024


def _walk_entries(root: Path) -> list[tuple[str, Path]]:
    """All entries under root as (relative posix path, absolute path), symlinks not followed."""
    entries = []
    for dirpath, dirnames, filenames in os.walk(root, followlinks=False):
        dirnames[:] = [d for d in dirnames if d not in IGNORED_NAMES]
        current = Path(dirpath)
        for name in dirnames + filenames:
            if name in IGNORED_NAMES:
                continue
            path = current / name
            entries.append((path.relative_to(root).as_posix(), path))
    entries.sort(key=lambda entry: entry[0])
    return entries


def hash_dir(root: Path) -> str:
    """SHA-256 over every file, directory and symlink beneath root.

    Entries are hashed in sorted relative-path order, so the result does not
    depend on directory listing order. Symlinks contribute their link text,
    not the content they point to.
    """
    digest = hashlib.sha256()
    for rel, path in _walk_entries(Path(root)):
        encoded = rel.encode("utf-8")
        if path.is_symlink():
            digest.update(b"L\0" + encoded + b"\0" + os.readlink(path).encode("utf-8") + b"\0")
        elif path.is_dir():
            digest.update(b"D\0" + encoded + b"\0")
        else:
            digest.update(b"F\0" + encoded + b"\0")
            with open(path, "rb") as f:
                for chunk in iter(lambda: f.read(_CHUNK_SIZE), b""):
                    digest.update(chunk)
            digest.update(b"\0")
    return digest.hexdigest()


def fingerprint(root: Path) -> Optional[str]:
    """hash_dir, or None when the directory cannot be read."""
    try:
        return hash_dir(root)
    except OSError as e:
        logger.warning(f"Could not fingerprint {root}: {e}")
        return None
