"""Filesystem primitives for materializing skills in tool directories.

A skill is materialized either as a directory link pointing at its central
copy or as a full copy. Links are symlinks on POSIX and symlinks (or
junctions, when symlinks need privileges) on Windows. Every directory
replacement goes through a sibling staging directory so a reader never
sees a half-written skill.
"""
import logging
import os
import re
import shutil
import subprocess
from pathlib import Path
from typing import Optional
from uuid import uuid4

from skills_hub.core.exceptions import StorageException, TargetExistsException
from skills_hub.schemas.skill import SyncMode

logger = logging.getLogger(__name__)

IS_WINDOWS = os.name == "nt"
COPY_IGNORE = shutil.ignore_patterns(".git")

_UNSAFE_CHARS = re.compile(r'[<>:"/\\|?*\x00-\x1f]')


def safe_dir_name(name: str) -> str:
    """Folder name for a skill, safe on every supported platform."""
    cleaned = _UNSAFE_CHARS.sub("-", name).strip().rstrip(". ")
    if cleaned in ("", ".", ".."):
        return "skill"
    return cleaned


def path_exists(path: Path) -> bool:
    """True if anything (including a dangling link) occupies path."""
    return os.path.lexists(path)


def is_link(path: Path) -> bool:
    """True for symlinks and, on Windows, directory junctions."""
    if path.is_symlink():
        return True
    isjunction = getattr(os.path, "isjunction", None)
    return bool(isjunction and isjunction(path))


def read_link_target(path: Path) -> Optional[Path]:
    """Absolute, resolved target of a link, or None when path is not a link."""
    if not is_link(path):
        return None
    try:
        return path.resolve(strict=False)
    except OSError as e:
        logger.warning(f"Could not resolve link {path}: {e}")
        return None


def points_to(path: Path, source: Path) -> bool:
    target = read_link_target(path)
    return target is not None and target == Path(source).resolve()


def create_link(source: Path, target: Path) -> None:
    """Create a directory link at target pointing to the absolute source."""
    absolute_source = Path(source).resolve()
    try:
        target.symlink_to(absolute_source, target_is_directory=True)
    except OSError:
        if not IS_WINDOWS:
            raise
        # Junctions need no privileges on Windows
        result = subprocess.run(
            ["cmd", "/c", "mklink", "/J", str(target), str(absolute_source)],
            capture_output=True,
            text=True,
        )
        if result.returncode != 0:
            raise OSError(f"mklink /J failed: {result.stderr.strip() or result.stdout.strip()}")


def remove_path(path: Path) -> None:
    """Remove whatever occupies path. Links are removed without touching what they point to."""
    if is_link(path):
        if IS_WINDOWS and path.is_dir():
            os.rmdir(path)
        else:
            path.unlink()
    elif path.is_dir():
        shutil.rmtree(path)
    elif path_exists(path):
        path.unlink()


def _sibling(path: Path, tag: str) -> Path:
    return path.parent / f".{path.name}.skills-hub-{tag}-{uuid4().hex[:12]}"


def replace_dir(staging: Path, dst: Path) -> None:
    """Move a fully written staging directory into place at dst.

    An existing dst is renamed aside first and only removed once the
    staging directory is in place; on failure it is restored.
    """
    backup = None
    if path_exists(dst):
        if is_link(dst):
            remove_path(dst)
        else:
            backup = _sibling(dst, "old")
            os.replace(dst, backup)
    try:
        os.replace(staging, dst)
    except OSError:
        if backup is not None:
            os.replace(backup, dst)
        raise
    if backup is not None:
        shutil.rmtree(backup, ignore_errors=True)


def copy_tree(src: Path, dst: Path, overwrite: bool = False) -> None:
    """Copy a skill directory to dst through a staging directory.

    Symlinks inside the skill are copied as links and `.git` is skipped.

    Raises:
        TargetExistsException: dst exists and overwrite is False
        StorageException: the copy failed; dst is left as it was
    """
    src = Path(src)
    dst = Path(dst)
    if path_exists(dst) and not overwrite:
        raise TargetExistsException(dst)

    dst.parent.mkdir(parents=True, exist_ok=True)
    staging = _sibling(dst, "staging")
    try:
        shutil.copytree(src, staging, symlinks=True, ignore=COPY_IGNORE)
        replace_dir(staging, dst)
    except (OSError, shutil.Error) as e:
        shutil.rmtree(staging, ignore_errors=True)
        raise StorageException(
            message="Failed to copy skill",
            detail=f"{src} -> {dst}: {e}",
            suggested_action="Check permissions and free disk space, then retry"
        ) from e


def link(source: Path, target: Path, overwrite: bool = False, force_copy: bool = False) -> SyncMode:
    """Materialize source at target, returning the mode actually used.

    Symlink is preferred; a failed link falls back to a copy. With
    force_copy the link is never attempted.

    Raises:
        TargetExistsException: target is occupied and overwrite is False
    """
    target = Path(target)
    if path_exists(target) and not overwrite:
        raise TargetExistsException(target)

    if force_copy:
        copy_tree(source, target, overwrite=True)
        return SyncMode.COPY

    target.parent.mkdir(parents=True, exist_ok=True)
    try:
        remove_path(target)
        create_link(source, target)
        logger.debug(f"Created link: {target} -> {source}")
        return SyncMode.SYMLINK
    except OSError as e:
        logger.warning(f"Link failed for {target} ({e}), falling back to copy")
        copy_tree(source, target, overwrite=True)
        return SyncMode.COPY


def unlink_or_remove(target: Path) -> bool:
    """Remove a materialized skill. Returns False if nothing was there."""
    target = Path(target)
    if not path_exists(target):
        return False
    try:
        remove_path(target)
    except OSError as e:
        raise StorageException(
            message="Failed to remove skill from tool directory",
            detail=f"{target}: {e}",
            suggested_action="Close any program using the folder and retry"
        ) from e
    return True
