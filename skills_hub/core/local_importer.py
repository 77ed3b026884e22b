"""Discovery of installable skills inside a folder.

The same discovery rule is used for local folders and for cloned git
repositories:

- the base folder itself, when it holds a SKILL.md
- direct, non-hidden children of the base that hold a SKILL.md
- every child of `skills/`, `skills/.curated`, `skills/.experimental`
  and `skills/.system`; children there without a valid SKILL.md are
  reported as invalid candidates with a reason
"""
import logging
from pathlib import Path

from skills_hub.core.exceptions import InvalidSkillException, NotFoundException, ValidationException
from skills_hub.core.skill_manifest import SKILL_MD, read_manifest
from skills_hub.schemas.skill import SkillCandidate

logger = logging.getLogger(__name__)

SKILL_CONTAINER_DIRS = ("skills", "skills/.curated", "skills/.experimental", "skills/.system")


def _candidate(base: Path, skill_dir: Path) -> SkillCandidate:
    rel = skill_dir.relative_to(base).as_posix() if skill_dir != base else "."
    try:
        manifest = read_manifest(skill_dir)
    except InvalidSkillException as e:
        return SkillCandidate(name=skill_dir.name if rel != "." else base.name, subpath=rel, valid=False, reason=e.reason)
    return SkillCandidate(name=manifest.name, description=manifest.description, subpath=rel)


def _child_dirs(path: Path) -> list[Path]:
    try:
        return sorted((p for p in path.iterdir() if p.is_dir()), key=lambda p: p.name)
    except OSError as e:
        logger.warning(f"Could not list {path}: {e}")
        return []


def discover_candidates(base: Path) -> list[SkillCandidate]:
    """Every skill candidate under base, sorted by name and unique by subpath."""
    base = Path(base)
    found: dict[str, SkillCandidate] = {}

    def add(candidate: SkillCandidate) -> None:
        found.setdefault(candidate.subpath, candidate)

    if (base / SKILL_MD).exists():
        add(_candidate(base, base))

    for child in _child_dirs(base):
        if child.name.startswith(".") or child.name == "skills":
            continue
        if (child / SKILL_MD).exists():
            add(_candidate(base, child))

    for container in SKILL_CONTAINER_DIRS:
        container_dir = base / container
        if not container_dir.is_dir():
            continue
        for child in _child_dirs(container_dir):
            if child.name.startswith("."):
                continue
            add(_candidate(base, child))

    return sorted(found.values(), key=lambda c: (c.name.casefold(), c.subpath))


def list_local_candidates(base_path: str | Path) -> list[SkillCandidate]:
    """Candidates under a user-chosen folder, invalid ones included with a reason."""
    base = Path(base_path).expanduser()
    if not base.is_dir():
        raise NotFoundException(
            message="Folder not found",
            detail=f"{base} does not exist or is not a directory",
            suggested_action="Choose an existing folder"
        )
    candidates = discover_candidates(base)
    logger.info(f"Found {len(candidates)} skill candidates in {base}")
    return candidates


def resolve_selection(base_path: str | Path, subpath: str) -> Path:
    """Absolute folder for a candidate subpath, refusing paths that escape base."""
    base = Path(base_path).expanduser().resolve()
    selected = (base / subpath).resolve() if subpath not in ("", ".") else base
    if selected != base and base not in selected.parents:
        raise ValidationException(
            message="Invalid selection",
            detail=f"{subpath} is outside {base}",
            suggested_action="Pick one of the listed candidates"
        )
    if not selected.is_dir():
        raise NotFoundException(
            message="Skill folder not found",
            detail=f"{selected} does not exist",
            suggested_action="Refresh the candidate list and try again"
        )
    return selected
