"""SKILL.md manifest parsing and optional skill.yaml / skill.json metadata."""
import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import yaml
from pydantic import ValidationError

from skills_hub.core.exceptions import InvalidSkillException
from skills_hub.schemas.skill import SkillMetadata

logger = logging.getLogger(__name__)

SKILL_MD = "SKILL.md"
METADATA_FILES = ("skill.yaml", "skill.yml", "skill.json")
FRONTMATTER_DELIMITER = "---"

# Reason codes reported for invalid skill directories
MISSING_SKILL_MD = "missing_skill_md"
READ_FAILED = "read_failed"
INVALID_FRONTMATTER = "invalid_frontmatter"
MISSING_NAME = "missing_name"


@dataclass
class SkillManifest:
    """The parts of SKILL.md frontmatter the hub relies on."""
    name: str
    description: Optional[str] = None
    frontmatter: Optional[dict] = None


def _split_frontmatter(content: str) -> Optional[str]:
    """Text between the opening and closing '---' lines, or None."""
    lines = content.lstrip("\ufeff").splitlines()
    if not lines or lines[0].strip() != FRONTMATTER_DELIMITER:
        return None
    for index, line in enumerate(lines[1:], start=1):
        if line.strip() == FRONTMATTER_DELIMITER:
            return "\n".join(lines[1:index])
    return None


def _parse_simple_frontmatter(block: str) -> dict:
    """Line-based `key: value` parsing for frontmatter that is not strict YAML.

    Descriptions such as `description: Use when: ...` are common in the
    wild and are rejected by a YAML parser.
    """
    values = {}
    for line in block.splitlines():
        if not line or line[0].isspace() or ":" not in line:
            continue
        key, _, value = line.partition(":")
        values[key.strip()] = value.strip().strip('"').strip("'")
    return values


def parse_frontmatter(content: str) -> dict:
    """Parse SKILL.md frontmatter into a dict.

    Raises:
        InvalidSkillException: no delimited frontmatter block
    """
    block = _split_frontmatter(content)
    if block is None:
        raise InvalidSkillException(INVALID_FRONTMATTER)
    try:
        data = yaml.safe_load(block)
    except yaml.YAMLError:
        data = _parse_simple_frontmatter(block)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise InvalidSkillException(INVALID_FRONTMATTER)
    return data


def read_manifest(skill_dir: Path) -> SkillManifest:
    """Read and validate SKILL.md in skill_dir.

    Raises:
        InvalidSkillException: with reason missing_skill_md, read_failed,
            invalid_frontmatter or missing_name
    """
    skill_md = Path(skill_dir) / SKILL_MD
    if not skill_md.is_file():
        raise InvalidSkillException(MISSING_SKILL_MD, path=Path(skill_dir))
    try:
        content = skill_md.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise InvalidSkillException(READ_FAILED, path=skill_md, detail=f"{skill_md}: {e}") from e

    try:
        frontmatter = parse_frontmatter(content)
    except InvalidSkillException as e:
        raise InvalidSkillException(e.reason, path=skill_md) from e

    name = frontmatter.get("name")
    if not isinstance(name, str) or not name.strip():
        raise InvalidSkillException(MISSING_NAME, path=skill_md)

    description = frontmatter.get("description")
    if description is not None and not isinstance(description, str):
        description = str(description)
    return SkillManifest(
        name=name.strip(),
        description=description.strip() if description else None,
        frontmatter=frontmatter,
    )


def _load_metadata_file(path: Path) -> Optional[SkillMetadata]:
    try:
        content = path.read_text(encoding="utf-8")
        if path.suffix == ".json":
            data = json.loads(content)
        else:
            data = yaml.safe_load(content)
        return SkillMetadata.model_validate(data)
    except (OSError, ValueError, yaml.YAMLError, ValidationError) as e:
        # json.JSONDecodeError is a ValueError
        logger.warning(f"Ignoring unreadable skill metadata {path}: {e}")
        return None


def load_metadata(skill_dir: Path, manifest: Optional[SkillManifest] = None) -> Optional[SkillMetadata]:
    """Metadata for a skill directory.

    skill.yaml, skill.yml and skill.json are tried in that order; otherwise
    the SKILL.md frontmatter supplies what it can.
    """
    skill_dir = Path(skill_dir)
    for filename in METADATA_FILES:
        path = skill_dir / filename
        if path.is_file():
            metadata = _load_metadata_file(path)
            if metadata is not None:
                return metadata

    if manifest is None:
        try:
            manifest = read_manifest(skill_dir)
        except InvalidSkillException:
            return None

    frontmatter = manifest.frontmatter or {}
    tags = frontmatter.get("tags")
    return SkillMetadata(
        name=manifest.name,
        description=manifest.description,
        version=str(frontmatter["version"]) if frontmatter.get("version") is not None else None,
        author=str(frontmatter["author"]) if frontmatter.get("author") is not None else None,
        tags=[str(tag) for tag in tags] if isinstance(tags, list) else [],
    )
