"""Central repository of managed skills.

Storage structure:
    {central_repo}/
    ├── {skill-name}/          <- canonical copy of each managed skill
    │   ├── SKILL.md
    │   └── ...
    └── .skills-hub-update-*   <- transient staging folders during updates

The index (SQLite) records one row per skill with its provenance, content
hash and per-tool targets. Filesystem changes always happen before the
index is written, so a failed operation never leaves a record pointing at
content that is not there.
"""
from __future__ import annotations

import asyncio
import logging
import shutil
from pathlib import Path
from typing import Optional
from uuid import uuid4

from skills_hub.core import link_engine
from skills_hub.core.content_hash import hash_dir
from skills_hub.core.exceptions import AlreadyExistsException, SkillNotFoundException, StorageException, ValidationException
from skills_hub.core.skill_manifest import SKILL_MD, load_metadata, read_manifest
from skills_hub.core.source_fetcher import SourceFetcher
from skills_hub.core.sync_reconciler import SyncReconciler, target_from_row
from skills_hub.database import SQLiteDatabase
from skills_hub.schemas.skill import (
    GitSource,
    LocalSource,
    ManagedSkill,
    RegistrySource,
    SkillMetadata,
    SkillSource,
    UpdateResult,
)

logger = logging.getLogger(__name__)

CENTRAL_REPO_SETTING = "central_repo_path"
UPDATE_STAGING_PREFIX = ".skills-hub-update-"


def _source_columns(source: SkillSource) -> dict:
    if isinstance(source, LocalSource):
        return {"source_type": "local", "source_ref": source.path, "source_subpath": None, "source_revision": None}
    if isinstance(source, GitSource):
        return {"source_type": "git", "source_ref": source.repo_url,
                "source_subpath": source.subpath, "source_revision": source.revision}
    if isinstance(source, RegistrySource):
        return {"source_type": "registry", "source_ref": source.package,
                "source_subpath": source.subpath, "source_revision": source.revision}
    raise TypeError(f"Unsupported skill source: {source!r}")


def _source_from_row(row: dict) -> SkillSource:
    source_type = row["source_type"]
    if source_type == "local":
        return LocalSource(path=row["source_ref"] or "")
    if source_type == "git":
        return GitSource(repo_url=row["source_ref"] or "", subpath=row.get("source_subpath"),
                         revision=row.get("source_revision"))
    if source_type == "registry":
        return RegistrySource(package=row["source_ref"] or "", subpath=row.get("source_subpath"),
                              revision=row.get("source_revision"))
    raise ValueError(f"Unknown source type in index: {source_type}")


class SkillStore:
    """Owns the central repository and the skill index."""

    def __init__(
        self,
        db: SQLiteDatabase,
        reconciler: SyncReconciler,
        fetcher: SourceFetcher,
        default_central_repo: Path,
    ):
        self.db = db
        self.reconciler = reconciler
        self.fetcher = fetcher
        self.default_central_repo = Path(default_central_repo)

    # Central repository location

    async def get_central_repo(self) -> Path:
        override = await self.db.settings.get_value(CENTRAL_REPO_SETTING)
        return Path(override).expanduser() if override else self.default_central_repo

    async def set_central_repo(self, path: str) -> Path:
        """Change where new skills are stored. Existing skills stay where they are."""
        new_path = Path(path).expanduser()
        if not new_path.is_absolute():
            raise ValidationException(
                message="Central repository path must be absolute",
                detail=path,
            )
        if new_path.exists() and not new_path.is_dir():
            raise ValidationException(
                message="Central repository path is not a directory",
                detail=str(new_path),
            )
        new_path.mkdir(parents=True, exist_ok=True)
        await self.db.settings.set_value(CENTRAL_REPO_SETTING, str(new_path))
        logger.info(f"Central repository set to {new_path}")
        return new_path

    def _to_skill(self, row: dict, target_rows: list[dict]) -> ManagedSkill:
        metadata = row.get("metadata")
        return ManagedSkill(
            id=row["id"],
            name=row["name"],
            source=_source_from_row(row),
            central_path=row["central_path"],
            content_hash=row.get("content_hash"),
            metadata=SkillMetadata.model_validate(metadata) if metadata else None,
            status=row.get("status") or "ok",
            created_at=row["created_at"],
            updated_at=row["updated_at"],
            last_sync_at=row.get("last_sync_at"),
            targets=[target_from_row(t) for t in target_rows],
        )

    # Queries

    async def find(self, skill_id: str) -> Optional[ManagedSkill]:
        row = await self.db.skills.get(skill_id)
        if row is None:
            return None
        return self._to_skill(row, await self.db.skill_targets.list_by_skill(skill_id))

    async def get(self, skill_id: str) -> ManagedSkill:
        skill = await self.find(skill_id)
        if skill is None:
            raise SkillNotFoundException(
                detail=f"Skill with ID '{skill_id}' does not exist",
                suggested_action="Refresh the skill list and try again"
            )
        return skill

    async def list(self) -> list[ManagedSkill]:
        rows = await self.db.skills.list()
        targets: dict[str, list[dict]] = {}
        for target in await self.db.skill_targets.list():
            targets.setdefault(target["skill_id"], []).append(target)
        return [self._to_skill(row, targets.get(row["id"], [])) for row in rows]

    # Mutations

    async def install(self, content_dir: Path, name: Optional[str], source: SkillSource) -> ManagedSkill:
        """Copy a skill folder into the central repository and index it.

        Raises:
            InvalidSkillException: content_dir has no valid SKILL.md
            AlreadyExistsException: a managed skill already uses the name
        """
        content_dir = Path(content_dir)
        manifest = read_manifest(content_dir)
        name = (name or manifest.name).strip()
        if not name:
            raise ValidationException(message="Skill name is required")

        if await self.db.skills.get_by_name(name):
            raise AlreadyExistsException(name)

        central_root = await self.get_central_repo()
        central_path = central_root / link_engine.safe_dir_name(name)
        if link_engine.path_exists(central_path):
            raise AlreadyExistsException(
                name,
                path=central_path,
                detail=f"{central_path} already exists in the central repository"
            )

        await asyncio.to_thread(link_engine.copy_tree, content_dir, central_path)
        try:
            content_hash = await asyncio.to_thread(hash_dir, central_path)
            metadata = load_metadata(central_path, manifest)
            item = {
                "id": str(uuid4()),
                "name": name,
                "name_key": name.casefold(),
                **_source_columns(source),
                "central_path": str(central_path),
                "content_hash": content_hash,
                "metadata": metadata.model_dump() if metadata else None,
                "status": "ok",
            }
            await self.db.skills.put(item)
        except BaseException:
            # Keep the central repository in step with the index
            shutil.rmtree(central_path, ignore_errors=True)
            raise

        logger.info(f"Installed skill '{name}' from {source.source_type} into {central_path}")
        return await self.get(item["id"])

    async def update(self, skill_id: str) -> UpdateResult:
        """Re-fetch a skill from its source and swap the new content in.

        Unchanged content (same hash) leaves the central copy and every
        target untouched. Otherwise copy-mode targets are re-copied.
        """
        skill = await self.get(skill_id)
        central = Path(skill.central_path)
        if not central.is_dir():
            raise StorageException(
                message="Central copy missing",
                detail=f"{central} does not exist",
                suggested_action="Delete the skill and install it again"
            )

        staging = central.parent / f"{UPDATE_STAGING_PREFIX}{uuid4().hex}"
        try:
            revision = await self.fetcher.materialize(skill.source, staging)
            manifest = read_manifest(staging)
            new_hash = await asyncio.to_thread(hash_dir, staging)

            if new_hash == skill.content_hash:
                if revision and revision != getattr(skill.source, "revision", None):
                    await self.db.skills.update(skill.id, {"source_revision": revision, "updated_at": skill.updated_at})
                logger.info(f"Skill '{skill.name}' is up to date")
                return UpdateResult(
                    skill_id=skill.id,
                    name=skill.name,
                    content_hash=skill.content_hash,
                    source_revision=revision,
                    changed=False,
                )

            await asyncio.to_thread(link_engine.replace_dir, staging, central)
        finally:
            if staging.exists():
                shutil.rmtree(staging, ignore_errors=True)

        metadata = load_metadata(central, manifest)
        updates = {
            "content_hash": new_hash,
            "metadata": metadata.model_dump() if metadata else None,
            "status": "ok",
        }
        if revision:
            updates["source_revision"] = revision
        await self.db.skills.update(skill.id, updates)

        updated_targets = await self.reconciler.refresh_copies(skill)
        logger.info(f"Updated skill '{skill.name}' ({len(updated_targets)} copied targets refreshed)")
        return UpdateResult(
            skill_id=skill.id,
            name=skill.name,
            content_hash=new_hash,
            source_revision=revision,
            changed=True,
            updated_targets=updated_targets,
        )

    async def delete(self, skill_id: str) -> None:
        """Remove every target, then the central copy, then the index record.

        If any target cannot be removed the index record is kept so the
        delete can be retried.
        """
        skill = await self.get(skill_id)
        await self.reconciler.remove_all(skill)

        central = Path(skill.central_path)
        if link_engine.path_exists(central):
            try:
                await asyncio.to_thread(link_engine.remove_path, central)
            except OSError as e:
                raise StorageException(
                    message="Failed to remove skill from the central repository",
                    detail=f"{central}: {e}",
                    suggested_action="Close any program using the folder and retry"
                ) from e

        await self.db.skills.delete(skill.id)
        logger.info(f"Deleted skill '{skill.name}'")

    async def read_content(self, central_path: str) -> str:
        """SKILL.md text of a managed skill."""
        path = Path(central_path)
        skill = await self.db.skills.get_by_central_path(str(path))
        if skill is None:
            raise SkillNotFoundException(
                detail=f"No managed skill is stored at {central_path}",
                suggested_action="Refresh the skill list and try again"
            )
        skill_md = path / SKILL_MD
        try:
            return skill_md.read_text(encoding="utf-8")
        except OSError as e:
            raise StorageException(message="Failed to read SKILL.md", detail=f"{skill_md}: {e}") from e
