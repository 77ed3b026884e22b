"""Keeps tool directories in line with which tools each managed skill is synced to.

Tools that read skills from the same directory share one physical entry;
syncing or unsyncing any of them updates the records of all of them.
"""
import asyncio
import logging
from pathlib import Path
from typing import Iterable, Optional

from skills_hub.core import link_engine
from skills_hub.core.exceptions import AppException, StorageException
from skills_hub.core.tool_catalog import Tool, ToolCatalog
from skills_hub.database import SQLiteDatabase, now_ms
from skills_hub.schemas.skill import BatchResult, ManagedSkill, SyncMode, SyncTarget

logger = logging.getLogger(__name__)


def target_from_row(row: dict) -> SyncTarget:
    return SyncTarget(
        tool=row["tool"],
        mode=SyncMode(row["mode"]),
        status=row.get("status") or "ok",
        target_path=row["target_path"],
        synced_at=row.get("synced_at"),
        last_error=row.get("last_error"),
    )


class SyncReconciler:
    """Creates and removes skill entries in tool directories and records them."""

    def __init__(self, db: SQLiteDatabase, catalog: ToolCatalog, forced_copy_tools: Iterable[str] = ("cursor",)):
        self.db = db
        self.catalog = catalog
        self.forced_copy_tools = frozenset(forced_copy_tools)

    def target_path(self, tool: Tool, skill_name: str) -> Path:
        return self.catalog.skills_dir(tool) / link_engine.safe_dir_name(skill_name)

    def requires_copy(self, tool: Tool) -> bool:
        """True if this tool, or any tool sharing its directory, cannot follow symlinks."""
        return any(t.key in self.forced_copy_tools for t in self.catalog.shared_with(tool.key))

    async def _save_target(self, skill_id: str, target: SyncTarget) -> None:
        await self.db.skill_targets.put({
            "skill_id": skill_id,
            "tool": target.tool,
            "target_path": target.target_path,
            "mode": target.mode.value,
            "status": target.status,
            "last_error": target.last_error,
            "synced_at": target.synced_at,
        })

    async def list_targets(self, skill_id: str) -> list[SyncTarget]:
        rows = await self.db.skill_targets.list_by_skill(skill_id)
        return [target_from_row(row) for row in rows]

    def _is_own_entry(self, target: SyncTarget, central: Path) -> bool:
        path = Path(target.target_path)
        if target.mode == SyncMode.SYMLINK:
            return link_engine.points_to(path, central)
        return path.is_dir() and not link_engine.is_link(path)

    async def _remove_entry(self, target: SyncTarget, central: Path) -> bool:
        """Remove a recorded entry if it still holds the skill. Returns True if removed."""
        path = Path(target.target_path)
        if self._is_own_entry(target, central):
            return await asyncio.to_thread(link_engine.unlink_or_remove, path)
        if link_engine.path_exists(path):
            logger.warning(f"{path} no longer holds the skill's {target.mode.value}; leaving it in place")
        return False

    async def sync_to_tool(
        self,
        skill: ManagedSkill,
        tool_key: str,
        overwrite: bool = False,
        name: Optional[str] = None,
    ) -> SyncTarget:
        """Materialize skill in a tool's skills directory.

        If the entry is already in place for this tool, or for a tool sharing
        its directory, only the records are refreshed.

        Raises:
            ToolNotFoundException: unknown tool key
            TargetExistsException: a foreign entry occupies the path and overwrite is False
        """
        tool = self.catalog.resolve(tool_key)
        siblings = self.catalog.shared_with(tool.key)
        sibling_keys = {t.key for t in siblings}
        central = Path(skill.central_path)
        if not central.is_dir():
            raise StorageException(
                message="Central copy missing",
                detail=f"{central} does not exist",
                suggested_action="Update or reinstall the skill"
            )

        target_path = self.target_path(tool, name or skill.name)
        recorded = [t for t in await self.list_targets(skill.id) if t.tool in sibling_keys]
        held = [t for t in recorded if Path(t.target_path) == target_path]
        # Entries recorded under a previous name for this directory
        renamed = [t for t in recorded if Path(t.target_path) != target_path]

        if held and not overwrite and self._is_own_entry(held[0], central):
            mode = held[0].mode
            logger.debug(f"{skill.name} already present at {target_path}")
        else:
            mode = await asyncio.to_thread(
                link_engine.link,
                central,
                target_path,
                overwrite,
                self.requires_copy(tool),
            )
            logger.info(f"Synced {skill.name} to {tool.key} ({mode.value}) at {target_path}")

        for path in sorted({t.target_path for t in renamed}):
            previous = next(t for t in renamed if t.target_path == path)
            await self._remove_entry(previous, central)

        synced_at = now_ms()
        result = None
        for sibling in siblings:
            target = SyncTarget(tool=sibling.key, mode=mode, target_path=str(target_path), synced_at=synced_at)
            await self._save_target(skill.id, target)
            if sibling.key == tool.key:
                result = target
        await self.db.skills.update(skill.id, {"last_sync_at": synced_at, "updated_at": skill.updated_at})
        return result

    async def unsync_from_tool(self, skill: ManagedSkill, tool_key: str) -> list[str]:
        """Remove skill from a tool directory. Returns the tool keys whose records were removed.

        Nothing is touched when the skill has no record for the tool, so an
        unmanaged folder with the same name is never deleted. A recorded
        path that no longer holds this skill keeps its content; only the
        record goes.
        """
        tool = self.catalog.resolve(tool_key)
        sibling_keys = {t.key for t in self.catalog.shared_with(tool.key)}
        held = [t for t in await self.list_targets(skill.id) if t.tool in sibling_keys]
        if not held:
            logger.debug(f"{skill.name} is not synced to {tool.key}")
            return []

        central = Path(skill.central_path)
        for path in sorted({t.target_path for t in held}):
            await self._remove_entry(next(t for t in held if t.target_path == path), central)

        for target in held:
            await self.db.skill_targets.delete_by_skill_and_tool(skill.id, target.tool)
        logger.info(f"Removed {skill.name} from {', '.join(sorted(t.tool for t in held))}")
        return [t.tool for t in held]

    async def remove_all(self, skill: ManagedSkill) -> None:
        """Remove every materialization of skill. Stops at the first failure."""
        for target in await self.list_targets(skill.id):
            if self.catalog.find(target.tool) is None:
                # Tool dropped from the catalog
                await self._remove_entry(target, Path(skill.central_path))
                await self.db.skill_targets.delete_by_skill_and_tool(skill.id, target.tool)
                continue
            # A sibling's unsync may already have removed this record
            if await self.db.skill_targets.get_by_skill_and_tool(skill.id, target.tool):
                await self.unsync_from_tool(skill, target.tool)

    async def sync_all(self, skill: ManagedSkill, sync: bool = True, tools: Optional[list[str]] = None) -> BatchResult:
        """Bring skill to the desired state in each tool (every installed tool by default).

        Each tool is attempted independently; failures are reported per tool.
        """
        keys = tools if tools is not None else [t.key for t in self.catalog.installed()]
        result = BatchResult()
        handled: set[str] = set()
        for key in keys:
            if key in handled:
                continue
            handled.add(key)
            try:
                if sync:
                    await self.sync_to_tool(skill, key)
                else:
                    await self.unsync_from_tool(skill, key)
            except AppException as e:
                logger.warning(f"Sync of {skill.name} to {key} failed: {e}")
                result.add_failure(key, str(e), e.code)
                continue
            except OSError as e:
                logger.warning(f"Sync of {skill.name} to {key} failed: {e}")
                result.add_failure(key, str(e), "IO_ERROR")
                continue
            result.add_success(key)
            for sibling in self.catalog.shared_with(key):
                if sibling.key in keys and sibling.key not in handled:
                    handled.add(sibling.key)
                    result.add_success(sibling.key)
        return result

    async def refresh_copies(self, skill: ManagedSkill) -> list[str]:
        """Re-copy central content into copy-mode targets after the central copy changed.

        Symlinked targets already see the new content. Targets of tools that
        are no longer installed are skipped.
        """
        central = Path(skill.central_path)
        updated = []
        copied_paths: set[str] = set()
        for target in await self.list_targets(skill.id):
            tool = self.catalog.find(target.tool)
            if tool is None or not self.catalog.is_installed(tool):
                logger.debug(f"Skipping {target.tool}: not installed")
                continue
            if target.mode != SyncMode.COPY and not self.requires_copy(tool):
                continue
            if target.target_path not in copied_paths:
                await asyncio.to_thread(link_engine.copy_tree, central, Path(target.target_path), True)
                copied_paths.add(target.target_path)
            await self._save_target(skill.id, target.model_copy(update={
                "mode": SyncMode.COPY,
                "status": "ok",
                "last_error": None,
                "synced_at": now_ms(),
            }))
            updated.append(target.tool)
        return updated
