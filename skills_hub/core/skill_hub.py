"""Skills hub service: the operations the UI calls.

SkillHub wires the tool catalog, central store, sync reconciler, git cache
and onboarding scanner together and serializes mutations per skill. All
state is owned by the instance; main.py creates one per application.
"""
import asyncio
import logging
import shutil
from pathlib import Path
from typing import Optional

from skills_hub.config import Settings
from skills_hub.core.exceptions import (
    AppException,
    InvalidSkillException,
    MultipleSkillsException,
    NotFoundException,
    ValidationException,
)
from skills_hub.core.git_cache import GitCacheManager
from skills_hub.core.local_importer import discover_candidates, list_local_candidates, resolve_selection
from skills_hub.core.locks import KeyedLocks
from skills_hub.core.onboarding import OnboardingScanner, managed_target_key
from skills_hub.core.registry import find_package_skill, parse_registry_package
from skills_hub.core.skill_manifest import MISSING_SKILL_MD
from skills_hub.core.skill_store import UPDATE_STAGING_PREFIX, SkillStore
from skills_hub.core.source_fetcher import SourceFetcher
from skills_hub.core.sync_reconciler import SyncReconciler
from skills_hub.core.tool_catalog import ToolCatalog
from skills_hub.database import SQLiteDatabase
from skills_hub.schemas.onboarding import AdoptRequest, AdoptResult, OnboardingPlan
from skills_hub.schemas.settings import GitCacheSettings
from skills_hub.schemas.skill import (
    BatchResult,
    GitSelection,
    GitSource,
    LocalSource,
    ManagedSkill,
    RegistrySource,
    SkillCandidate,
    SyncTarget,
    UpdateResult,
)
from skills_hub.schemas.tool import ToolInfo, ToolStatus

logger = logging.getLogger(__name__)

GIT_CACHE_TTL_SETTING = "git_cache_ttl_secs"
GIT_CACHE_CLEANUP_DAYS_SETTING = "git_cache_cleanup_days"
INSTALLED_TOOLS_SETTING = "installed_tools"


def _selection_subpath(subpath: str) -> Optional[str]:
    subpath = subpath.strip().strip("/")
    return None if subpath in ("", ".") else subpath


class SkillHub:
    """Coordinates every skill operation."""

    def __init__(self, db: SQLiteDatabase, app_settings: Settings):
        self.db = db
        self.settings = app_settings
        self.catalog = ToolCatalog(app_settings.get_home_dir())
        self.git_cache = GitCacheManager(
            app_settings.get_git_cache_dir(),
            ttl_secs=app_settings.git_cache_ttl_secs,
            timeout_secs=app_settings.git_timeout_secs,
        )
        self.reconciler = SyncReconciler(db, self.catalog, app_settings.forced_copy_tools)
        self.store = SkillStore(
            db,
            self.reconciler,
            SourceFetcher(self.git_cache),
            app_settings.get_central_repo_path(),
        )
        self.onboarding = OnboardingScanner(self.catalog)
        self._skill_locks = KeyedLocks()
        # Name uniqueness is checked before the copy; installs run one at a time
        self._install_lock = asyncio.Lock()

    async def initialize(self) -> None:
        """Create the index schema and apply persisted settings."""
        await self.db.initialize()
        ttl = await self.db.settings.get_value(GIT_CACHE_TTL_SETTING)
        if ttl is not None:
            self.git_cache.ttl_secs = int(ttl)
        central = await self.store.get_central_repo()
        central.mkdir(parents=True, exist_ok=True)
        logger.info(f"Skills hub ready (central repository {central})")

    async def run_startup_maintenance(self) -> None:
        """Expire old git clones and drop staging folders left by interrupted operations."""
        try:
            await self.cleanup_git_cache()
        except AppException as e:
            logger.warning(f"Git cache cleanup failed: {e}")

        central = await self.store.get_central_repo()
        if not central.is_dir():
            return
        for child in central.iterdir():
            if child.name.startswith(UPDATE_STAGING_PREFIX) or ".skills-hub-staging-" in child.name:
                logger.info(f"Removing leftover staging folder {child}")
                shutil.rmtree(child, ignore_errors=True)

    # Tools & onboarding

    async def get_tool_status(self) -> ToolStatus:
        """Which tools are installed, and which became installed since the previous check."""
        tools = [
            ToolInfo(
                key=tool.key,
                label=tool.label,
                installed=self.catalog.is_installed(tool),
                skills_dir=str(self.catalog.skills_dir(tool)),
            )
            for tool in self.catalog.all()
        ]
        installed = [t.key for t in tools if t.installed]
        previous = await self.db.settings.get_json(INSTALLED_TOOLS_SETTING)
        newly_installed = [] if previous is None else [key for key in installed if key not in previous]
        await self.db.settings.set_json(INSTALLED_TOOLS_SETTING, installed)
        if newly_installed:
            logger.info(f"Newly installed tools: {newly_installed}")
        return ToolStatus(tools=tools, installed=installed, newly_installed=newly_installed)

    async def get_onboarding_plan(self) -> OnboardingPlan:
        skills = await self.store.list()
        managed_targets = [managed_target_key(t.tool, t.target_path) for s in skills for t in s.targets]
        central = await self.store.get_central_repo()
        return await asyncio.to_thread(
            self.onboarding.build_plan,
            central,
            managed_targets,
            [s.name for s in skills],
        )

    async def adopt_onboarding_group(self, name: str, tool: Optional[str] = None) -> AdoptResult:
        """Bring an unmanaged skill under management and link every tool that had it.

        The chosen variant (the one from `tool`, or the first) becomes the
        central copy; every tool in the group then gets a link to it,
        replacing its own copy.
        """
        plan = await self.get_onboarding_plan()
        group = next((g for g in plan.groups if g.name.casefold() == name.casefold()), None)
        if group is None:
            raise NotFoundException(
                message="Skill not found in tool directories",
                detail=f"No unmanaged skill named '{name}'",
                suggested_action="Refresh the onboarding plan"
            )
        variant = group.variants[0]
        if tool is not None:
            variant = next((v for v in group.variants if v.tool == tool), None)
            if variant is None:
                raise NotFoundException(
                    message="Variant not found",
                    detail=f"'{name}' was not found for tool '{tool}'",
                )

        source_dir = Path(variant.link_target) if variant.is_link and variant.link_target else Path(variant.path)
        skill = await self.install_local(str(source_dir), group.name)

        sync = BatchResult()
        handled: set[str] = set()
        async with self._skill_locks.hold(skill.id):
            for v in group.variants:
                if v.tool in handled:
                    continue
                try:
                    await self.reconciler.sync_to_tool(skill, v.tool, overwrite=True, name=Path(v.path).name)
                except (AppException, OSError) as e:
                    logger.warning(f"Could not link adopted '{skill.name}' into {v.tool}: {e}")
                    sync.add_failure(v.tool, str(e), getattr(e, "code", "IO_ERROR"))
                    handled.add(v.tool)
                    continue
                for sibling in self.catalog.shared_with(v.tool):
                    if sibling.key not in handled:
                        handled.add(sibling.key)
                        sync.add_success(sibling.key)
            skill = await self.store.get(skill.id)
        return AdoptResult(skill=skill, sync=sync)

    async def adopt_onboarding_groups(self, selections: list[AdoptRequest]) -> BatchResult:
        result = BatchResult()
        for selection in selections:
            try:
                adopted = await self.adopt_onboarding_group(selection.name, selection.tool)
            except AppException as e:
                result.add_failure(selection.name, str(e), e.code)
                continue
            if adopted.sync.error_count:
                result.add_failure(selection.name, "Adopted, but some tools could not be linked", "PARTIAL")
            else:
                result.add_success(selection.name)
        return result

    async def import_existing_skill(self, source_path: str, name: Optional[str] = None) -> ManagedSkill:
        """Manage a skill folder in place.

        When the folder lives in a tool's skills directory it is replaced by
        a link to the new central copy and recorded as that tool's target.
        """
        path = Path(source_path).expanduser()
        skill = await self.install_local(str(path), name)
        owners = [t for t in self.catalog.all() if self.catalog.skills_dir(t) == path.parent]
        if owners:
            async with self._skill_locks.hold(skill.id):
                await self.reconciler.sync_to_tool(skill, owners[0].key, overwrite=True, name=path.name)
        return await self.store.get(skill.id)

    # Managed skills

    async def get_managed_skills(self) -> list[ManagedSkill]:
        return await self.store.list()

    async def get_managed_skill(self, skill_id: str) -> ManagedSkill:
        return await self.store.get(skill_id)

    async def read_skill_content(self, central_path: str) -> str:
        return await self.store.read_content(central_path)

    async def _install(self, content_dir: Path, name: Optional[str], source) -> ManagedSkill:
        async with self._install_lock:
            return await self.store.install(content_dir, name, source)

    # Local import

    async def list_local_candidates(self, base_path: str) -> list[SkillCandidate]:
        return await asyncio.to_thread(list_local_candidates, base_path)

    async def install_local(self, source_path: str, name: Optional[str] = None) -> ManagedSkill:
        """Install a skill folder. A folder that is a git checkout is recorded with its origin."""
        path = Path(source_path).expanduser()
        if not path.is_dir():
            raise NotFoundException(
                message="Folder not found",
                detail=f"{path} does not exist or is not a directory",
                suggested_action="Choose an existing skill folder"
            )
        origin = await self.git_cache.find_origin(path)
        if origin is not None:
            repo_url, revision = origin
            source = GitSource(repo_url=repo_url, revision=revision)
        else:
            source = LocalSource(path=str(path.resolve()))
        return await self._install(path, name, source)

    async def install_local_selection(self, base_path: str, subpath: str, name: Optional[str] = None) -> ManagedSkill:
        path = resolve_selection(base_path, subpath)
        return await self.install_local(str(path), name)

    # Git

    async def list_git_candidates(self, repo_url: str) -> list[SkillCandidate]:
        async with self.git_cache.checked_out(repo_url) as (base, _, _):
            candidates = await asyncio.to_thread(discover_candidates, base)
        return [c for c in candidates if c.valid]

    def _single_skill_subpath(self, base: Path) -> str:
        """Subpath of the only skill under base.

        Raises:
            MultipleSkillsException: the repository's skills/ folder holds two or
                more skills, or there is no root skill and several candidates
            InvalidSkillException: no skill at all
        """
        candidates = [c for c in discover_candidates(base) if c.valid]
        root = next((c for c in candidates if c.subpath == "."), None)
        in_skills_dir = [c for c in candidates if c.subpath.startswith("skills/")]
        if len(in_skills_dir) >= 2 or (root is None and len(candidates) >= 2):
            raise MultipleSkillsException(candidates=candidates)
        if root is not None:
            return "."
        if len(candidates) == 1:
            return candidates[0].subpath
        raise InvalidSkillException(MISSING_SKILL_MD, path=base)

    async def install_git(self, repo_url: str, name: Optional[str] = None) -> ManagedSkill:
        """Install the single skill a repository (or repository subfolder URL) contains."""
        async with self.git_cache.checked_out(repo_url) as (base, revision, _):
            subpath = self._single_skill_subpath(base)
            path = resolve_selection(base, subpath)
            source = GitSource(repo_url=repo_url, subpath=_selection_subpath(subpath), revision=revision)
            return await self._install(path, name, source)

    async def install_git_selection(self, repo_url: str, subpath: str, name: Optional[str] = None) -> ManagedSkill:
        async with self.git_cache.checked_out(repo_url) as (base, revision, _):
            path = resolve_selection(base, subpath)
            source = GitSource(repo_url=repo_url, subpath=_selection_subpath(subpath), revision=revision)
            return await self._install(path, name, source)

    async def install_git_selections(self, repo_url: str, selections: list[GitSelection]) -> BatchResult:
        """Install several candidates from one repository; each succeeds or fails on its own."""
        result = BatchResult()
        for selection in selections:
            key = selection.name or selection.subpath
            try:
                await self.install_git_selection(repo_url, selection.subpath, selection.name)
            except AppException as e:
                logger.warning(f"Install of {key} from {repo_url} failed: {e}")
                result.add_failure(key, str(e), e.code)
                continue
            result.add_success(key)
        return result

    async def install_from_registry(self, package: str, name: Optional[str] = None) -> ManagedSkill:
        pkg = parse_registry_package(package)
        async with self.git_cache.checked_out(pkg.repo_url) as (base, revision, _):
            candidate = await asyncio.to_thread(find_package_skill, base, pkg)
            path = resolve_selection(base, candidate.subpath)
            source = RegistrySource(package=str(pkg), subpath=_selection_subpath(candidate.subpath), revision=revision)
            return await self._install(path, name, source)

    # Sync

    async def sync_skill_to_tool(
        self,
        skill_id: str,
        tool: str,
        source_path: Optional[str] = None,
        name: Optional[str] = None,
        overwrite: bool = False,
    ) -> SyncTarget:
        async with self._skill_locks.hold(skill_id):
            skill = await self.store.get(skill_id)
            if source_path and Path(source_path).resolve() != Path(skill.central_path).resolve():
                raise ValidationException(
                    message="Source path does not match the skill",
                    detail=f"{source_path} is not the central copy of '{skill.name}'",
                )
            return await self.reconciler.sync_to_tool(skill, tool, overwrite=overwrite, name=name)

    async def unsync_skill_from_tool(self, skill_id: str, tool: str) -> list[str]:
        async with self._skill_locks.hold(skill_id):
            skill = await self.store.get(skill_id)
            return await self.reconciler.unsync_from_tool(skill, tool)

    async def sync_all(self, skill_id: str, sync: bool = True, tools: Optional[list[str]] = None) -> BatchResult:
        async with self._skill_locks.hold(skill_id):
            skill = await self.store.get(skill_id)
            return await self.reconciler.sync_all(skill, sync, tools)

    async def update_managed_skill(self, skill_id: str) -> UpdateResult:
        async with self._skill_locks.hold(skill_id):
            return await self.store.update(skill_id)

    async def delete_managed_skill(self, skill_id: str) -> None:
        async with self._skill_locks.hold(skill_id):
            await self.store.delete(skill_id)

    # Settings

    async def get_central_repo_path(self) -> str:
        return str(await self.store.get_central_repo())

    async def set_central_repo_path(self, path: str) -> str:
        return str(await self.store.set_central_repo(path))

    async def get_git_cache_settings(self) -> GitCacheSettings:
        days = await self.db.settings.get_value(GIT_CACHE_CLEANUP_DAYS_SETTING)
        return GitCacheSettings(
            ttl_secs=self.git_cache.ttl_secs,
            cleanup_days=int(days) if days is not None else self.settings.git_cache_cleanup_days,
        )

    async def set_git_cache_settings(
        self,
        ttl_secs: Optional[int] = None,
        cleanup_days: Optional[int] = None,
    ) -> GitCacheSettings:
        if ttl_secs is not None:
            await self.db.settings.set_value(GIT_CACHE_TTL_SETTING, str(ttl_secs))
            self.git_cache.ttl_secs = ttl_secs
        if cleanup_days is not None:
            await self.db.settings.set_value(GIT_CACHE_CLEANUP_DAYS_SETTING, str(cleanup_days))
        return await self.get_git_cache_settings()

    async def cleanup_git_cache(self) -> int:
        cache_settings = await self.get_git_cache_settings()
        return await self.git_cache.cleanup(cache_settings.cleanup_days)

    async def clear_git_cache_now(self) -> int:
        return await self.git_cache.clear()
