"""Re-materializes a managed skill's content from where it came from."""
import asyncio
import logging
from pathlib import Path
from typing import Optional

from skills_hub.core import link_engine
from skills_hub.core.exceptions import NotFoundException
from skills_hub.core.git_cache import GitCacheManager
from skills_hub.core.local_importer import resolve_selection
from skills_hub.core.registry import find_package_skill, parse_registry_package
from skills_hub.schemas.skill import GitSource, LocalSource, RegistrySource, SkillSource

logger = logging.getLogger(__name__)


class SourceFetcher:
    """Copies the current content of a skill source into a destination folder."""

    def __init__(self, git_cache: GitCacheManager):
        self.git_cache = git_cache

    async def _copy(self, source: SkillSource, path: Path, dest: Path) -> None:
        logger.debug(f"Fetching {source.source_type} source {path} -> {dest}")
        await asyncio.to_thread(link_engine.copy_tree, path, dest)

    async def materialize(self, source: SkillSource, dest: Path) -> Optional[str]:
        """Copy the source's content to dest (which must not exist). Returns the revision.

        Git and registry sources are fetched fresh and copied while the
        clone is still locked.
        """
        if isinstance(source, LocalSource):
            path = Path(source.path)
            if not path.is_dir():
                raise NotFoundException(
                    message="Source folder not found",
                    detail=f"{path} no longer exists",
                    suggested_action="Restore the folder or reinstall the skill from another source"
                )
            await self._copy(source, path, dest)
            return None

        if isinstance(source, GitSource):
            async with self.git_cache.checked_out(source.repo_url, force=True) as (base, revision, _):
                path = resolve_selection(base, source.subpath) if source.subpath else base
                await self._copy(source, path, dest)
            return revision

        if isinstance(source, RegistrySource):
            package = parse_registry_package(source.package)
            async with self.git_cache.checked_out(package.repo_url, force=True) as (base, revision, _):
                subpath = source.subpath or find_package_skill(base, package).subpath
                await self._copy(source, resolve_selection(base, subpath), dest)
            return revision

        raise TypeError(f"Unsupported skill source: {source!r}")
