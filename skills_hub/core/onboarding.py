"""Detection of skills that already exist in tool directories but are not managed yet."""
import logging
from pathlib import Path
from typing import Iterable, Optional

from skills_hub.core import link_engine
from skills_hub.core.content_hash import fingerprint
from skills_hub.core.tool_catalog import ToolCatalog
from skills_hub.schemas.onboarding import OnboardingGroup, OnboardingPlan, OnboardingVariant

logger = logging.getLogger(__name__)


def normalize_path(path: str | Path) -> str:
    return str(Path(path).expanduser().resolve())


def managed_target_key(tool: str, path: str | Path) -> tuple[str, str]:
    return tool.lower(), normalize_path(path)


def _is_within(path: Path, root: Path) -> bool:
    return path == root or root in path.parents


def _identity(variant: OnboardingVariant) -> Optional[str]:
    """What makes two variants the same skill: link target for links, content hash otherwise."""
    if variant.is_link:
        return f"link:{variant.link_target}" if variant.link_target else None
    return f"hash:{variant.fingerprint}" if variant.fingerprint else None


class OnboardingScanner:
    """Builds an adoption plan from the skills found in installed tools' directories.

    Building a plan only reads the filesystem.
    """

    def __init__(self, catalog: ToolCatalog):
        self.catalog = catalog

    def scan_tool(self, tool_key: str) -> list[OnboardingVariant]:
        tool = self.catalog.resolve(tool_key)
        skills_dir = self.catalog.skills_dir(tool)
        if not skills_dir.is_dir():
            return []

        variants = []
        for entry in sorted(skills_dir.iterdir(), key=lambda p: p.name):
            if entry.name.startswith("."):
                continue
            is_link = link_engine.is_link(entry)
            if not entry.is_dir():
                # Plain files and dangling links
                continue
            link_target = link_engine.read_link_target(entry) if is_link else None
            variants.append(OnboardingVariant(
                tool=tool.key,
                name=entry.name,
                path=str(entry),
                fingerprint=None if is_link else fingerprint(entry),
                is_link=is_link,
                link_target=str(link_target) if link_target else None,
            ))
        return variants

    def build_plan(
        self,
        exclude_root: Optional[Path] = None,
        managed_targets: Iterable[tuple[str, str]] = (),
        managed_names: Iterable[str] = (),
    ) -> OnboardingPlan:
        """Group unmanaged skills across installed tools by name.

        Args:
            exclude_root: the central repository; variants inside it or linking into it are skipped
            managed_targets: (tool, normalized path) pairs already recorded as sync targets
            managed_names: names of managed skills
        """
        excluded_root = exclude_root.resolve() if exclude_root else None
        managed_target_keys = set(managed_targets)
        managed_name_keys = {name.casefold() for name in managed_names}

        scanned = 0
        found = 0
        groups: dict[str, list[OnboardingVariant]] = {}
        for tool in self.catalog.installed():
            scanned += 1
            for variant in self.scan_tool(tool.key):
                if managed_target_key(variant.tool, variant.path) in managed_target_keys:
                    continue
                if variant.name.casefold() in managed_name_keys:
                    continue
                if excluded_root is not None:
                    if _is_within(Path(variant.path).resolve(), excluded_root):
                        continue
                    if variant.link_target and _is_within(Path(variant.link_target), excluded_root):
                        continue
                found += 1
                groups.setdefault(variant.name.casefold(), []).append(variant)

        plan_groups = []
        for key in sorted(groups):
            variants = groups[key]
            identities = {i for i in map(_identity, variants) if i is not None}
            plan_groups.append(OnboardingGroup(
                name=variants[0].name,
                variants=variants,
                has_conflict=len(identities) > 1,
            ))

        logger.info(f"Onboarding scan: {scanned} tools, {found} unmanaged skills, {len(plan_groups)} groups")
        return OnboardingPlan(total_tools_scanned=scanned, total_skills_found=found, groups=plan_groups)
