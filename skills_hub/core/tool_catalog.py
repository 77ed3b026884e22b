"""Catalog of supported AI coding tools and where they read skills from."""
from __future__ import annotations

import logging
from collections import OrderedDict
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from skills_hub.core.exceptions import ToolNotFoundException

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Tool:
    """A supported tool. Both directories are relative to the user's home."""

    key: str
    label: str
    skills_dir: str
    detect_dir: str


# Order is the display order. Several tools may share one skills directory.
TOOLS: tuple[Tool, ...] = (
    Tool("claude_code", "Claude Code", ".claude/skills", ".claude"),
    Tool("codex", "Codex", ".codex/skills", ".codex"),
    Tool("cursor", "Cursor", ".cursor/skills", ".cursor"),
    Tool("gemini_cli", "Gemini CLI", ".gemini/skills", ".gemini"),
    Tool("antigravity", "Antigravity", ".gemini/antigravity/skills", ".gemini/antigravity"),
    Tool("github_copilot", "GitHub Copilot", ".copilot/skills", ".copilot"),
    Tool("windsurf", "Windsurf", ".codeium/windsurf/skills", ".codeium/windsurf"),
    Tool("opencode", "OpenCode", ".config/opencode/skill", ".config/opencode"),
    Tool("amp", "Amp", ".config/agents/skills", ".config/amp"),
    Tool("kimi_cli", "Kimi Code CLI", ".config/agents/skills", ".kimi"),
    Tool("goose", "Goose", ".config/goose/skills", ".config/goose"),
    Tool("qwen_code", "Qwen Code", ".qwen/skills", ".qwen"),
    Tool("roo", "Roo Code", ".roo/skills", ".roo"),
    Tool("trae", "Trae", ".trae/skills", ".trae"),
    Tool("kiro", "Kiro", ".kiro/skills", ".kiro"),
)


class ToolCatalog:
    """Resolves tool keys to absolute directories under a home directory."""

    def __init__(self, home: Path, tools: tuple[Tool, ...] = TOOLS):
        self.home = Path(home)
        self._tools: "OrderedDict[str, Tool]" = OrderedDict((tool.key, tool) for tool in tools)

    def all(self) -> list[Tool]:
        return list(self._tools.values())

    def find(self, key: str) -> Optional[Tool]:
        return self._tools.get(key)

    def resolve(self, key: str) -> Tool:
        tool = self._tools.get(key)
        if tool is None:
            raise ToolNotFoundException(
                detail=f"Tool '{key}' is not supported",
                suggested_action=f"Use one of: {', '.join(self._tools)}"
            )
        return tool

    def skills_dir(self, tool: Tool) -> Path:
        return self.home / tool.skills_dir

    def detect_dir(self, tool: Tool) -> Path:
        return self.home / tool.detect_dir

    def is_installed(self, tool: Tool) -> bool:
        return self.detect_dir(tool).is_dir()

    def installed(self) -> list[Tool]:
        return [tool for tool in self._tools.values() if self.is_installed(tool)]

    def group_by_directory(self) -> "OrderedDict[str, list[Tool]]":
        """Tools keyed by their shared skills directory, in catalog order."""
        groups: "OrderedDict[str, list[Tool]]" = OrderedDict()
        for tool in self._tools.values():
            groups.setdefault(tool.skills_dir, []).append(tool)
        return groups

    def shared_with(self, key: str) -> list[Tool]:
        """All tools (including `key` itself) that read skills from the same directory."""
        tool = self.resolve(key)
        return self.group_by_directory()[tool.skills_dir]
