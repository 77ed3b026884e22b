"""Application configuration settings."""
import platform
from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings

APP_DIR_NAME = "SkillsHub"
DB_FILE_NAME = "skills_hub.db"
DEFAULT_CENTRAL_REPO_DIR = ".skillshub"


def default_data_dir(home: Path) -> Path:
    """Platform-specific application data directory."""
    if platform.system() == "Darwin":
        return home / "Library" / "Application Support" / APP_DIR_NAME
    elif platform.system() == "Windows":
        return home / "AppData" / "Local" / APP_DIR_NAME
    return home / ".local" / "share" / "skills-hub"


class Settings(BaseSettings):
    """Application settings loaded from environment variables (SKILLS_HUB_*)."""

    # Application
    app_name: str = "Skills Hub API"
    app_version: str = "0.3.0"
    debug: bool = False
    log_level: str = "INFO"

    # Server
    host: str = "127.0.0.1"
    port: int = 8765

    # CORS - include Tauri origins for the desktop shell
    cors_origins: list[str] = ["http://localhost:1420", "tauri://localhost", "https://tauri.localhost", "http://tauri.localhost"]

    # Home directory used to resolve every tool directory (None = current user's home)
    home_dir: str | None = None

    # Application data directory (index database, git cache). None = platform default
    data_dir: str | None = None
    sqlite_db_path: str | None = None

    # Central repository holding the canonical copy of every managed skill.
    # Can be changed at runtime; the override is persisted in the index.
    central_repo_path: str | None = None

    # Git clone cache
    git_cache_dir: str | None = None
    git_cache_ttl_secs: int = 60  # freshness window before re-fetching
    git_cache_cleanup_days: int = 30  # retention; 0 disables cleanup
    git_timeout_secs: int = 120

    # Tools that do not follow symlinks when discovering skills
    forced_copy_tools: list[str] = ["cursor"]

    class Config:
        env_prefix = "SKILLS_HUB_"
        env_file = ".env"
        env_file_encoding = "utf-8"

    def get_home_dir(self) -> Path:
        return Path(self.home_dir).expanduser() if self.home_dir else Path.home()

    def get_data_dir(self) -> Path:
        if self.data_dir:
            return Path(self.data_dir).expanduser()
        return default_data_dir(self.get_home_dir())

    def get_db_path(self) -> Path:
        if self.sqlite_db_path:
            return Path(self.sqlite_db_path).expanduser()
        return self.get_data_dir() / DB_FILE_NAME

    def get_central_repo_path(self) -> Path:
        if self.central_repo_path:
            return Path(self.central_repo_path).expanduser()
        return self.get_home_dir() / DEFAULT_CENTRAL_REPO_DIR

    def get_git_cache_dir(self) -> Path:
        if self.git_cache_dir:
            return Path(self.git_cache_dir).expanduser()
        return self.get_data_dir() / "git-cache"


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
