"""
Configuration management for siftd.

Provides default configuration and loading from .siftd/config.toml, plus the
environment overrides used by the MCP server.
"""

import copy
import logging
import os
from pathlib import Path
from typing import Any, Optional
try:
    import tomllib  # Python 3.11+
except ImportError:
    import tomli as tomllib  # Fallback for older Python versions

logger = logging.getLogger(__name__)

DATA_DIR_NAME = ".siftd"
INDEX_FILE_NAME = "index.json"
SNAPSHOT_DIR_NAME = "snapshots"

ENV_PROJECT_PATH = "SIFTD_PROJECT_PATH"
ENV_EXTRA_EXTENSIONS = "SIFTD_EXTRA_EXTENSIONS"


DEFAULT_CONFIG = {
    "indexer": {
        "include_extensions": [
            ".py", ".pyw",
            ".js", ".jsx", ".mjs", ".cjs",
            ".ts", ".tsx",
            ".go",
            ".html", ".htm", ".vue", ".svelte",
            ".css", ".scss",
            ".md", ".markdown", ".txt", ".rst",
            ".json", ".yaml", ".yml", ".toml", ".ini", ".cfg",
            ".sh", ".sql",
            ".java", ".kt", ".rs", ".rb", ".php", ".cs",
            ".c", ".h", ".cpp", ".hpp",
        ],
        "extra_extensions": [],
        "exclude_dirs": [
            "node_modules",
            ".git",
            ".hg",
            ".svn",
            "__pycache__",
            ".venv",
            "venv",
            "env",
            "dist",
            "build",
            ".mypy_cache",
            ".pytest_cache",
            ".tox",
            ".idea",
            ".vscode",
            DATA_DIR_NAME,
        ],
        "max_file_size": 1048576,  # 1MB
        "max_chunk_chars": 1500,
        "respect_gitignore": True,
        "prune_deleted": True,
    },
    "embeddings": {
        "model": "all-MiniLM-L6-v2",
        "batch_size": 16,
        "device": None,
    },
    "search": {
        "default_limit": 8,
        "grep_limit": 50,
        "context_lines": 2,
    },
    "performance": {
        "parallel_enabled": True,
        "max_workers": None,  # defaults to min(8, cpu count)
    },
    "logging": {
        "level": "INFO",
        "file": None,
        "json": False,
    },
}


class Config:
    """
    Configuration manager for siftd.

    Loads configuration from .siftd/config.toml if it exists,
    otherwise uses defaults.
    """

    def __init__(self, project_root: Optional[Path] = None):
        """
        Initialize configuration.

        Args:
            project_root: Root directory of the project (defaults to current directory)
        """
        self.project_root = Path(project_root or Path.cwd()).resolve()
        self.data_dir = self.project_root / DATA_DIR_NAME
        self.config_path = self.data_dir / "config.toml"
        self._config = self._load_config()

    def _load_config(self) -> dict[str, Any]:
        """Load configuration from file or use defaults."""
        if self.config_path.exists():
            try:
                with open(self.config_path, "rb") as f:
                    user_config = tomllib.load(f)
                logger.info(f"Loaded config from {self.config_path}")
                # Merge with defaults (user config takes precedence)
                return self._merge_configs(DEFAULT_CONFIG, user_config)
            except (OSError, tomllib.TOMLDecodeError) as e:
                logger.warning(f"Failed to load config from {self.config_path}: {e}")
                logger.warning("Using default configuration")
                return copy.deepcopy(DEFAULT_CONFIG)
        else:
            logger.debug("No config file found, using defaults")
            return copy.deepcopy(DEFAULT_CONFIG)

    def _merge_configs(self, default: dict, user: dict) -> dict:
        """
        Recursively merge user config with defaults.

        User values take precedence, but missing keys use defaults.
        """
        merged = copy.deepcopy(default)
        for key, value in user.items():
            if key in merged and isinstance(merged[key], dict) and isinstance(value, dict):
                merged[key] = self._merge_configs(merged[key], value)
            else:
                merged[key] = value
        return merged

    def get(self, *keys: str, default: Any = None) -> Any:
        """
        Get a configuration value by nested keys.

        Examples:
            config.get("indexer", "max_file_size")
            config.get("embeddings", "model")

        Args:
            *keys: Nested keys to traverse
            default: Default value if key not found

        Returns:
            Configuration value or default
        """
        value = self._config
        for key in keys:
            if isinstance(value, dict) and key in value:
                value = value[key]
            else:
                return default
        return value

    def set(self, *keys: str, value: Any) -> None:
        """
        Set a configuration value by nested keys.

        Args:
            *keys: Nested keys to traverse
            value: Value to set
        """
        if not keys:
            return

        current = self._config
        for key in keys[:-1]:
            if key not in current:
                current[key] = {}
            current = current[key]

        current[keys[-1]] = value

    @property
    def include_extensions(self) -> "set[str]":
        """Extensions eligible for indexing, including extras from config and environment."""
        extensions = list(self.get("indexer", "include_extensions", default=[]))
        extensions.extend(self.get("indexer", "extra_extensions", default=[]))
        extensions.extend(_parse_extension_list(os.environ.get(ENV_EXTRA_EXTENSIONS, "")))
        return {_normalize_extension(ext) for ext in extensions if ext}

    @property
    def exclude_dirs(self) -> "set[str]":
        """Directory names never descended into."""
        return set(self.get("indexer", "exclude_dirs", default=[]))

    @property
    def max_file_size(self) -> int:
        return int(self.get("indexer", "max_file_size", default=1048576))

    @property
    def max_chunk_chars(self) -> int:
        return int(self.get("indexer", "max_chunk_chars", default=1500))

    @property
    def index_path(self) -> Path:
        """Location of the persisted index cache."""
        return self.data_dir / INDEX_FILE_NAME

    @property
    def snapshot_dir(self) -> Path:
        """Root of the per-file snapshot logs."""
        return self.data_dir / SNAPSHOT_DIR_NAME

    def __repr__(self) -> str:
        """String representation."""
        return f"Config(project_root={self.project_root})"


def _normalize_extension(ext: str) -> str:
    ext = ext.strip().lower()
    return ext if ext.startswith(".") else f".{ext}"


def _parse_extension_list(raw: str) -> list[str]:
    """Split a comma-separated extension list (e.g. from SIFTD_EXTRA_EXTENSIONS)."""
    return [part.strip() for part in raw.split(",") if part.strip()]
