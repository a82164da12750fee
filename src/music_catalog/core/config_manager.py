"""
Centralized Configuration Management

Manages all configuration sources:
- Default settings
- Project configs (config/*.json)
- User settings (~/.config/music-catalog/)
- CLI overrides
"""

import json
import logging
import os
import platform
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any, Dict, List, Optional

from .constants import (
    CATALOG_FILENAME,
    DEFAULT_CACHE_BUDGET_BYTES,
    DEFAULT_HASH_ALGORITHM,
    DEFAULT_RECENT_TRACKS,
    DEFAULT_TOP_ARTISTS,
    DEFAULT_TRACKS_PER_HOT_ARTIST,
    DEFAULT_WORKER_THREADS,
    HASH_CHUNK_SIZE,
    INDEX_DIRNAME,
    LEDGER_FILENAME,
    MAX_WORKER_THREADS,
    MIN_AUDIO_FILE_SIZE,
    SUPPORTED_AUDIO_FORMATS,
)


TRANSFER_MODES = ("copy", "link")
PROGRESS_MODES = ("none", "simple")
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")


@dataclass
class TransferConfig:
    """How files reach the canonical tree"""
    mode: str = "copy"
    confirm_link_mode: bool = True


@dataclass
class ProcessingConfig:
    """Processing pipeline configuration"""
    max_workers: int = DEFAULT_WORKER_THREADS
    hash_algorithm: str = DEFAULT_HASH_ALGORITHM
    hash_chunk_size: int = HASH_CHUNK_SIZE
    min_file_size: int = MIN_AUDIO_FILE_SIZE
    supported_formats: list = None

    def __post_init__(self):
        if self.supported_formats is None:
            self.supported_formats = list(SUPPORTED_AUDIO_FORMATS)


@dataclass
class CacheConfig:
    """Hot/recent cache tier configuration"""
    cache_directory: str = ""
    budget_bytes: int = DEFAULT_CACHE_BUDGET_BYTES
    top_artists: int = DEFAULT_TOP_ARTISTS
    tracks_per_artist: int = DEFAULT_TRACKS_PER_HOT_ARTIST
    recent_tracks: int = DEFAULT_RECENT_TRACKS

    @property
    def enabled(self) -> bool:
        return bool(self.cache_directory)


@dataclass
class UIConfig:
    """User interface configuration"""
    progress_mode: str = "simple"
    log_level: str = "INFO"
    verbose_errors: bool = False


@dataclass
class LibraryConfig:
    """Complete configuration for a catalog run"""
    transfer: TransferConfig = None
    processing: ProcessingConfig = None
    cache: CacheConfig = None
    ui: UIConfig = None

    # Runtime settings
    source_directory: str = ""
    library_directory: str = ""
    workspace_directory: str = "./workspace"
    catalog_path: str = ""  # Defaults to <workspace>/library.db
    index_directory: str = ""  # Defaults to <workspace>/indexes
    dry_run: bool = False

    def __post_init__(self):
        if self.transfer is None:
            self.transfer = TransferConfig()
        if self.processing is None:
            self.processing = ProcessingConfig()
        if self.cache is None:
            self.cache = CacheConfig()
        if self.ui is None:
            self.ui = UIConfig()

    @property
    def workspace_path(self) -> Path:
        return Path(self.workspace_directory).expanduser()

    @property
    def catalog_file(self) -> Path:
        if self.catalog_path:
            return Path(self.catalog_path).expanduser()
        return self.workspace_path / CATALOG_FILENAME

    @property
    def ledger_file(self) -> Path:
        return self.workspace_path / LEDGER_FILENAME

    @property
    def index_path(self) -> Path:
        if self.index_directory:
            return Path(self.index_directory).expanduser()
        return self.workspace_path / INDEX_DIRNAME


_SECTIONS = {
    'transfer': TransferConfig,
    'processing': ProcessingConfig,
    'cache': CacheConfig,
    'ui': UIConfig,
}


class ConfigManager:
    """
    Centralized configuration manager with hierarchical loading:
    1. Default settings
    2. Project configs (config/*.json)
    3. User settings (~/.config/music-catalog/)
    4. CLI arguments
    """

    def __init__(self, project_root: Optional[Path] = None):
        self.logger = logging.getLogger(__name__)

        if project_root is None:
            current = Path(__file__).parent
            while current != current.parent:
                if (current / "pyproject.toml").exists():
                    project_root = current
                    break
                current = current.parent
            else:
                project_root = Path.cwd()

        self.project_root = project_root
        self.config_dir = project_root / "config"
        self.user_config_dir = self._get_user_config_dir()


        self.logger.debug(f"ConfigManager initialized (project root: {self.project_root}, "
                          f"user config: {self.user_config_dir})")

    def _get_user_config_dir(self) -> Path:
        """Get platform-appropriate user config directory"""
        system = platform.system()

        if system == "Windows":
            base = Path(os.environ.get("APPDATA", "~"))
        elif system == "Darwin":
            base = Path("~/Library/Application Support")
        else:
            base = Path(os.environ.get("XDG_CONFIG_HOME", "~/.config"))

        return (base / "music-catalog").expanduser()

    def load_config(self,
                    project_config: Optional[str] = None,
                    user_overrides: Optional[Dict] = None,
                    cli_overrides: Optional[Dict] = None) -> LibraryConfig:
        """
        Load configuration from all sources with proper precedence.

        Args:
            project_config: Project config file name (e.g. "production.json")
                or a path to a JSON file
            user_overrides: User-specific settings
            cli_overrides: Command-line argument overrides

        Returns:
            Complete configuration object
        """
        config_dict = asdict(LibraryConfig())

        if project_config and Path(project_config).is_file():
            project_config_path = Path(project_config)
        elif project_config:
            project_config_path = self.config_dir / project_config
        else:
            project_config_path = self.config_dir / "default.json"

        if project_config_path.exists():
            project_settings = self._load_json_config(project_config_path)
            config_dict = self._merge_configs(config_dict, project_settings)
            self.logger.info(f"Loaded project config: {project_config_path}")

        user_config_path = self.user_config_dir / "settings.json"
        if user_config_path.exists():
            user_settings = self._load_json_config(user_config_path)
            config_dict = self._merge_configs(config_dict, user_settings)
            self.logger.info(f"Loaded user config: {user_config_path}")

        if user_overrides:
            config_dict = self._merge_configs(config_dict, user_overrides)
            self.logger.debug("Applied user overrides")

        if cli_overrides:
            config_dict = self._merge_configs(config_dict, cli_overrides)
            self.logger.debug("Applied CLI overrides")

        return self._dict_to_config(config_dict)

    def _load_json_config(self, config_path: Path) -> Dict[str, Any]:
        """Load JSON configuration file"""
        try:
            with open(config_path, 'r', encoding='utf-8') as f:
                return json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            self.logger.error(f"Failed to load config {config_path}: {e}")
            return {}

    def _merge_configs(self, base: Dict, override: Dict) -> Dict:
        """Deep merge configuration dictionaries"""
        result = base.copy()

        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._merge_configs(result[key], value)
            else:
                result[key] = value

        return result

    def _known_fields(self, section: str, values: Dict[str, Any], cls) -> Dict[str, Any]:
        """Drop keys the dataclass does not define"""
        names = {f.name for f in fields(cls)}
        unknown = set(values) - names
        if unknown:
            self.logger.warning(f"Ignoring unknown {section} settings: {sorted(unknown)}")
        return {k: v for k, v in values.items() if k in names}

    def _dict_to_config(self, config_dict: Dict) -> LibraryConfig:
        """Convert dictionary to config dataclass"""
        sections = {}
        for name, cls in _SECTIONS.items():
            values = config_dict.get(name) or {}
            sections[name] = cls(**self._known_fields(name, values, cls))

        top_level = {k: v for k, v in config_dict.items() if k not in _SECTIONS}
        top_level = self._known_fields('top-level', top_level, LibraryConfig)

        return LibraryConfig(**sections, **top_level)

    def save_user_settings(self, settings: Dict[str, Any]) -> bool:
        """Save user-specific settings"""
        try:
            self.user_config_dir.mkdir(parents=True, exist_ok=True)
            user_config_path = self.user_config_dir / "settings.json"

            existing = {}
            if user_config_path.exists():
                existing = self._load_json_config(user_config_path)

            merged = self._merge_configs(existing, settings)

            with open(user_config_path, 'w', encoding='utf-8') as f:
                json.dump(merged, f, indent=2, ensure_ascii=False)

            self.logger.info(f"User settings saved to {user_config_path}")
            return True

        except OSError as e:
            self.logger.error(f"Failed to save user settings: {e}")
            return False

    def validate_config(self, config: LibraryConfig) -> List[str]:
        """Validate configuration and return list of issues"""
        issues = []

        if config.transfer.mode not in TRANSFER_MODES:
            issues.append(f"transfer mode must be one of {', '.join(TRANSFER_MODES)}")

        if not 1 <= config.processing.max_workers <= MAX_WORKER_THREADS:
            issues.append(f"max_workers must be between 1 and {MAX_WORKER_THREADS}")

        if config.processing.hash_chunk_size < 1:
            issues.append("hash_chunk_size must be at least 1")

        if config.processing.min_file_size < 0:
            issues.append("min_file_size must not be negative")

        if not config.processing.supported_formats:
            issues.append("supported_formats must list at least one extension")

        if config.cache.budget_bytes < 0:
            issues.append("cache budget must not be negative")

        for name in ('top_artists', 'tracks_per_artist', 'recent_tracks'):
            if getattr(config.cache, name) < 0:
                issues.append(f"cache {name} must not be negative")

        if config.ui.progress_mode not in PROGRESS_MODES:
            issues.append(f"progress_mode must be one of {', '.join(PROGRESS_MODES)}")

        if config.ui.log_level.upper() not in LOG_LEVELS:
            issues.append(f"log_level must be one of {', '.join(LOG_LEVELS)}")

        if config.library_directory and config.source_directory:
            source = Path(config.source_directory).expanduser().resolve()
            library = Path(config.library_directory).expanduser().resolve()
            if source == library:
                issues.append("library directory must differ from the source directory")

        return issues


# Global config manager instance
_config_manager: Optional[ConfigManager] = None


def get_config_manager() -> ConfigManager:
    """Get global config manager instance"""
    global _config_manager
    if _config_manager is None:
        _config_manager = ConfigManager()
    return _config_manager
