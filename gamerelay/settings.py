import json
import logging
import os
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Dict, List

from .tokens import PathRoots

logger = logging.getLogger(__name__)

DEFAULT_MIN_EXE_BYTES = 524288

DEFAULT_IGNORE_NAME_PATTERNS = [
    "vc_redist*.exe", "vcredist*.exe", "language.exe", "language_*.exe",
    "*language*selector*.exe", "unins*.exe", "setup*.exe", "install*.exe",
    "updater*.exe", "crashreport*.exe", "dxsetup.exe",
]

DEFAULT_IGNORE_FOLDER_PATTERNS = [
    "*redist*", "*_commonredist*", "*installer*", "*install*", "*uninstall*",
    "*support*", "*directx*", "vc", "*vcredist*",
]

@dataclass
class PathsConfig:
    games_root: str = ""
    cache_root: str = ""
    launchbox_root: str = ""
    scan_roots: List[str] = field(default_factory=list)

@dataclass
class ScanningConfig:
    min_exe_bytes: int = DEFAULT_MIN_EXE_BYTES
    excluded_exe_patterns: List[str] = field(default_factory=list)
    excluded_folder_names: List[str] = field(default_factory=list)   # wildcards allowed
    ignore_name_patterns: List[str] = field(default_factory=list)    # `regex:` prefix allowed
    ignore_folder_patterns: List[str] = field(default_factory=list)

@dataclass
class AppConfig:
    schema_version: int = 1
    paths: PathsConfig = field(default_factory=PathsConfig)
    scanning: ScanningConfig = field(default_factory=ScanningConfig)
    actually_launch: bool = False
    verbose_logging: bool = False

    def roots(self, relay_dir: str) -> PathRoots:
        return PathRoots(
            games_root=self.paths.games_root,
            cache_root=self.paths.cache_root,
            launchbox_root=self.paths.launchbox_root,
            relay_dir=relay_dir,
        )

def _resolve(home: Path, value: str) -> str:
    if not value or not value.strip():
        return ""
    p = Path(value.strip())
    if not p.is_absolute():
        p = home / p
    return os.path.abspath(str(p))

def _str_list(value) -> List[str]:
    if not isinstance(value, list):
        return []
    return [str(v) for v in value if isinstance(v, str) and v.strip()]

def _ensure_contains(values: List[str], expected: List[str]) -> bool:
    changed = False
    lowered = {v.lower() for v in values}
    for e in expected:
        if e.lower() not in lowered:
            values.append(e)
            lowered.add(e.lower())
            changed = True
    return changed

def config_from_dict(data: Dict) -> AppConfig:
    paths = data.get("paths") or {}
    scanning = data.get("scanning") or {}
    try:
        min_bytes = int(scanning.get("min_exe_bytes", DEFAULT_MIN_EXE_BYTES))
    except (TypeError, ValueError):
        min_bytes = DEFAULT_MIN_EXE_BYTES
    return AppConfig(
        schema_version=int(data.get("schema_version", 1) or 0),
        paths=PathsConfig(
            games_root=str(paths.get("games_root") or ""),
            cache_root=str(paths.get("cache_root") or ""),
            launchbox_root=str(paths.get("launchbox_root") or ""),
            scan_roots=_str_list(paths.get("scan_roots")),
        ),
        scanning=ScanningConfig(
            min_exe_bytes=min_bytes if min_bytes > 0 else DEFAULT_MIN_EXE_BYTES,
            excluded_exe_patterns=_str_list(scanning.get("excluded_exe_patterns")),
            excluded_folder_names=_str_list(scanning.get("excluded_folder_names")),
            ignore_name_patterns=_str_list(scanning.get("ignore_name_patterns")),
            ignore_folder_patterns=_str_list(scanning.get("ignore_folder_patterns")),
        ),
        actually_launch=bool(data.get("actually_launch", False)),
        verbose_logging=bool(data.get("verbose_logging", False)),
    )

def apply_defaults(config: AppConfig, home: Path) -> bool:
    """Fill blank paths and resolve relative ones against `home`. Returns True when anything changed."""
    before = asdict(config)
    p = config.paths

    if not p.scan_roots:
        p.scan_roots = ["ScanRoots"]
    if not p.cache_root.strip():
        p.cache_root = "Cache"
    if not p.games_root.strip():
        p.games_root = p.scan_roots[0]

    p.scan_roots = [_resolve(home, r) for r in p.scan_roots]
    p.games_root = _resolve(home, p.games_root)
    p.cache_root = _resolve(home, p.cache_root)
    p.launchbox_root = _resolve(home, p.launchbox_root)

    return asdict(config) != before

def new_config(home: Path) -> AppConfig:
    config = AppConfig()
    apply_defaults(config, home)
    _ensure_contains(config.scanning.ignore_name_patterns, DEFAULT_IGNORE_NAME_PATTERNS)
    _ensure_contains(config.scanning.ignore_folder_patterns, DEFAULT_IGNORE_FOLDER_PATTERNS)
    return config

def load_settings(settings_file: Path) -> AppConfig:
    home = settings_file.parent
    if not settings_file.exists():
        config = new_config(home)
        save_settings(settings_file, config)
        logger.info(f"Created default {settings_file.name}")
        return config
    try:
        data = json.loads(settings_file.read_text("utf-8"))
        config = config_from_dict(data if isinstance(data, dict) else {})
    except (OSError, AttributeError, TypeError, ValueError) as e:
        logger.warning(f"Could not read {settings_file}: {e}; using defaults")
        return new_config(home)
    if apply_defaults(config, home):
        save_settings(settings_file, config)
    return config

def save_settings(settings_file: Path, settings: AppConfig) -> None:
    settings_file.write_text(json.dumps(asdict(settings), indent=2), encoding="utf-8")

def validate_config(config: AppConfig) -> bool:
    if config.schema_version < 1:
        return False
    if not any(Path(r).is_dir() for r in config.paths.scan_roots):
        logger.warning("None of the configured scan roots exist.")
    return True
