# gamerelay/store.py
"""JSON persistence for the registry and the folder scan cache."""
from __future__ import annotations

import json
import logging
import shutil
from dataclasses import asdict
from pathlib import Path
from typing import Any, Dict

from .models import (
    ExeCandidate,
    ExeKind,
    FolderCacheEntry,
    GameEntry,
    InstallInfo,
    LaunchContract,
    LaunchSettings,
    Registry,
    ScanCache,
    StatsInfo,
)

logger = logging.getLogger(__name__)

REGISTRY_FILE = "Registry.json"
SCAN_CACHE_FILE = "ScanCache.json"


def _s(data: Dict[str, Any], key: str) -> str:
    value = data.get(key)
    return value if isinstance(value, str) else ""


def _contract(data: Any) -> LaunchContract:
    if not isinstance(data, dict):
        return LaunchContract()
    return LaunchContract(
        target_path=_s(data, "target_path"),
        arguments=_s(data, "arguments"),
        working_directory=_s(data, "working_directory"),
    )


def game_from_dict(data: Dict[str, Any]) -> GameEntry:
    install = data.get("install") or {}
    launch = data.get("launch") or {}
    stats = data.get("stats") or {}
    tools = launch.get("tools") or {}
    entry = GameEntry(
        display_name=_s(data, "display_name"),
        launch_key=_s(data, "launch_key"),
        install=InstallInfo(
            game_folder_path=_s(install, "game_folder_path"),
            base_folder=_s(install, "base_folder"),
            exe_path=_s(install, "exe_path"),
            tool_exe_paths=[p for p in install.get("tool_exe_paths") or [] if isinstance(p, str)],
            args=_s(install, "args"),
            working_dir=_s(install, "working_dir"),
        ),
        launch=LaunchSettings(
            main=_contract(launch.get("main")),
            tools={k: _contract(v) for k, v in tools.items() if isinstance(k, str)},
        ),
        stats=StatsInfo(
            last_played_utc=_s(stats, "last_played_utc"),
            last_validated_utc=_s(stats, "last_validated_utc"),
            last_result=_s(stats, "last_result") or "Unknown",
        ),
    )
    if _s(data, "game_key"):
        entry.game_key = _s(data, "game_key")
    return entry


def exe_from_dict(data: Dict[str, Any]) -> ExeCandidate:
    try:
        kind = ExeKind(data.get("kind") or ExeKind.MAIN_CANDIDATE.value)
    except ValueError:
        kind = ExeKind.EXCLUDED
    return ExeCandidate(
        exe_path=_s(data, "exe_path"),
        suggested_name=_s(data, "suggested_name"),
        size_bytes=int(data.get("size_bytes") or 0),
        kind=kind,
        reason=_s(data, "reason"),
        is_tool_selected=bool(data.get("is_tool_selected", False)),
        is_main_override=bool(data.get("is_main_override", False)),
    )


def cache_entry_from_dict(data: Dict[str, Any]) -> FolderCacheEntry:
    return FolderCacheEntry(
        folder_path=_s(data, "folder_path"),
        folder_name=_s(data, "folder_name"),
        folder_fingerprint=_s(data, "folder_fingerprint"),
        last_scanned_utc=_s(data, "last_scanned_utc"),
        selected_main_exe_path=data.get("selected_main_exe_path") or None,
        exe_candidates=[exe_from_dict(e) for e in data.get("exe_candidates") or [] if isinstance(e, dict)],
    )


# ──────────────────────────────────────────────────────────────────────────────
# Registry.json
# ──────────────────────────────────────────────────────────────────────────────

def load_registry(home: Path) -> Registry:
    path = home / REGISTRY_FILE
    if not path.exists():
        return Registry()
    data = json.loads(path.read_text("utf-8"))
    return Registry(
        schema_version=int(data.get("schema_version", 1)),
        hidden_executables=[p for p in data.get("hidden_executables") or [] if isinstance(p, str)],
        games=[game_from_dict(g) for g in data.get("games") or [] if isinstance(g, dict)],
    )


def save_registry(home: Path, registry: Registry) -> None:
    path = home / REGISTRY_FILE
    if path.exists():
        shutil.copyfile(path, path.with_name(path.name + ".bak"))
    path.write_text(json.dumps(asdict(registry), indent=2), encoding="utf-8")


# ──────────────────────────────────────────────────────────────────────────────
# ScanCache.json
# ──────────────────────────────────────────────────────────────────────────────

def load_scan_cache(home: Path) -> ScanCache:
    path = home / SCAN_CACHE_FILE
    if not path.exists():
        return ScanCache()
    try:
        data = json.loads(path.read_text("utf-8"))
    except ValueError as e:
        # the cache is disposable; a corrupt one only costs a full rescan
        logger.warning(f"Ignoring unreadable {SCAN_CACHE_FILE}: {e}")
        return ScanCache()
    cache = ScanCache(
        schema_version=int(data.get("schema_version", 1)),
        scan_roots_snapshot=[r for r in data.get("scan_roots_snapshot") or [] if isinstance(r, str)],
    )
    for entry in (data.get("folders") or {}).values():
        if isinstance(entry, dict):
            cache.put(cache_entry_from_dict(entry))
    return cache


def save_scan_cache(home: Path, cache: ScanCache) -> None:
    (home / SCAN_CACHE_FILE).write_text(json.dumps(asdict(cache), indent=2), encoding="utf-8")


def clear_scan_cache(home: Path) -> None:
    path = home / SCAN_CACHE_FILE
    if path.exists():
        path.unlink()
        logger.info(f"Deleted {SCAN_CACHE_FILE}")
