# gamerelay/curation.py
"""Interactive edits on scan results and committing them to the registry.

All operations are idempotent and work on candidates already held in memory.
Passing the scan cache keeps the cached copy of a folder in step with the edit.
"""
from __future__ import annotations

import logging
from typing import Iterable, Optional, Set, Tuple

from .canonical import normalize_path, parent_dir, path_key, paths_equal
from .identity import build_launch_key, is_match, prefer_exe_path_fallback
from .models import (
    ExeKind,
    GameEntry,
    GameFolderCandidate,
    InstallInfo,
    LaunchContract,
    Registry,
    ScanCache,
)
from .scanning import IGNORED_BY_RULE, sort_exes, sync_cache_entry
from .tokens import PathRoots, tokenize_for_storage

logger = logging.getLogger(__name__)

MAIN_OVERRIDE = "MainOverride"


def _discard(paths: Set[str], exe_path: str) -> None:
    key = path_key(exe_path)
    for p in [p for p in paths if path_key(p) == key]:
        paths.discard(p)


def _touched(folder: GameFolderCandidate, cache: Optional[ScanCache]) -> None:
    folder.refresh_counts()
    if cache is not None:
        sync_cache_entry(cache, folder)


# ──────────────────────────────────────────────────────────────────────────────
# Candidate edits
# ──────────────────────────────────────────────────────────────────────────────

def hide_executable(registry: Registry, exe_path: str,
                    folders: Iterable[GameFolderCandidate] = (),
                    cache: Optional[ScanCache] = None) -> bool:
    """Adds `exe_path` to the hidden set and re-tags it in `folders`. False when already hidden."""
    normalized = normalize_path(exe_path)
    if not normalized:
        return False

    added = not any(paths_equal(h, normalized) for h in registry.hidden_executables)
    if added:
        registry.hidden_executables.append(normalized)
        logger.info(f"Hidden executable: {normalized}")

    for folder in folders:
        exe = folder.find_exe(normalized)
        if exe is None:
            continue
        exe.kind = ExeKind.HIDDEN
        exe.reason = "Path exists in HiddenExecutables"
        exe.is_tool_selected = False
        exe.is_main_override = False
        _discard(folder.selected_tool_exe_paths, exe.exe_path)
        if folder.selected_main_exe_path and paths_equal(folder.selected_main_exe_path, exe.exe_path):
            folder.selected_main_exe_path = None
        _touched(folder, cache)

    return added


def set_main(folder: GameFolderCandidate, exe_path: str, cache: Optional[ScanCache] = None) -> bool:
    if not exe_path or not exe_path.strip():
        return False

    candidate = folder.find_exe(exe_path)
    if candidate is None or candidate.kind == ExeKind.HIDDEN:
        return False

    folder.selected_main_exe_path = candidate.exe_path
    _discard(folder.selected_tool_exe_paths, candidate.exe_path)
    candidate.is_tool_selected = False

    for other in folder.exes:
        if other is candidate or other.kind != ExeKind.MAIN_CANDIDATE:
            continue
        other.kind = ExeKind.TOOL_CANDIDATE
        other.is_main_override = False
        if not other.reason or other.reason == "Selected as main":
            other.reason = "Not selected as main"

    reason = candidate.reason.lower()
    if candidate.kind == ExeKind.SMALL_EXE or "minexebytes" in reason or IGNORED_BY_RULE.lower() in reason:
        candidate.is_main_override = True
        if not candidate.reason:
            candidate.reason = MAIN_OVERRIDE
        elif MAIN_OVERRIDE.lower() not in reason:
            candidate.reason = f"{candidate.reason}; {MAIN_OVERRIDE}"

    candidate.kind = ExeKind.MAIN_CANDIDATE
    sort_exes(folder)
    _touched(folder, cache)
    return True


def toggle_tool(folder: GameFolderCandidate, exe_path: str, selected: bool,
                cache: Optional[ScanCache] = None) -> bool:
    """Select or deselect a tool. Selecting the current main is refused; clearing it is allowed."""
    if selected and folder.selected_main_exe_path and paths_equal(folder.selected_main_exe_path, exe_path):
        return False

    candidate = folder.find_exe(exe_path)
    path = candidate.exe_path if candidate is not None else normalize_path(exe_path)
    if not path:
        return False

    _discard(folder.selected_tool_exe_paths, path)
    if selected:
        folder.selected_tool_exe_paths.add(path)

    if candidate is not None:
        candidate.is_tool_selected = selected
        if selected and candidate.kind not in (ExeKind.EXCLUDED, ExeKind.HIDDEN):
            candidate.kind = ExeKind.TOOL_CANDIDATE

    _touched(folder, cache)
    return True


# ──────────────────────────────────────────────────────────────────────────────
# Registry commit
# ──────────────────────────────────────────────────────────────────────────────

def _tool_contract(tool: str, install: InstallInfo, roots: PathRoots) -> LaunchContract:
    return LaunchContract(
        target_path=tokenize_for_storage(tool, install, roots),
        arguments="",
        working_directory=tokenize_for_storage(parent_dir(tool) or install.game_folder, install, roots),
    )


def _selected_tools(folder: GameFolderCandidate):
    tools = []
    seen = set()
    for p in sorted(folder.selected_tool_exe_paths, key=str.lower):
        n = normalize_path(p)
        if n and path_key(n) not in seen:
            seen.add(path_key(n))
            tools.append(n)
    return tools


def find_matching_game(registry: Registry, launch_key: str, folder_path: str,
                       main_exe: str) -> Optional[GameEntry]:
    """Match by launch key; entries without a key fall back to folder path, then exe path."""
    for g in registry.games:
        if g.launch_key.strip() and is_match(g.launch_key, launch_key):
            return g

    legacy = [g for g in registry.games if not g.launch_key.strip()]
    for g in legacy:
        if g.install.game_folder_path and paths_equal(g.install.game_folder_path, folder_path):
            return g
    for g in legacy:
        if (g.install.exe_path and prefer_exe_path_fallback(g.launch.main.arguments)
                and paths_equal(g.install.exe_path, main_exe)):
            return g
    return None


def add_main_for_folder_to_registry(folder: GameFolderCandidate, registry: Registry,
                                    roots: PathRoots) -> bool:
    if not folder.selected_main_exe_path:
        return False

    main_exe = normalize_path(folder.selected_main_exe_path)
    folder_path = normalize_path(folder.folder_path)
    workdir = parent_dir(main_exe) or folder_path

    scope = InstallInfo(game_folder_path=folder_path, base_folder=folder_path)
    launch_key = build_launch_key(
        tokenize_for_storage(main_exe, scope, roots),
        "",
        tokenize_for_storage(workdir, scope, roots),
    )

    existing = find_matching_game(registry, launch_key, folder_path, main_exe)
    if existing is None:
        existing = GameEntry(display_name=folder.folder_name or "Game")
        registry.games.append(existing)
        logger.info(f"Registered new game {existing.display_name!r} ({main_exe})")
    else:
        logger.info(f"Updated game {existing.display_name!r} ({main_exe})")

    install = existing.install
    install.game_folder_path = folder_path
    install.base_folder = folder_path
    install.exe_path = main_exe
    install.working_dir = workdir
    install.tool_exe_paths = _selected_tools(folder)
    existing.launch_key = launch_key

    existing.launch.main = LaunchContract(
        target_path=tokenize_for_storage(main_exe, install, roots),
        arguments=install.args or "",
        working_directory=tokenize_for_storage(install.working_dir, install, roots),
    )
    for tool in install.tool_exe_paths:
        existing.launch.set_tool(tool, _tool_contract(tool, install, roots))

    return True


def add_all_main_to_registry(folders: Iterable[GameFolderCandidate], registry: Registry,
                             roots: PathRoots) -> Tuple[int, int]:
    added = skipped = 0
    for folder in folders:
        if add_main_for_folder_to_registry(folder, registry, roots):
            added += 1
        else:
            skipped += 1
    return added, skipped


def add_tools_for_folder_to_registry(folder: GameFolderCandidate, registry: Registry,
                                     roots: PathRoots) -> bool:
    """Registers the folder's selected tools on its existing registry entry."""
    folder_path = normalize_path(folder.folder_path)
    existing = next((
        g for g in registry.games
        if (g.install.game_folder_path and paths_equal(g.install.game_folder_path, folder_path))
        or (folder.selected_main_exe_path and g.install.exe_path
            and paths_equal(g.install.exe_path, folder.selected_main_exe_path))
    ), None)
    if existing is None:
        return False

    existing.install.tool_exe_paths = _selected_tools(folder)
    for tool in existing.install.tool_exe_paths:
        existing.launch.set_tool(tool, _tool_contract(tool, existing.install, roots))
    return True
