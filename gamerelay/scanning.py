from __future__ import annotations

import logging
import ntpath
import threading
from collections import deque
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Iterable, List, Optional, Set

from .canonical import (
    SEP,
    file_name,
    is_under,
    native_path,
    normalize_path,
    normalize_separators,
    parent_dir,
    path_key,
    relative_to,
)
from .models import (
    ExeCandidate,
    ExeKind,
    FolderCacheEntry,
    FolderSource,
    FolderState,
    GameFolderCandidate,
    Registry,
    ScanCache,
    ScanMetrics,
)
from .settings import DEFAULT_MIN_EXE_BYTES, ScanningConfig
from .tokens import PathRoots, try_resolve
from .utils import VersionInfo, mtime_ticks, pattern_match, read_version_info, suggested_name, wildcard_match

logger = logging.getLogger(__name__)

PENALIZED_TOKENS = (
    "setup", "config", "settings", "launcher", "uninstall", "unins", "crash",
    "report", "benchmark", "server", "editor", "tool", "mod", "patch",
)

IGNORED_BY_RULE = "IgnoredByRule"

VersionReader = Callable[[str], VersionInfo]
FolderCallback = Callable[[GameFolderCandidate], None]
MetricsCallback = Callable[[ScanMetrics], None]


@dataclass
class ScanResult:
    folders: List[GameFolderCandidate] = field(default_factory=list)
    metrics: ScanMetrics = field(default_factory=ScanMetrics)
    cancelled: bool = False


def canonical_path(p: Path) -> str:
    return normalize_path(normalize_separators(str(p)))


# ──────────────────────────────────────────────────────────────────────────────
# Enumeration / fingerprint
# ──────────────────────────────────────────────────────────────────────────────

def enumerate_exes(folder: Path) -> List[Path]:
    """All *.exe under `folder`, breadth-first, in case-insensitive name order.

    Unreadable directories are skipped.
    """
    results: List[Path] = []
    q = deque([folder])
    while q:
        cur = q.popleft()
        try:
            entries = sorted(cur.iterdir(), key=lambda e: e.name.lower())
        except OSError:
            continue
        for e in entries:
            try:
                if e.is_dir() and not e.is_symlink():
                    q.append(e)
                elif e.is_file() and e.suffix.lower() == ".exe":
                    results.append(e)
            except OSError:
                continue
    return results


def compute_folder_fingerprint(folder: Path) -> str:
    """`<exe count>:<max exe mtime in ticks>`; the folder's own mtime when it holds no exe."""
    try:
        exes = enumerate_exes(folder)
        max_ticks = max(mtime_ticks(p) for p in exes) if exes else mtime_ticks(folder)
        return f"{len(exes)}:{max_ticks}"
    except OSError:
        try:
            return str(mtime_ticks(folder))
        except OSError:
            return ""


# ──────────────────────────────────────────────────────────────────────────────
# Classification
# ──────────────────────────────────────────────────────────────────────────────

def _stem(exe_path: str) -> str:
    return ntpath.splitext(file_name(exe_path))[0]


def is_likely_tool(exe_path: str) -> bool:
    stem = _stem(exe_path).lower()
    return any(t in stem for t in PENALIZED_TOKENS)


def _segments(relative: str) -> List[str]:
    return [s for s in relative.split(SEP) if s]


def ignore_rule_reason(exe_name: str, relative_dir: str, rules: ScanningConfig) -> str:
    for pattern in rules.ignore_name_patterns:
        if pattern_match(exe_name, pattern):
            return f"{IGNORED_BY_RULE}: NamePattern={pattern}"
    for segment in _segments(relative_dir):
        for pattern in rules.ignore_folder_patterns:
            if pattern_match(segment, pattern):
                return f"{IGNORED_BY_RULE}: FolderPattern={pattern}"
    return ""


def score_main_candidate(candidate: ExeCandidate, folder_name: str, folder_path: str,
                         version: VersionInfo) -> float:
    stem = _stem(candidate.exe_path).lower()
    score = 1000.0

    for token in PENALIZED_TOKENS:
        if token in stem:
            score -= 350

    depth = len(_segments(relative_to(parent_dir(candidate.exe_path), folder_path)))
    score -= depth * 45
    score += min(candidate.size_bytes / 1_000_000, 500.0)

    name = folder_name.lower()
    if name:
        if name in version.product_name.lower():
            score += 250
        if name in version.file_description.lower():
            score += 200
        if name in stem:
            score += 120

    return score


def build_folder_candidate(folder: Path, hidden: Set[str], rules: ScanningConfig,
                           version_reader: VersionReader = read_version_info) -> GameFolderCandidate:
    """Full rebuild of one top-level folder from disk. `hidden` holds path_key() values."""
    folder_path = canonical_path(folder)
    candidate_folder = GameFolderCandidate(folder_path=folder_path, folder_name=folder.name)
    min_bytes = rules.min_exe_bytes if rules.min_exe_bytes > 0 else DEFAULT_MIN_EXE_BYTES
    eligible = []

    for exe_file in enumerate_exes(folder):
        exe_path = canonical_path(exe_file)
        version = version_reader(str(exe_file))
        exe = ExeCandidate(exe_path=exe_path, suggested_name=suggested_name(exe_path, version))
        candidate_folder.exes.append(exe)

        exe_name = exe_file.name
        relative_dir = relative_to(parent_dir(exe_path), folder_path)

        if any(pattern_match(s, p) for s in _segments(relative_dir) for p in rules.excluded_folder_names):
            exe.kind, exe.reason = ExeKind.EXCLUDED, "Excluded by folder name"
            continue

        if any(wildcard_match(exe_name, p) for p in rules.excluded_exe_patterns):
            exe.kind, exe.reason = ExeKind.EXCLUDED, "Excluded by executable pattern"
            continue

        rule_reason = ignore_rule_reason(exe_name, relative_dir, rules)
        if rule_reason:
            exe.kind, exe.reason = ExeKind.TOOL_CANDIDATE, rule_reason

        try:
            exe.size_bytes = exe_file.stat().st_size
        except OSError:
            exe.kind, exe.reason = ExeKind.EXCLUDED, "Could not read file metadata"
            continue

        if exe.size_bytes < min_bytes:
            exe.kind, exe.reason = ExeKind.SMALL_EXE, f"Below MinExeBytes ({min_bytes})"
            continue

        if path_key(exe_path) in hidden:
            exe.kind, exe.reason = ExeKind.HIDDEN, "Path exists in HiddenExecutables"
            continue

        if rule_reason:
            continue

        if is_likely_tool(exe_path):
            exe.kind, exe.reason = ExeKind.TOOL_CANDIDATE, "Filename suggests tool/utility"
        else:
            exe.kind, exe.reason = ExeKind.MAIN_CANDIDATE, ""
        eligible.append((exe, score_main_candidate(exe, candidate_folder.folder_name, folder_path, version)))

    if eligible:
        best = max(eligible, key=lambda pair: pair[1])[0]
        candidate_folder.selected_main_exe_path = best.exe_path
        # SmallExe keeps its tag; only eligible main candidates become tools
        for exe in candidate_folder.exes:
            if exe is best:
                exe.kind, exe.reason = ExeKind.MAIN_CANDIDATE, "Selected as main"
            elif exe.kind == ExeKind.MAIN_CANDIDATE:
                exe.kind, exe.reason = ExeKind.TOOL_CANDIDATE, "Not selected as main"

    sort_exes(candidate_folder)
    candidate_folder.refresh_counts()
    return candidate_folder


def sort_exes(folder: GameFolderCandidate) -> None:
    folder.exes.sort(key=lambda e: (e.kind.value.lower(), e.suggested_name.lower(), e.exe_path.lower()))


# ──────────────────────────────────────────────────────────────────────────────
# Cache
# ──────────────────────────────────────────────────────────────────────────────

def _copy_exe(e: ExeCandidate) -> ExeCandidate:
    return replace(e)


def to_cache_entry(folder: GameFolderCandidate, fingerprint: str) -> FolderCacheEntry:
    return FolderCacheEntry(
        folder_path=folder.folder_path,
        folder_name=folder.folder_name,
        folder_fingerprint=fingerprint,
        last_scanned_utc=datetime.now(timezone.utc).isoformat(),
        selected_main_exe_path=folder.selected_main_exe_path,
        exe_candidates=[_copy_exe(e) for e in folder.exes],
    )


def restore_from_cache(entry: FolderCacheEntry) -> GameFolderCandidate:
    folder = GameFolderCandidate(
        folder_path=entry.folder_path,
        folder_name=entry.folder_name,
        exes=[_copy_exe(e) for e in entry.exe_candidates],
        selected_main_exe_path=entry.selected_main_exe_path,
    )
    folder.selected_tool_exe_paths = {e.exe_path for e in folder.exes if e.is_tool_selected}
    folder.refresh_counts()
    return folder


def sync_cache_entry(cache: ScanCache, folder: GameFolderCandidate) -> None:
    """Write curation changes back into an existing cache entry, keeping its fingerprint."""
    existing = cache.get(folder.folder_path)
    if existing is None:
        return
    updated = to_cache_entry(folder, existing.folder_fingerprint)
    updated.last_scanned_utc = existing.last_scanned_utc
    cache.put(updated)


# ──────────────────────────────────────────────────────────────────────────────
# Registry cross-reference
# ──────────────────────────────────────────────────────────────────────────────

def normalize_name(value: str) -> str:
    return "".join(ch for ch in (value or "") if ch.isalnum()).lower()


def _resolved_main(game, roots: PathRoots):
    main = game.launch.main
    ok_t, target, _ = try_resolve(main.target_path, game.install, main, roots)
    ok_w, workdir, _ = try_resolve(main.working_directory, game.install, main, roots)
    return (target if ok_t else ""), (workdir if ok_w else "")


def is_known_folder(folder_path: str, registry: Registry, roots: PathRoots) -> bool:
    for game in registry.games:
        if game.install.game_folder_path and path_key(game.install.game_folder_path) == path_key(folder_path):
            return True
        if is_under(game.install.exe_path, folder_path):
            return True
        target, _ = _resolved_main(game, roots)
        if is_under(target, folder_path):
            return True
    return False


def apply_registry_mapping(folder: GameFolderCandidate, registry: Registry, roots: PathRoots) -> None:
    """Backfill blank InstallInfo fields of games that point into `folder`. Never overwrites."""
    folder_norm = normalize_name(folder.folder_name)
    for game in registry.games:
        target, workdir = _resolved_main(game, roots)
        display = normalize_name(game.display_name)
        matched = (is_under(target, folder.folder_path)
                   or is_under(workdir, folder.folder_path)
                   or (display and display == folder_norm))
        if not matched:
            continue

        install = game.install
        if not install.game_folder_path:
            install.game_folder_path = folder.folder_path
        if not install.exe_path and folder.selected_main_exe_path:
            install.exe_path = folder.selected_main_exe_path
            if not install.base_folder:
                install.base_folder = folder.folder_path
            if not install.working_dir:
                install.working_dir = parent_dir(folder.selected_main_exe_path) or folder.folder_path
        logger.debug(f"Mapped registry entry {game.display_name!r} to {folder.folder_path}")


# ──────────────────────────────────────────────────────────────────────────────
# Scan loop
# ──────────────────────────────────────────────────────────────────────────────

def resolve_scan_roots(scan_roots: Iterable[str], base_dir: Optional[Path] = None) -> List[Path]:
    roots: List[Path] = []
    seen = set()
    for raw in scan_roots or []:
        if not raw or not raw.strip():
            continue
        p = Path(native_path(raw.strip()))
        if not p.is_absolute() and base_dir is not None:
            p = base_dir / p
        p = p.absolute()
        key = path_key(canonical_path(p))
        if key in seen or not p.is_dir():
            continue
        seen.add(key)
        roots.append(p)
    return roots


def _list_top_level(root: Path) -> List[Path]:
    try:
        return sorted((p for p in root.iterdir() if p.is_dir()), key=lambda p: p.name.lower())
    except OSError as e:
        logger.debug(f"Cannot enumerate {root}: {e}")
        return []


def scan_game_folders(
    scan_roots: Iterable[str],
    registry: Registry,
    rules: ScanningConfig,
    cache: ScanCache,
    roots: PathRoots,
    *,
    incremental: bool = True,
    skip_known: bool = False,
    force_full_rescan: bool = False,
    on_folder: Optional[FolderCallback] = None,
    on_metrics: Optional[MetricsCallback] = None,
    cancel: Optional[threading.Event] = None,
    base_dir: Optional[Path] = None,
    version_reader: VersionReader = read_version_info,
) -> ScanResult:
    """Scan every top-level subfolder of each scan root.

    Results already produced, and the cache entries written for them, stay
    valid when `cancel` is set; the scan stops at the next folder boundary.
    """
    result = ScanResult()
    metrics = result.metrics
    resolved_roots = resolve_scan_roots(scan_roots, base_dir)
    cache.scan_roots_snapshot = [canonical_path(r) for r in resolved_roots]
    hidden = {path_key(h) for h in registry.hidden_executables}

    for root in resolved_roots:
        logger.info(f"Scanning root: {root}")
        for folder_dir in _list_top_level(root):
            if cancel is not None and cancel.is_set():
                logger.info(f"Scan cancelled after {metrics.total_folders} folder(s)")
                result.cancelled = True
                return result

            folder_path = canonical_path(folder_dir)
            known = is_known_folder(folder_path, registry, roots)
            fingerprint = compute_folder_fingerprint(folder_dir)
            cached = cache.get(folder_path)

            if (not force_full_rescan and incremental and cached is not None
                    and cached.folder_fingerprint.lower() == fingerprint.lower()):
                folder = restore_from_cache(cached)
                folder.source = FolderSource.CACHE
                folder.state = FolderState.KNOWN if known else FolderState.CACHED
                metrics.cached_folders += 1
            elif not force_full_rescan and skip_known and known:
                if cached is not None:
                    folder = restore_from_cache(cached)
                    folder.source = FolderSource.CACHE
                else:
                    folder = GameFolderCandidate(folder_path=folder_path, folder_name=folder_dir.name,
                                                 source=FolderSource.SKIPPED)
                folder.state = FolderState.KNOWN
                metrics.skipped_known_folders += 1
            else:
                folder = build_folder_candidate(folder_dir, hidden, rules, version_reader)
                folder.source = FolderSource.DISK
                folder.state = FolderState.NEW if folder.valid_exe_count > 0 else FolderState.NO_VALID_EXE
                cache.put(to_cache_entry(folder, fingerprint))

            apply_registry_mapping(folder, registry, roots)

            result.folders.append(folder)
            metrics.add_folder(folder)
            logger.debug(f"{folder.folder_name}: {folder.state.value}/{folder.source.value}, "
                         f"{len(folder.exes)} exe(s), main={folder.selected_main_exe_path}")

            if on_folder is not None:
                on_folder(folder)
            if on_metrics is not None:
                on_metrics(replace(metrics))

    logger.info(f"Scan complete: {metrics.total_folders} folder(s), {metrics.main_selected} with a main exe, "
                f"{metrics.cached_folders} from cache, {metrics.skipped_known_folders} skipped")
    return result
