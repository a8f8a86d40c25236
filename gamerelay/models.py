from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Set

from .canonical import file_name, path_key


class ExeKind(str, Enum):
    MAIN_CANDIDATE = "MainCandidate"
    TOOL_CANDIDATE = "ToolCandidate"
    SMALL_EXE = "SmallExe"
    EXCLUDED = "Excluded"
    HIDDEN = "Hidden"


class FolderState(str, Enum):
    NEW = "New"
    KNOWN = "Known"
    CACHED = "Cached"
    NO_VALID_EXE = "NoValidExe"


class FolderSource(str, Enum):
    DISK = "Disk"
    CACHE = "Cache"
    SKIPPED = "Skipped"


# ──────────────────────────────────────────────────────────────────────────────
# Registry side
# ──────────────────────────────────────────────────────────────────────────────

@dataclass
class InstallInfo:
    game_folder_path: str = ""
    base_folder: str = ""
    exe_path: str = ""
    tool_exe_paths: List[str] = field(default_factory=list)
    args: str = ""
    working_dir: str = ""

    @property
    def game_folder(self) -> str:
        return self.game_folder_path or self.base_folder


@dataclass(frozen=True)
class LaunchContract:
    target_path: str = ""
    arguments: str = ""
    working_directory: str = ""

    @property
    def is_valid(self) -> bool:
        return bool(self.target_path and self.target_path.strip())


@dataclass
class LaunchSettings:
    main: LaunchContract = field(default_factory=LaunchContract)
    tools: Dict[str, LaunchContract] = field(default_factory=dict)   # keyed by tool exe path

    def tool_contract(self, exe_path: str) -> Optional[LaunchContract]:
        key = path_key(exe_path)
        for path, contract in self.tools.items():
            if path_key(path) == key:
                return contract
        return None

    def set_tool(self, exe_path: str, contract: LaunchContract) -> None:
        key = path_key(exe_path)
        for path in list(self.tools):
            if path_key(path) == key:
                del self.tools[path]
        self.tools[exe_path] = contract


@dataclass
class StatsInfo:
    last_played_utc: str = ""
    last_validated_utc: str = ""
    last_result: str = "Unknown"


@dataclass
class GameEntry:
    game_key: str = field(default_factory=lambda: str(uuid.uuid4()))
    display_name: str = ""
    launch_key: str = ""
    install: InstallInfo = field(default_factory=InstallInfo)
    launch: LaunchSettings = field(default_factory=LaunchSettings)
    stats: StatsInfo = field(default_factory=StatsInfo)


@dataclass
class Registry:
    schema_version: int = 1
    hidden_executables: List[str] = field(default_factory=list)
    games: List[GameEntry] = field(default_factory=list)

    def find(self, game_key: str) -> Optional[GameEntry]:
        wanted = (game_key or "").strip().lower()
        for g in self.games:
            if g.game_key.lower() == wanted:
                return g
        return None


# ──────────────────────────────────────────────────────────────────────────────
# Scanner side
# ──────────────────────────────────────────────────────────────────────────────

@dataclass
class ExeCandidate:
    exe_path: str
    suggested_name: str = ""
    size_bytes: int = 0
    kind: ExeKind = ExeKind.MAIN_CANDIDATE
    reason: str = ""
    is_tool_selected: bool = False
    is_main_override: bool = False

    @property
    def exe_name(self) -> str:
        return file_name(self.exe_path)

    @property
    def size_mb(self) -> str:
        return f"{self.size_bytes / 1024 / 1024:.2f}"


@dataclass
class GameFolderCandidate:
    folder_path: str
    folder_name: str
    exes: List[ExeCandidate] = field(default_factory=list)
    selected_main_exe_path: Optional[str] = None
    selected_tool_exe_paths: Set[str] = field(default_factory=set)
    valid_exe_count: int = 0
    excluded_exe_count: int = 0
    hidden_exe_count: int = 0
    state: FolderState = FolderState.NEW
    source: FolderSource = FolderSource.DISK

    def find_exe(self, exe_path: str) -> Optional[ExeCandidate]:
        key = path_key(exe_path)
        for exe in self.exes:
            if path_key(exe.exe_path) == key:
                return exe
        return None

    def refresh_counts(self) -> None:
        self.excluded_exe_count = sum(1 for e in self.exes if e.kind in (ExeKind.EXCLUDED, ExeKind.SMALL_EXE))
        self.hidden_exe_count = sum(1 for e in self.exes if e.kind == ExeKind.HIDDEN)
        self.valid_exe_count = len(self.exes) - self.excluded_exe_count - self.hidden_exe_count


@dataclass
class FolderCacheEntry:
    folder_path: str
    folder_name: str
    folder_fingerprint: str = ""
    last_scanned_utc: str = ""
    selected_main_exe_path: Optional[str] = None
    exe_candidates: List[ExeCandidate] = field(default_factory=list)


@dataclass
class ScanCache:
    schema_version: int = 1
    scan_roots_snapshot: List[str] = field(default_factory=list)
    folders: Dict[str, FolderCacheEntry] = field(default_factory=dict)   # keyed by path_key()

    def get(self, folder_path: str) -> Optional[FolderCacheEntry]:
        return self.folders.get(path_key(folder_path))

    def put(self, entry: FolderCacheEntry) -> None:
        self.folders[path_key(entry.folder_path)] = entry


@dataclass
class ScanMetrics:
    total_folders: int = 0
    folders_with_valid_exe: int = 0
    total_exe_candidates: int = 0
    main_selected: int = 0
    tools_selected: int = 0
    excluded: int = 0
    hidden: int = 0
    cached_folders: int = 0
    skipped_known_folders: int = 0

    def add_folder(self, folder: GameFolderCandidate) -> None:
        self.total_folders += 1
        self.total_exe_candidates += len(folder.exes)
        self.excluded += folder.excluded_exe_count
        self.hidden += folder.hidden_exe_count
        if folder.valid_exe_count > 0:
            self.folders_with_valid_exe += 1
        if folder.selected_main_exe_path:
            self.main_selected += 1
        self.tools_selected += len(folder.selected_tool_exe_paths)
