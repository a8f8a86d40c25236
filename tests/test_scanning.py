import os
import threading

from conftest import MB, make_exe, no_version

from gamerelay.models import (
    ExeCandidate,
    ExeKind,
    FolderSource,
    FolderState,
    GameEntry,
    InstallInfo,
    Registry,
    ScanCache,
)
from gamerelay.scanning import (
    build_folder_candidate,
    canonical_path,
    compute_folder_fingerprint,
    enumerate_exes,
    resolve_scan_roots,
    scan_game_folders,
    score_main_candidate,
)
from gamerelay.settings import ScanningConfig
from gamerelay.utils import EMPTY_VERSION, VersionInfo, pattern_match, wildcard_match


def _scan(games, roots, rules, registry=None, cache=None, **kw):
    return scan_game_folders(
        [str(games)], registry or Registry(), rules, cache if cache is not None else ScanCache(), roots,
        version_reader=no_version, **kw,
    )


def _by_name(folder):
    return {e.exe_name: e for e in folder.exes}


# ──────────────────────────────────────────────────────────────────────────────
# Enumeration / fingerprint
# ──────────────────────────────────────────────────────────────────────────────

def test_enumerate_exes_is_recursive_and_sorted(tmp_path):
    make_exe(tmp_path / "b.exe", 1)
    make_exe(tmp_path / "A.EXE", 1)
    make_exe(tmp_path / "sub" / "c.exe", 1)
    (tmp_path / "readme.txt").write_text("x")
    assert [p.name for p in enumerate_exes(tmp_path)] == ["A.EXE", "b.exe", "c.exe"]


def test_enumerate_missing_folder_is_empty(tmp_path):
    assert enumerate_exes(tmp_path / "nope") == []


def test_fingerprint_ignores_non_exe_files_and_tracks_exes(tmp_path):
    folder = tmp_path / "Game"
    exe = make_exe(folder / "game.exe", 10)
    os.utime(exe, ns=(1_600_000_000 * 10**9, 1_600_000_000 * 10**9))

    before = compute_folder_fingerprint(folder)
    assert before.startswith("1:")

    (folder / "notes.txt").write_text("unrelated")
    assert compute_folder_fingerprint(folder) == before

    os.utime(exe, ns=(1_700_000_000 * 10**9, 1_700_000_000 * 10**9))
    modified = compute_folder_fingerprint(folder)
    assert modified != before

    make_exe(folder / "bin" / "tool.exe", 10)
    assert compute_folder_fingerprint(folder).startswith("2:")


# ──────────────────────────────────────────────────────────────────────────────
# Classification
# ──────────────────────────────────────────────────────────────────────────────

def test_redist_folder_is_excluded_by_folder_name(games):
    folder = games / "Game1"
    make_exe(folder / "Game1.exe", 2 * MB)
    make_exe(folder / "redist" / "vcredist_x64.exe", 5 * MB)
    rules = ScanningConfig(excluded_folder_names=["*redist*"], ignore_folder_patterns=["*redist*"])

    candidate = build_folder_candidate(folder, set(), rules, no_version)

    exes = _by_name(candidate)
    assert exes["Game1.exe"].kind == ExeKind.MAIN_CANDIDATE
    assert candidate.selected_main_exe_path == canonical_path(folder / "Game1.exe")
    assert exes["vcredist_x64.exe"].kind == ExeKind.EXCLUDED
    assert "Excluded by folder name" in exes["vcredist_x64.exe"].reason
    assert candidate.valid_exe_count == 1
    assert candidate.excluded_exe_count == 1


def test_game_core_beats_launcher(games, rules):
    folder = games / "GameCore"
    make_exe(folder / "Launcher.exe", 1 * MB)
    make_exe(folder / "GameCore.exe", 50 * MB)

    candidate = build_folder_candidate(folder, set(), rules, no_version)

    exes = _by_name(candidate)
    assert exes["GameCore.exe"].kind == ExeKind.MAIN_CANDIDATE
    assert exes["Launcher.exe"].kind == ExeKind.TOOL_CANDIDATE
    assert candidate.selected_main_exe_path == exes["GameCore.exe"].exe_path


def test_classification_order(games):
    folder = games / "Foo"
    make_exe(folder / "Foo.exe", 3 * MB)
    make_exe(folder / "tiny.exe", 1000)
    make_exe(folder / "UnityCrashHandler64.exe", 2 * MB)
    make_exe(folder / "setup.exe", 2 * MB)
    make_exe(folder / "hidden.exe", 2 * MB)
    rules = ScanningConfig(
        excluded_exe_patterns=["UnityCrash*.exe"],
        ignore_name_patterns=["setup*.exe"],
    )
    hidden = {canonical_path(folder / "hidden.exe").lower()}

    exes = _by_name(build_folder_candidate(folder, hidden, rules, no_version))

    assert exes["UnityCrashHandler64.exe"].kind == ExeKind.EXCLUDED
    assert exes["UnityCrashHandler64.exe"].reason == "Excluded by executable pattern"
    assert exes["setup.exe"].kind == ExeKind.TOOL_CANDIDATE
    assert exes["setup.exe"].reason.startswith("IgnoredByRule: NamePattern=setup*.exe")
    assert exes["tiny.exe"].kind == ExeKind.SMALL_EXE
    assert exes["tiny.exe"].reason == "Below MinExeBytes (524288)"
    assert exes["hidden.exe"].kind == ExeKind.HIDDEN
    assert exes["Foo.exe"].reason == "Selected as main"


def test_regex_ignore_rule_applies_to_folder_segments(games):
    folder = games / "Bar"
    make_exe(folder / "Bar.exe", 3 * MB)
    make_exe(folder / "Extras" / "Viewer.exe", 3 * MB)
    rules = ScanningConfig(ignore_folder_patterns=["regex:^ext"])

    exes = _by_name(build_folder_candidate(folder, set(), rules, no_version))
    assert exes["Viewer.exe"].kind == ExeKind.TOOL_CANDIDATE
    assert "FolderPattern=regex:^ext" in exes["Viewer.exe"].reason


def test_wildcard_rules_only_expand_star_and_question_mark():
    assert wildcard_match("Game[1].exe", "game[1].exe")
    assert not wildcard_match("Game1.exe", "game[1].exe")
    assert wildcard_match("UNINS000.EXE", "unins???.exe")
    assert wildcard_match("vcredist_x64.exe", "*redist*")
    assert pattern_match("Game[2].exe", "Game[*].exe")
    assert not pattern_match("foo.exe", "regex:  ")


def test_no_eligible_exe_means_no_main(games, rules):
    folder = games / "Small"
    make_exe(folder / "a.exe", 100)
    candidate = build_folder_candidate(folder, set(), rules, no_version)
    assert candidate.selected_main_exe_path is None
    assert candidate.valid_exe_count == 0


def test_score_is_pure_and_uses_version_resource():
    exe = ExeCandidate(exe_path="C:\\Games\\Foo\\bin\\foo_launcher.exe", size_bytes=600 * MB)
    base = score_main_candidate(exe, "", "C:\\Games\\Foo", EMPTY_VERSION)
    # capped size bonus, one penalized token, depth 1
    assert base == 1000 - 350 - 45 + 500

    version = VersionInfo(product_name="Foo Deluxe", file_description="foo game")
    scored = score_main_candidate(exe, "Foo", "C:\\Games\\Foo", version)
    assert scored == base + 250 + 200 + 120


def test_sort_order_is_kind_then_name(games, rules):
    folder = games / "Sorted"
    make_exe(folder / "zeta.exe", 3 * MB)
    make_exe(folder / "alpha.exe", 3 * MB)
    make_exe(folder / "small.exe", 10)
    kinds = [e.kind.value for e in build_folder_candidate(folder, set(), rules, no_version).exes]
    assert kinds == sorted(kinds, key=str.lower)


# ──────────────────────────────────────────────────────────────────────────────
# Scan loop
# ──────────────────────────────────────────────────────────────────────────────

def test_full_scans_are_deterministic(games, roots, rules):
    make_exe(games / "A" / "A.exe", 5 * MB)
    make_exe(games / "A" / "tools" / "editor.exe", 8 * MB)
    make_exe(games / "B" / "b_game.exe", 2 * MB)
    make_exe(games / "B" / "config.exe", 2 * MB)

    first = _scan(games, roots, rules, incremental=False)
    second = _scan(games, roots, rules, incremental=False)

    def shape(result):
        return [(f.folder_name, f.selected_main_exe_path, [(e.exe_path, e.kind, e.reason) for e in f.exes])
                for f in result.folders]

    assert shape(first) == shape(second)
    assert [f.folder_name for f in first.folders] == ["A", "B"]


def test_incremental_scan_restores_unchanged_folders(games, roots, rules):
    make_exe(games / "A" / "A.exe", 5 * MB)
    cache = ScanCache()

    first = _scan(games, roots, rules, cache=cache)
    assert first.folders[0].source == FolderSource.DISK
    assert first.folders[0].state == FolderState.NEW
    assert cache.get(first.folders[0].folder_path) is not None
    assert cache.scan_roots_snapshot == [canonical_path(games)]

    second = _scan(games, roots, rules, cache=cache)
    assert second.folders[0].source == FolderSource.CACHE
    assert second.folders[0].selected_main_exe_path == first.folders[0].selected_main_exe_path
    assert second.metrics.cached_folders == 1

    make_exe(games / "A" / "extra.exe", 5 * MB)
    third = _scan(games, roots, rules, cache=cache)
    assert third.folders[0].source == FolderSource.DISK

    forced = _scan(games, roots, rules, cache=cache, force_full_rescan=True)
    assert forced.folders[0].source == FolderSource.DISK


def test_skip_known_emits_placeholder(games, roots, rules):
    make_exe(games / "Known" / "Known.exe", 5 * MB)
    registry = Registry(games=[GameEntry(display_name="Known",
                                         install=InstallInfo(game_folder_path=canonical_path(games / "Known")))])

    result = _scan(games, roots, rules, registry=registry, incremental=False, skip_known=True)

    folder = result.folders[0]
    assert folder.state == FolderState.KNOWN
    assert folder.source == FolderSource.SKIPPED
    assert folder.exes == []
    assert result.metrics.skipped_known_folders == 1


def test_cancel_stops_at_folder_boundary(games, roots, rules):
    make_exe(games / "A" / "A.exe", 5 * MB)
    make_exe(games / "B" / "B.exe", 5 * MB)
    cancel = threading.Event()
    cache = ScanCache()

    result = _scan(games, roots, rules, cache=cache, cancel=cancel, on_folder=lambda f: cancel.set())

    assert result.cancelled
    assert [f.folder_name for f in result.folders] == ["A"]
    assert len(cache.folders) == 1


def test_progress_callbacks_see_every_folder(games, roots, rules):
    make_exe(games / "A" / "A.exe", 5 * MB)
    make_exe(games / "B" / "B.exe", 5 * MB)
    seen, snapshots = [], []

    _scan(games, roots, rules, on_folder=seen.append, on_metrics=snapshots.append)

    assert [f.folder_name for f in seen] == ["A", "B"]
    assert [m.total_folders for m in snapshots] == [1, 2]
    assert snapshots[-1].main_selected == 2


def test_registry_mapping_backfills_blank_fields(games, roots, rules):
    make_exe(games / "Game One" / "GameOne.exe", 5 * MB)
    entry = GameEntry(display_name="Game-One")
    filled = GameEntry(display_name="game one", install=InstallInfo(game_folder_path="Z:\\Elsewhere"))
    registry = Registry(games=[entry, filled])

    result = _scan(games, roots, rules, registry=registry)

    folder = result.folders[0]
    assert entry.install.game_folder_path == folder.folder_path
    assert entry.install.exe_path == folder.selected_main_exe_path
    assert entry.install.working_dir == folder.folder_path
    assert filled.install.game_folder_path == "Z:\\Elsewhere"


def test_resolve_scan_roots(tmp_path, games):
    (tmp_path / "Rel").mkdir()
    got = resolve_scan_roots(["", str(games), str(games).upper() if os.name == "nt" else str(games),
                              "Rel", str(tmp_path / "missing")], base_dir=tmp_path)
    assert got == [games.absolute(), (tmp_path / "Rel").absolute()]
