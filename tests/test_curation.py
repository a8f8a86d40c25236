from conftest import MB, make_exe, no_version

from gamerelay.curation import (
    add_all_main_to_registry,
    add_main_for_folder_to_registry,
    add_tools_for_folder_to_registry,
    find_matching_game,
    hide_executable,
    set_main,
    toggle_tool,
)
from gamerelay.identity import build_launch_key
from gamerelay.models import ExeKind, GameEntry, InstallInfo, Registry, ScanCache
from gamerelay.scanning import build_folder_candidate, canonical_path, to_cache_entry


def _folder(games, rules, name="Foo"):
    folder = games / name
    make_exe(folder / f"{name}.exe", 5 * MB)
    make_exe(folder / "tools" / "ModTool.exe", 2 * MB)
    make_exe(folder / "patch.exe", 100)
    return build_folder_candidate(folder, set(), rules, no_version)


def test_set_main_on_small_exe_keeps_reason(games, rules):
    folder = _folder(games, rules)
    small = next(e for e in folder.exes if e.kind == ExeKind.SMALL_EXE)
    previous_main = folder.find_exe(folder.selected_main_exe_path)

    assert set_main(folder, small.exe_path)

    assert small.kind == ExeKind.MAIN_CANDIDATE
    assert small.is_main_override
    assert "MainOverride" in small.reason
    assert "MinExeBytes" in small.reason
    assert previous_main.kind == ExeKind.TOOL_CANDIDATE
    assert folder.selected_main_exe_path == small.exe_path

    # idempotent
    assert set_main(folder, small.exe_path)
    assert small.reason.count("MainOverride") == 1


def test_set_main_refuses_hidden_and_unknown(games, rules):
    folder = _folder(games, rules)
    registry = Registry()
    tool = next(e for e in folder.exes if e.exe_name == "ModTool.exe")
    hide_executable(registry, tool.exe_path, [folder])

    assert not set_main(folder, tool.exe_path)
    assert not set_main(folder, "C:\\nowhere.exe")
    assert not set_main(folder, "")


def test_toggle_tool(games, rules):
    folder = _folder(games, rules)
    tool = next(e for e in folder.exes if e.exe_name == "ModTool.exe")

    assert toggle_tool(folder, tool.exe_path, True)
    assert tool.is_tool_selected
    assert folder.selected_tool_exe_paths == {tool.exe_path}

    # selecting twice keeps one entry
    assert toggle_tool(folder, tool.exe_path.upper(), True)
    assert len(folder.selected_tool_exe_paths) == 1

    assert toggle_tool(folder, tool.exe_path, False)
    assert not tool.is_tool_selected
    assert folder.selected_tool_exe_paths == set()

    main = folder.selected_main_exe_path
    assert not toggle_tool(folder, main, True)
    assert toggle_tool(folder, main, False)
    assert folder.selected_tool_exe_paths == set()


def test_set_main_clears_tool_selection(games, rules):
    folder = _folder(games, rules)
    tool = next(e for e in folder.exes if e.exe_name == "ModTool.exe")
    toggle_tool(folder, tool.exe_path, True)

    set_main(folder, tool.exe_path)

    assert not tool.is_tool_selected
    assert folder.selected_tool_exe_paths == set()


def test_hide_executable_updates_registry_folders_and_cache(games, rules):
    folder = _folder(games, rules)
    cache = ScanCache()
    cache.put(to_cache_entry(folder, "1:1"))
    registry = Registry()
    main = folder.selected_main_exe_path

    assert hide_executable(registry, main, [folder], cache)
    assert not hide_executable(registry, main.lower(), [folder], cache)

    assert registry.hidden_executables == [main]
    assert folder.find_exe(main).kind == ExeKind.HIDDEN
    assert folder.selected_main_exe_path is None
    assert folder.hidden_exe_count == 1
    cached = cache.get(folder.folder_path)
    assert cached.folder_fingerprint == "1:1"
    assert cached.selected_main_exe_path is None
    assert any(e.kind == ExeKind.HIDDEN for e in cached.exe_candidates)


def test_hidden_executables_are_skipped_on_rebuild(games, rules):
    folder = _folder(games, rules)
    registry = Registry()
    hide_executable(registry, folder.selected_main_exe_path)

    rebuilt = build_folder_candidate(games / "Foo", {p.lower() for p in registry.hidden_executables},
                                     rules, no_version)
    assert rebuilt.find_exe(registry.hidden_executables[0]).kind == ExeKind.HIDDEN
    assert rebuilt.find_exe(registry.hidden_executables[0]).reason == "Path exists in HiddenExecutables"


# ──────────────────────────────────────────────────────────────────────────────
# Registry commit
# ──────────────────────────────────────────────────────────────────────────────

def test_commit_creates_then_updates_entry(games, rules, roots):
    folder = _folder(games, rules)
    tool = next(e for e in folder.exes if e.exe_name == "ModTool.exe")
    toggle_tool(folder, tool.exe_path, True)
    registry = Registry()

    assert add_main_for_folder_to_registry(folder, registry, roots)
    assert len(registry.games) == 1
    game = registry.games[0]
    assert game.display_name == "Foo"
    assert game.launch.main.target_path == "{GamesRoot}\\Foo\\Foo.exe"
    assert game.launch.main.working_directory == "{GamesRoot}\\Foo"
    assert game.launch_key == build_launch_key("{GamesRoot}\\Foo\\Foo.exe", "", "{GamesRoot}\\Foo")
    assert game.install.tool_exe_paths == [tool.exe_path]
    assert game.launch.tool_contract(tool.exe_path).target_path == "{GamesRoot}\\Foo\\tools\\ModTool.exe"

    key = game.game_key
    assert add_main_for_folder_to_registry(folder, registry, roots)
    assert len(registry.games) == 1
    assert registry.games[0].game_key == key


def test_commit_without_main_is_skipped(games, rules, roots):
    folder = games / "Empty"
    make_exe(folder / "tiny.exe", 10)
    candidate = build_folder_candidate(folder, set(), rules, no_version)
    registry = Registry()

    assert not add_main_for_folder_to_registry(candidate, registry, roots)
    assert add_all_main_to_registry([candidate, _folder(games, rules)], registry, roots) == (1, 1)


def test_commit_matches_legacy_entry_by_folder_path(games, rules, roots):
    folder = _folder(games, rules)
    legacy = GameEntry(display_name="Old name", install=InstallInfo(game_folder_path=folder.folder_path))
    registry = Registry(games=[legacy])

    add_main_for_folder_to_registry(folder, registry, roots)

    assert registry.games == [legacy]
    assert legacy.display_name == "Old name"
    assert legacy.launch_key


def test_find_matching_game_order():
    keyed = GameEntry(launch_key="abc", install=InstallInfo(game_folder_path="C:\\G\\Foo"))
    by_exe = GameEntry(install=InstallInfo(exe_path="C:\\G\\Bar\\bar.exe"))
    registry = Registry(games=[keyed, by_exe])

    assert find_matching_game(registry, "ABC", "C:\\x", "C:\\x\\x.exe") is keyed
    # keyed entries never match through the folder fallback
    assert find_matching_game(registry, "zzz", "C:\\G\\Foo", "C:\\G\\Foo\\foo.exe") is None
    assert find_matching_game(registry, "zzz", "C:\\G\\Bar2", "c:/g/bar/BAR.exe") is by_exe


def test_add_tools_for_folder(games, rules, roots):
    folder = _folder(games, rules)
    registry = Registry()
    assert not add_tools_for_folder_to_registry(folder, registry, roots)

    add_main_for_folder_to_registry(folder, registry, roots)
    tool = next(e for e in folder.exes if e.exe_name == "ModTool.exe")
    toggle_tool(folder, tool.exe_path, True)

    assert add_tools_for_folder_to_registry(folder, registry, roots)
    game = registry.games[0]
    assert game.install.tool_exe_paths == [canonical_path(games / "Foo" / "tools" / "ModTool.exe")]
    assert game.launch.tool_contract(tool.exe_path).working_directory == "{GamesRoot}\\Foo\\tools"
