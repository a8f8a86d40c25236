# gamerelay/launch.py
"""Turns a registry entry into a validated, absolute launch contract.

Nothing here spawns a process: the caller receives the resolved target,
arguments and working directory and starts the game itself.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum, IntEnum
from pathlib import Path
from typing import Callable, Optional, Tuple

from .canonical import is_under, native_path, normalize_path, parent_dir
from .identity import build_launch_key_for_game
from .models import GameEntry, LaunchContract, Registry
from .settings import AppConfig, validate_config
from .tokens import PathRoots, normalize_root, token_summary, try_resolve
from .utils import read_version_info

logger = logging.getLogger(__name__)


class ExitCode(IntEnum):
    SUCCESS = 0
    GAME_NOT_FOUND = 10
    EXE_MISSING = 11
    LAUNCH_FAILED = 13
    CONFIG_INVALID = 20


class LaunchStage(str, Enum):
    RESOLVING = "Resolving"
    PREFLIGHT = "Preflight"
    FAILED = "Failed"


@dataclass
class LaunchUpdate:
    stage: LaunchStage
    message: str
    display_name: str = ""
    token_summary: str = ""
    raw_target: str = ""
    raw_args: str = ""
    raw_workdir: str = ""
    resolved_target: str = ""
    resolved_workdir: str = ""
    target_exists: Optional[bool] = None
    workdir_exists: Optional[bool] = None
    warning: str = ""


@dataclass
class LaunchResolution:
    exit_code: ExitCode
    message: str
    game_key: str = ""
    display_name: str = ""
    contract: LaunchContract = field(default_factory=LaunchContract)
    target: str = ""
    arguments: str = ""
    working_directory: str = ""
    workdir_exists: bool = False
    warning: str = ""
    token_summary: str = "none"
    product_summary: str = ""
    registry_changed: bool = False

    @property
    def ok(self) -> bool:
        return self.exit_code == ExitCode.SUCCESS


ProgressCallback = Callable[[LaunchUpdate], None]


# ──────────────────────────────────────────────────────────────────────────────
# Small helpers
# ──────────────────────────────────────────────────────────────────────────────

def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()

def _file_exists(path: str) -> bool:
    return bool(path) and Path(native_path(path)).is_file()

def _dir_exists(path: str) -> bool:
    return bool(path) and Path(native_path(path)).is_dir()

def _product_summary(target: str) -> str:
    if not target.lower().endswith(".exe"):
        return ""
    info = read_version_info(native_path(target))
    if not info.product_name and not info.file_version:
        return ""
    return f"({info.product_name} {info.file_version})".replace("( ", "(").replace(" )", ")")


# ──────────────────────────────────────────────────────────────────────────────
# Contract selection
# ──────────────────────────────────────────────────────────────────────────────

def pick_contract(game: GameEntry, tool_exe_path: Optional[str] = None) -> Tuple[Optional[LaunchContract], ExitCode, str]:
    """The contract to launch, or (None, code, reason) when the tool request is rejected."""
    install = game.install

    if tool_exe_path and tool_exe_path.strip():
        tool = normalize_path(tool_exe_path)
        game_folder = normalize_root(install.game_folder)

        if not _file_exists(tool):
            return None, ExitCode.EXE_MISSING, f"Tool executable missing: {tool_exe_path}"

        # only executables inside the recognized install tree may be started
        if not game_folder or not is_under(tool, game_folder, strict=True):
            return None, ExitCode.CONFIG_INVALID, (
                f"Tool path is outside game folder. Tool={tool}, GameFolder={game_folder or '<unknown>'}")

        stored = game.launch.tool_contract(tool)
        if stored is not None and stored.is_valid:
            return stored, ExitCode.SUCCESS, ""
        return LaunchContract(tool, "", parent_dir(tool) or game_folder), ExitCode.SUCCESS, ""

    if game.launch.main.is_valid:
        return game.launch.main, ExitCode.SUCCESS, ""

    workdir = install.working_dir or parent_dir(install.exe_path) or install.base_folder
    return LaunchContract(install.exe_path, install.args or "", workdir), ExitCode.SUCCESS, ""


# ──────────────────────────────────────────────────────────────────────────────
# Public API
# ──────────────────────────────────────────────────────────────────────────────

def resolve_launch(
    registry: Registry,
    game_key: str,
    config: AppConfig,
    relay_dir: str,
    tool_exe_path: Optional[str] = None,
    progress: Optional[ProgressCallback] = None,
) -> LaunchResolution:
    """Resolve the launch of one game (or one of its tools) on this machine.

    Updates the entry's stats and fills a missing launch key; the caller
    persists the registry when `registry_changed` is set.
    """
    def report(update: LaunchUpdate) -> None:
        if progress is not None:
            progress(update)

    if not validate_config(config):
        logger.error("Config invalid during launch.")
        return LaunchResolution(ExitCode.CONFIG_INVALID, "Config invalid", game_key=game_key)

    game = registry.find(game_key)
    if game is None:
        logger.warning(f"Game key not found: {game_key}")
        report(LaunchUpdate(LaunchStage.FAILED, "Failed: game key not found",
                            warning=f"No game found for key {game_key}."))
        return LaunchResolution(ExitCode.GAME_NOT_FOUND, f"No game found for key {game_key}.", game_key=game_key)

    roots: PathRoots = config.roots(relay_dir)
    result = LaunchResolution(ExitCode.SUCCESS, "", game_key=game.game_key, display_name=game.display_name)

    if not game.launch_key.strip():
        game.launch_key = build_launch_key_for_game(game, roots)
        result.registry_changed = True

    contract, code, reason = pick_contract(game, tool_exe_path)
    if contract is None:
        logger.error(reason)
        report(LaunchUpdate(LaunchStage.FAILED, "Failed", display_name=game.display_name, warning=reason))
        result.exit_code, result.message, result.warning = code, reason, reason
        return result

    result.contract = contract
    result.arguments = contract.arguments or ""
    result.token_summary = token_summary(contract.target_path, contract.working_directory)
    raw = dict(display_name=game.display_name, token_summary=result.token_summary,
               raw_target=contract.target_path, raw_args=result.arguments,
               raw_workdir=contract.working_directory)
    report(LaunchUpdate(LaunchStage.RESOLVING, "Resolving paths...", **raw))

    ok, target, warning = try_resolve(contract.target_path, game.install, contract, roots)
    if not ok:
        logger.warning(f"Invalid launch target for {game.display_name}: raw={contract.target_path}; warning={warning}")
        report(LaunchUpdate(LaunchStage.FAILED, "Failed", warning=warning, **raw))
        result.exit_code, result.message, result.warning = ExitCode.CONFIG_INVALID, warning, warning
        return result

    result.target = target
    if not _file_exists(target):
        game.stats.last_result = "MissingExe"
        game.stats.last_validated_utc = _utc_now()
        result.registry_changed = True
        message = f"Resolved target does not exist: {target}"
        logger.error(f"Launch target missing for {game.display_name}: {target}")
        report(LaunchUpdate(LaunchStage.FAILED, "Failed: target missing", resolved_target=target,
                            target_exists=False, warning=message, **raw))
        result.exit_code, result.message = ExitCode.EXE_MISSING, message
        return result

    ok_w, workdir, workdir_warning = try_resolve(contract.working_directory, game.install, contract, roots)
    if not ok_w:
        logger.warning(f"Invalid launch working directory for {game.display_name}: "
                       f"raw={contract.working_directory}; warning={workdir_warning}")
        workdir = ""
        result.warning = workdir_warning
    if not workdir:
        workdir = parent_dir(target)

    result.working_directory = workdir
    result.workdir_exists = _dir_exists(workdir)
    if not result.workdir_exists and not result.warning:
        result.warning = "Working directory missing."
    result.product_summary = _product_summary(target)

    logger.info(f"Launch contract raw: target={contract.target_path}; args={contract.arguments}; "
                f"workdir={contract.working_directory}")
    logger.info(f"Launch contract resolved: target={target}; args={contract.arguments}; workdir={workdir}")

    message = "Preflight checks..."
    if not result.workdir_exists:
        message += " warning: working directory missing"
    if result.product_summary:
        message += f" {result.product_summary}"
    report(LaunchUpdate(LaunchStage.PREFLIGHT, message, resolved_target=target, resolved_workdir=workdir,
                        target_exists=True, workdir_exists=result.workdir_exists, **raw))

    now = _utc_now()
    game.stats.last_played_utc = now
    game.stats.last_validated_utc = now
    game.stats.last_result = "OK"
    result.registry_changed = True
    result.message = "Resolved"
    return result
