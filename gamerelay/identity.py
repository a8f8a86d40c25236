# gamerelay/identity.py
from __future__ import annotations

from typing import Optional

from .canonical import build_identity_string, compute_sha256_hex, normalize_arguments
from .models import GameEntry
from .tokens import PathRoots, tokenize_for_storage


def build_launch_key(target_path: Optional[str], arguments: Optional[str],
                     working_directory: Optional[str]) -> str:
    # Windows paths are case-insensitive; arguments keep their case
    return compute_sha256_hex(build_identity_string(
        (target_path or "").lower(), arguments, (working_directory or "").lower()))


def is_match(left_key: Optional[str], right_key: Optional[str]) -> bool:
    # uninitialized entries carry an empty key and must never match
    if not left_key or not left_key.strip() or not right_key or not right_key.strip():
        return False
    return left_key.strip().lower() == right_key.strip().lower()


def prefer_exe_path_fallback(arguments: Optional[str]) -> bool:
    """Legacy entries without a key fall back to exe-path equality when they take no arguments."""
    return not normalize_arguments(arguments)


def build_launch_key_for_game(game: GameEntry, roots: PathRoots) -> str:
    """Key of the game's main contract, or of its InstallInfo when no contract is stored.

    Target and working directory are tokenized first; arguments are hashed
    as stored. Tokenizing arguments would change every existing key.
    """
    contract = game.launch.main
    install = game.install
    raw_target = contract.target_path if contract.target_path.strip() else install.exe_path
    raw_workdir = contract.working_directory if contract.working_directory.strip() else install.working_dir
    args = contract.arguments if contract.is_valid else (install.args or "")

    token_target = tokenize_for_storage(raw_target, install, roots)
    token_workdir = tokenize_for_storage(raw_workdir, install, roots)
    return build_launch_key(token_target, args, token_workdir)
