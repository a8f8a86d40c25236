# gamerelay/tokens.py
"""Symbolic path roots.

Tokenizing turns an absolute, machine-specific path into `{Token}\\rest`;
resolving expands it again using the roots of the current machine.
"""
from __future__ import annotations

import logging
import ntpath
import os
import re
from dataclasses import dataclass, replace
from typing import Callable, List, Optional, Tuple

from .canonical import (
    KNOWN_TOKENS,
    SEP,
    is_rooted,
    is_under,
    normalize_path,
    normalize_separators,
    normalize_token_path,
    parent_dir,
    path_key,
    relative_to,
)
from .models import InstallInfo, LaunchContract

logger = logging.getLogger(__name__)

GAMES_ROOT = "{GamesRoot}"
CACHE_ROOT = "{CacheRoot}"
LAUNCHBOX_ROOT = "{LaunchBoxRoot}"
GAME_FOLDER = "{GameFolder}"
MAIN_EXE_DIR = "{MainExeDir}"
RELAY_DIR = "{RelayDir}"


@dataclass(frozen=True)
class PathRoots:
    """The machine-wide roots; the per-game `{GameFolder}` comes from InstallInfo."""
    games_root: str = ""
    cache_root: str = ""
    launchbox_root: str = ""
    relay_dir: str = ""


def normalize_root(path: Optional[str]) -> str:
    if not path or not path.strip():
        return ""
    value = normalize_separators(path.strip())
    if not is_rooted(value):
        try:
            value = normalize_separators(os.path.abspath(value.replace(SEP, os.sep)))
        except (OSError, ValueError):
            return value
    return normalize_path(value)


RootGetter = Callable[[InstallInfo, PathRoots], str]

# First match wins. CacheRoot may live inside GamesRoot; reordering this
# table changes the tokens produced for already-stored paths.
TOKENIZE_ORDER: List[Tuple[str, RootGetter]] = [
    (GAMES_ROOT, lambda install, roots: roots.games_root),
    (CACHE_ROOT, lambda install, roots: roots.cache_root),
    (LAUNCHBOX_ROOT, lambda install, roots: roots.launchbox_root),
    (GAME_FOLDER, lambda install, roots: install.game_folder),
    (RELAY_DIR, lambda install, roots: roots.relay_dir),
]

RESOLVE_ORDER: List[Tuple[str, RootGetter]] = [
    (GAMES_ROOT, lambda install, roots: roots.games_root),
    (CACHE_ROOT, lambda install, roots: roots.cache_root),
    (LAUNCHBOX_ROOT, lambda install, roots: roots.launchbox_root),
    (RELAY_DIR, lambda install, roots: roots.relay_dir),
    (GAME_FOLDER, lambda install, roots: install.game_folder),
]


# ──────────────────────────────────────────────────────────────────────────────
# Tokenize
# ──────────────────────────────────────────────────────────────────────────────

def _tokenize_inside_root(normalized_path: str, normalized_root: str, token: str) -> Optional[str]:
    if not normalized_path or not normalized_root:
        return None
    if path_key(normalized_path) == path_key(normalized_root):
        return token
    if not is_under(normalized_path, normalized_root, strict=True):
        return None
    return f"{token}{SEP}{relative_to(normalized_path, normalized_root)}"


def tokenize_absolute_path(absolute: Optional[str], install: InstallInfo, roots: PathRoots) -> str:
    if not absolute or not absolute.strip():
        return ""

    value = normalize_separators(absolute.strip())
    if not is_rooted(value):
        return normalize_token_path(value)

    normalized = normalize_path(value)
    for token, getter in TOKENIZE_ORDER:
        tokenized = _tokenize_inside_root(normalized, normalize_root(getter(install, roots)), token)
        if tokenized is not None:
            return tokenized

    # not under any known root: stays machine-specific
    return normalize_token_path(normalized)


def tokenize_for_storage(raw: Optional[str], install: InstallInfo, roots: PathRoots) -> str:
    """Absolute paths are tokenized; already-tokenized or relative text is only normalized."""
    return tokenize_absolute_path(raw, install, roots)


# ──────────────────────────────────────────────────────────────────────────────
# Resolve
# ──────────────────────────────────────────────────────────────────────────────

def _token_re(token: str) -> "re.Pattern[str]":
    return re.compile(re.escape(token), re.IGNORECASE)


def _replace_token(text: str, token: str, value: str) -> str:
    if not value:
        return text
    return _token_re(token).sub(lambda _m: value, text)


def _resolve_main_exe_dir(install: InstallInfo, contract: Optional[LaunchContract], roots: PathRoots) -> str:
    raw_target = (contract.target_path if contract is not None else "") or install.exe_path
    if not raw_target or not raw_target.strip():
        return normalize_root(install.game_folder)

    stripped = _token_re(MAIN_EXE_DIR).sub("", normalize_separators(raw_target))
    base = contract or LaunchContract()
    resolved_main = resolve(stripped, install, replace(base, target_path=stripped), roots)
    return parent_dir(resolved_main)


def try_resolve(raw: Optional[str], install: InstallInfo, contract: Optional[LaunchContract],
                roots: PathRoots) -> Tuple[bool, str, str]:
    """Returns (ok, resolved, warning). Blank input resolves to an empty path."""
    if not raw or not raw.strip():
        return True, "", ""

    game_folder = normalize_root(install.game_folder)
    text = normalize_separators(raw.strip())
    for token, getter in RESOLVE_ORDER:
        value = game_folder if token == GAME_FOLDER else normalize_root(getter(install, roots))
        text = _replace_token(text, token, value)

    if MAIN_EXE_DIR.lower() in text.lower():
        text = _replace_token(text, MAIN_EXE_DIR, _resolve_main_exe_dir(install, contract, roots))

    if is_rooted(text):
        return True, normalize_path(text), ""

    if "{" in text:
        logger.debug(f"Unresolved token in {raw!r} (after substitution: {text!r})")
        return False, "", f"Path contains unresolved token(s): {raw}"

    if not game_folder:
        return False, "", f"Relative path requires {GAME_FOLDER} but it is empty: {raw}"

    return True, normalize_path(ntpath.join(game_folder, text)), ""


def resolve(raw: Optional[str], install: InstallInfo, contract: Optional[LaunchContract],
            roots: PathRoots) -> str:
    ok, resolved, _warning = try_resolve(raw, install, contract, roots)
    return resolved if ok else ""


def token_summary(raw_target: str, raw_workdir: str) -> str:
    combined = f"{raw_target} {raw_workdir}".lower()
    found = [t for t in KNOWN_TOKENS if t.lower() in combined]
    return ", ".join(found) if found else "none"
