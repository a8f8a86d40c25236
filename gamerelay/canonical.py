# gamerelay/canonical.py
"""Byte-stable text forms of paths and argument strings.

Every stored path is kept in Windows form (backslash separators, drive
letters) regardless of the host OS, so that identity hashes computed on one
machine match the ones computed on another. `native_path` converts back for
filesystem calls.
"""
from __future__ import annotations

import hashlib
import ntpath
import os
import re
from typing import Optional

SEP = "\\"

KNOWN_TOKENS = (
    "{GamesRoot}",
    "{CacheRoot}",
    "{LaunchBoxRoot}",
    "{GameFolder}",
    "{MainExeDir}",
    "{RelayDir}",
)

_TOKEN_RE = re.compile("|".join(re.escape(t) for t in KNOWN_TOKENS), re.IGNORECASE)
_CANONICAL_TOKEN = {t.lower(): t for t in KNOWN_TOKENS}
_DRIVE_RE = re.compile(r"^[A-Za-z]:")


def normalize_separators(value: Optional[str]) -> str:
    if not value:
        return ""
    return value.replace("/", SEP)


def is_rooted(value: str) -> bool:
    """True for `C:...`, `\\...` and UNC paths (after separator normalization)."""
    if not value:
        return False
    return value.startswith(SEP) or bool(_DRIVE_RE.match(value))


def _is_drive_only(value: str) -> bool:
    return len(value) == 2 and bool(_DRIVE_RE.match(value))


def _full_path(value: str) -> str:
    try:
        return ntpath.normpath(value)
    except (TypeError, ValueError):
        return value


def _strip_trailing_separator(value: str) -> str:
    while len(value) > 3 and value.endswith(SEP):
        stripped = value[:-1].rstrip()
        if not stripped or _is_drive_only(stripped):
            break
        value = stripped
    return value


def _collapse(value: str) -> str:
    # stripping can expose a trailing `.`/`..` segment, so repeat until stable
    while value:
        before = value
        if is_rooted(value):
            value = _full_path(value)
        value = _strip_trailing_separator(value).strip()
        if value == before:
            break
    return value


def canonicalize_tokens(text: str) -> str:
    return _TOKEN_RE.sub(lambda m: _CANONICAL_TOKEN[m.group(0).lower()], text)


def normalize_token_path(path: Optional[str]) -> str:
    if not path or not path.strip():
        return ""

    value = canonicalize_tokens(normalize_separators(path.strip()))
    return _collapse(value)


def normalize_path(path: Optional[str]) -> str:
    """Absolute-path form used for comparisons; never collapses a drive root."""
    if not path or not path.strip():
        return ""
    return _collapse(normalize_separators(path.strip()))


def normalize_arguments(arguments: Optional[str]) -> str:
    if not arguments or not arguments.strip():
        return ""

    out = []
    in_quotes = False
    previous_space = False
    for ch in arguments.strip():
        if ch == '"':
            # an unbalanced quote leaves the rest of the string verbatim
            in_quotes = not in_quotes
            out.append(ch)
            previous_space = False
            continue

        if ch.isspace() and not in_quotes:
            if not previous_space:
                out.append(" ")
                previous_space = True
            continue

        out.append(ch)
        previous_space = False

    return "".join(out).strip()


def build_identity_string(target_path: Optional[str], arguments: Optional[str],
                          working_directory: Optional[str]) -> str:
    target = normalize_token_path(target_path)
    args = normalize_arguments(arguments)
    workdir = normalize_token_path(working_directory)
    return f"target={target}|args={args}|workdir={workdir}"


def compute_sha256_hex(value: Optional[str]) -> str:
    return hashlib.sha256((value or "").encode("utf-8")).hexdigest()


# ──────────────────────────────────────────────────────────────────────────────
# Comparison helpers
# ──────────────────────────────────────────────────────────────────────────────

def path_key(path: Optional[str]) -> str:
    return normalize_path(path).lower()


def paths_equal(left: Optional[str], right: Optional[str]) -> bool:
    return path_key(left) == path_key(right)


def is_under(path: Optional[str], root: Optional[str], *, strict: bool = False) -> bool:
    """Case-insensitive containment test on normalized paths."""
    p = path_key(path)
    r = path_key(root)
    if not p or not r:
        return False
    if p == r:
        return not strict
    prefix = r if r.endswith(SEP) else r + SEP
    return p.startswith(prefix)


def relative_to(path: str, root: str) -> str:
    p = normalize_path(path)
    r = normalize_path(root)
    if not is_under(p, r):
        return ""
    return p[len(r):].lstrip(SEP)


def parent_dir(path: Optional[str]) -> str:
    value = normalize_path(path)
    if not value:
        return ""
    head = ntpath.dirname(value)
    return normalize_path(head) if head != value else ""


def file_name(path: Optional[str]) -> str:
    return ntpath.basename(normalize_separators(path or "").rstrip(SEP))


def native_path(path: Optional[str]) -> str:
    """Stored (backslash) form to the host OS form."""
    if not path:
        return ""
    if os.sep == "/":
        return path.replace(SEP, "/")
    return path
