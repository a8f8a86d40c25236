import base64
import fnmatch
import logging
import os
import re
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)

# DateTime ticks (100ns since 0001-01-01) at the Unix epoch
EPOCH_TICKS = 621355968000000000

_NAME_NOISE = re.compile(r"(?i)\b(x64|win64|launcher|shipping|release|final)\b")
_NAME_PUNCT = re.compile(r"[_.\-]+")
_NAME_SPACES = re.compile(r"\s+")


def b64url_encode(s: str) -> str:
    return base64.urlsafe_b64encode(s.encode()).decode().rstrip("=")

def b64url_decode(s: str) -> str:
    pad = "=" * (-len(s) % 4)
    return base64.urlsafe_b64decode((s + pad).encode()).decode()

def is_windows() -> bool:
    return os.name == "nt"

def mtime_ticks(path: Path) -> int:
    return EPOCH_TICKS + path.stat().st_mtime_ns // 100

# --- name / folder rules ---

def wildcard_match(value: str, pattern: str) -> bool:
    """Whole-string, case-insensitive `*`/`?` match; `[` is literal."""
    return fnmatch.fnmatchcase(value.lower(), pattern.lower().replace("[", "[[]"))

def pattern_match(value: str, pattern: str) -> bool:
    """Wildcard match, or a case-insensitive regex search for `regex:<expr>` rules."""
    if pattern.lower().startswith("regex:"):
        expr = pattern[len("regex:"):]
        if not expr.strip():
            return False
        try:
            return re.search(expr, value, re.IGNORECASE) is not None
        except re.error as e:
            logger.debug(f"Invalid scanner rule {pattern!r}: {e}")
            return False
    return wildcard_match(value, pattern)

# --- executable version resource ---

@dataclass(frozen=True)
class VersionInfo:
    product_name: str = ""
    file_description: str = ""
    file_version: str = ""

EMPTY_VERSION = VersionInfo()

def read_version_info(exe_path: str) -> VersionInfo:
    """ProductName / FileDescription / FileVersion of a PE file; empty when unavailable."""
    if not is_windows():
        return EMPTY_VERSION

    import win32api  # pywin32 is only installed on Windows

    try:
        props = {}
        lang_codepages = win32api.GetFileVersionInfo(exe_path, r"\VarFileInfo\Translation")
        if lang_codepages:
            lang_cp = f"{lang_codepages[0][0]:04x}{lang_codepages[0][1]:04x}"
        else:
            lang_cp = "040904b0"
        for key in ("ProductName", "FileDescription", "FileVersion"):
            try:
                value = win32api.GetFileVersionInfo(exe_path, f"\\StringFileInfo\\{lang_cp}\\{key}")
            except Exception:
                value = ""
            props[key] = (value or "").strip()
        return VersionInfo(props["ProductName"], props["FileDescription"], props["FileVersion"])
    except Exception as e:
        logger.debug(f"No version resource for {exe_path}: {type(e).__name__} - {e}")
        return EMPTY_VERSION

def suggested_name(exe_path: str, version: VersionInfo) -> str:
    if version.product_name:
        return version.product_name
    if version.file_description:
        return version.file_description

    stem = Path(exe_path.replace("\\", "/")).stem
    name = _NAME_NOISE.sub(" ", stem)
    name = _NAME_PUNCT.sub(" ", name)
    name = _NAME_SPACES.sub(" ", name).strip()
    return name or stem
