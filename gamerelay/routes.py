from __future__ import annotations
from dataclasses import asdict
from flask import Blueprint, current_app, render_template_string, request, abort, jsonify

from .curation import (
    add_all_main_to_registry,
    add_main_for_folder_to_registry,
    add_tools_for_folder_to_registry,
    hide_executable,
    set_main,
    toggle_tool,
)
from .jobs import Library
from .launch import ExitCode, LaunchUpdate, resolve_launch
from .models import GameFolderCandidate
from .utils import b64url_decode, b64url_encode

from .templates import INDEX_HTML

bp = Blueprint("gamerelay", __name__)

def _lib() -> Library:
    return current_app.extensions["gamerelay"]

def _body() -> dict:
    data = request.get_json(silent=True)
    if isinstance(data, dict):
        return data
    return request.form.to_dict()

def _flag(data: dict, key: str, default: bool = False) -> bool:
    value = data.get(key, default)
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "on", "yes")
    return bool(value)

def _bad(msg: str, status: int = 400):
    return jsonify({"ok": False, "error": msg}), status

def folder_id(folder: GameFolderCandidate) -> str:
    return b64url_encode(folder.folder_path)

def folder_summary(folder: GameFolderCandidate) -> dict:
    return {
        "id": folder_id(folder),
        "folder_path": folder.folder_path,
        "folder_name": folder.folder_name,
        "state": folder.state.value,
        "source": folder.source.value,
        "selected_main_exe_path": folder.selected_main_exe_path,
        "selected_tool_exe_paths": sorted(folder.selected_tool_exe_paths, key=str.lower),
        "valid_exe_count": folder.valid_exe_count,
        "excluded_exe_count": folder.excluded_exe_count,
        "hidden_exe_count": folder.hidden_exe_count,
        "exes": [
            {
                "exe_path": e.exe_path,
                "suggested_name": e.suggested_name,
                "size_mb": e.size_mb,
                "kind": e.kind.value,
                "reason": e.reason,
                "is_tool_selected": e.is_tool_selected,
                "is_main_override": e.is_main_override,
            }
            for e in folder.exes
        ],
    }

def _folder_or_404(data: dict) -> GameFolderCandidate:
    fid = str(data.get("folder_id") or "")
    if not fid:
        abort(400)
    try:
        path = b64url_decode(fid)
    except (ValueError, UnicodeDecodeError):
        abort(400)
    folder = _lib().find_folder(path)
    if folder is None:
        abort(404)
    return folder

def _refuse_while_scanning():
    if _lib().scanning:
        return _bad("A scan is running.", 409)
    return None

@bp.errorhandler(400)
def _bad_request(e):
    return _bad("Malformed request.")

@bp.get("/")
def index():
    lib = _lib()
    with lib.lock:
        return render_template_string(
            INDEX_HTML,
            app_title=current_app.config["APP_TITLE"],
            home=current_app.config["RELAY_HOME"],
            games=list(lib.registry.games),
            folders=list(lib.folders),
            metrics=lib.metrics(),
            scanning=lib.scanning,
            folder_id=folder_id,
        )

# ──────────────────────────────────────────────────────────────────────────────
# Scan
# ──────────────────────────────────────────────────────────────────────────────

@bp.post("/scan")
def scan_start():
    data = _body()
    ok, msg = _lib().start_scan(
        incremental=_flag(data, "incremental", True),
        skip_known=_flag(data, "skip_known"),
        force_full_rescan=_flag(data, "force_full_rescan"),
    )
    if not ok:
        return _bad(msg, 409)
    return jsonify({"ok": True, "message": msg}), 202

@bp.get("/scan/status")
def scan_status():
    lib = _lib()
    job = lib.job
    if job is None:
        return jsonify({"ok": True, "running": False, "folders": [], "metrics": None})
    job.drain()
    return jsonify({
        "ok": True,
        "running": job.running,
        "cancelled": bool(job.result and job.result.cancelled),
        "error": job.error,
        "metrics": asdict(job.metrics),
        "folders": [folder_summary(f) for f in job.folders],
    })

@bp.post("/scan/cancel")
def scan_cancel():
    cancelled = _lib().cancel_scan()
    return jsonify({"ok": cancelled, ("message" if cancelled else "error"): "Cancel requested." if cancelled else "No scan running."})

# ──────────────────────────────────────────────────────────────────────────────
# Folder curation
# ──────────────────────────────────────────────────────────────────────────────

@bp.post("/folders/main")
def folders_main():
    refused = _refuse_while_scanning()
    if refused:
        return refused
    data = _body()
    lib = _lib()
    with lib.lock:
        folder = _folder_or_404(data)
        if not set_main(folder, str(data.get("exe") or ""), lib.cache):
            return _bad("Executable cannot be selected as main.")
        lib.persist_cache()
        return jsonify({"ok": True, "folder": folder_summary(folder)})

@bp.post("/folders/tool")
def folders_tool():
    refused = _refuse_while_scanning()
    if refused:
        return refused
    data = _body()
    lib = _lib()
    with lib.lock:
        folder = _folder_or_404(data)
        if not toggle_tool(folder, str(data.get("exe") or ""), _flag(data, "selected", True), lib.cache):
            return _bad("Executable cannot be selected as tool.")
        lib.persist_cache()
        return jsonify({"ok": True, "folder": folder_summary(folder)})

@bp.post("/folders/hide")
def folders_hide():
    refused = _refuse_while_scanning()
    if refused:
        return refused
    data = _body()
    exe = str(data.get("exe") or "").strip()
    if not exe:
        return _bad("Missing exe.")
    lib = _lib()
    with lib.lock:
        added = hide_executable(lib.registry, exe, lib.folders, lib.cache)
        lib.persist_registry()
        lib.persist_cache()
        return jsonify({"ok": True, "added": added, "hidden_executables": lib.registry.hidden_executables})

@bp.post("/folders/commit")
def folders_commit():
    refused = _refuse_while_scanning()
    if refused:
        return refused
    data = _body()
    lib = _lib()
    with lib.lock:
        folder = _folder_or_404(data)
        roots = lib.roots()
        if _flag(data, "tools_only"):
            ok = add_tools_for_folder_to_registry(folder, lib.registry, roots)
            msg = "No registry entry for this folder." if not ok else "Tools registered."
        else:
            ok = add_main_for_folder_to_registry(folder, lib.registry, roots)
            msg = "No main executable selected." if not ok else "Registered."
        if not ok:
            return _bad(msg)
        lib.persist_registry()
        return jsonify({"ok": True, "message": msg, "games": len(lib.registry.games)})

@bp.post("/folders/commit-all")
def folders_commit_all():
    refused = _refuse_while_scanning()
    if refused:
        return refused
    lib = _lib()
    with lib.lock:
        added, skipped = add_all_main_to_registry(lib.folders, lib.registry, lib.roots())
        lib.persist_registry()
        return jsonify({"ok": True, "added": added, "skipped": skipped})

# ──────────────────────────────────────────────────────────────────────────────
# Launch (dry run)
# ──────────────────────────────────────────────────────────────────────────────

@bp.get("/launch/<game_key>")
def launch_resolve(game_key):
    # resolution fills the launch key and stats, and the scan thread owns the registry
    refused = _refuse_while_scanning()
    if refused:
        return refused
    lib = _lib()
    stages = []

    def on_progress(update: LaunchUpdate):
        stages.append({"stage": update.stage.value, "message": update.message, "warning": update.warning})

    with lib.lock:
        res = resolve_launch(lib.registry, game_key, lib.config, str(lib.home.absolute()),
                             tool_exe_path=request.args.get("tool") or None, progress=on_progress)
        if res.exit_code == ExitCode.GAME_NOT_FOUND:
            abort(404)
        if res.registry_changed:
            lib.persist_registry()

    return jsonify({
        "ok": res.ok,
        "exit_code": int(res.exit_code),
        "message": res.message,
        "display_name": res.display_name,
        "target": res.target,
        "arguments": res.arguments,
        "working_directory": res.working_directory,
        "workdir_exists": res.workdir_exists,
        "warning": res.warning,
        "token_summary": res.token_summary,
        "product_summary": res.product_summary,
        "stages": stages,
    })

@bp.get("/favicon.ico")
def favicon():
    return ("", 204)
