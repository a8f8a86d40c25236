# gamerelay/jobs.py
"""In-memory library state and the background scan worker."""
from __future__ import annotations

import logging
import threading
from dataclasses import replace
from pathlib import Path
from queue import Empty, Queue
from typing import Any, List, Optional, Tuple

from .canonical import paths_equal
from .models import GameFolderCandidate, ScanMetrics
from .scanning import ScanResult, scan_game_folders
from .settings import load_settings
from .store import load_registry, load_scan_cache, save_registry, save_scan_cache
from .tokens import PathRoots

logger = logging.getLogger(__name__)

CONFIG_FILE = "Config.json"


class ScanJob:
    """One scan running on a daemon thread.

    Progress is published on `events` as (event_type, payload) tuples:
    ("folder", GameFolderCandidate), ("metrics", ScanMetrics), ("error", str)
    and finally ("done", ScanResult | None).
    """

    def __init__(self, library: "Library", incremental: bool = True, skip_known: bool = False,
                 force_full_rescan: bool = False):
        self.library = library
        self.incremental = incremental
        self.skip_known = skip_known
        self.force_full_rescan = force_full_rescan
        self.events: "Queue[Tuple[str, Any]]" = Queue()
        self.cancel_event = threading.Event()
        self.done = threading.Event()
        self.result: Optional[ScanResult] = None
        self.error = ""
        # everything drained so far, in arrival order
        self.folders: List[GameFolderCandidate] = []
        self.metrics = ScanMetrics()
        self._thread = threading.Thread(target=self._run, name="gamerelay-scan", daemon=True)

    def start(self) -> "ScanJob":
        self._thread.start()
        return self

    def cancel(self) -> None:
        self.cancel_event.set()

    def join(self, timeout: Optional[float] = None) -> bool:
        self._thread.join(timeout)
        return self.done.is_set()

    @property
    def running(self) -> bool:
        return not self.done.is_set()

    def _run(self) -> None:
        lib = self.library
        result = None
        try:
            result = scan_game_folders(
                lib.config.paths.scan_roots,
                lib.registry,
                lib.config.scanning,
                lib.cache,
                lib.roots(),
                incremental=self.incremental,
                skip_known=self.skip_known,
                force_full_rescan=self.force_full_rescan,
                on_folder=lambda f: self.events.put(("folder", f)),
                on_metrics=lambda m: self.events.put(("metrics", m)),
                cancel=self.cancel_event,
                base_dir=lib.home,
            )
            with lib.lock:
                lib.folders = list(result.folders)
                lib.persist_cache()
                lib.persist_registry()
        except OSError as e:
            logger.exception("Scan failed")
            self.error = str(e)
            self.events.put(("error", self.error))
        finally:
            self.result = result
            self.events.put(("done", result))
            self.done.set()

    def drain(self) -> List[Tuple[str, Any]]:
        """Pull every pending event and fold it into `folders` / `metrics`."""
        drained = []
        while True:
            try:
                event_type, payload = self.events.get_nowait()
            except Empty:
                break
            if event_type == "folder":
                self.folders.append(payload)
            elif event_type == "metrics":
                self.metrics = payload
            drained.append((event_type, payload))
        return drained


class Library:
    """Config, registry, scan cache and the last scan's folders for one data directory."""

    def __init__(self, home: Path):
        self.home = Path(home)
        self.lock = threading.RLock()
        self.config = load_settings(self.home / CONFIG_FILE)
        self.registry = load_registry(self.home)
        self.cache = load_scan_cache(self.home)
        self.folders: List[GameFolderCandidate] = []
        self.job: Optional[ScanJob] = None

    def roots(self) -> PathRoots:
        return self.config.roots(str(self.home.absolute()))

    @property
    def scanning(self) -> bool:
        return self.job is not None and self.job.running

    def start_scan(self, incremental: bool = True, skip_known: bool = False,
                   force_full_rescan: bool = False) -> Tuple[bool, str]:
        if self.scanning:
            return False, "A scan is already running."
        self.job = ScanJob(self, incremental=incremental, skip_known=skip_known,
                           force_full_rescan=force_full_rescan).start()
        return True, "Scan started."

    def cancel_scan(self) -> bool:
        if not self.scanning:
            return False
        self.job.cancel()
        return True

    def find_folder(self, folder_path: str) -> Optional[GameFolderCandidate]:
        return next((f for f in self.folders if paths_equal(f.folder_path, folder_path)), None)

    def metrics(self) -> ScanMetrics:
        if self.job is None:
            return ScanMetrics()
        self.job.drain()
        return replace(self.job.metrics)

    def persist_registry(self) -> None:
        save_registry(self.home, self.registry)

    def persist_cache(self) -> None:
        save_scan_cache(self.home, self.cache)
