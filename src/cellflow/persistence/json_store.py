"""JSON file persistence for notebooks and their runs."""

import json
import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

from filelock import FileLock, Timeout
from pydantic import ValidationError

from cellflow import NotebookLockedError, PersistenceError
from cellflow.models import Notebook, Run, RunEvent
from cellflow.persistence.memory import InMemoryStore

logger = logging.getLogger(__name__)


class JsonFileStore(InMemoryStore):
    """Store that writes every change through to a directory of JSON files.

    Each notebook gets a dedicated directory:
    {base_dir}/{notebook_id}/
        ├── notebook.json    # Notebook and cell state
        ├── runs.json        # Run records
        └── events.jsonl     # Status transitions, one per line
    """

    def __init__(self, base_dir: Path | str = "notebooks"):
        """Initialize the store and load any existing notebooks.

        Args:
            base_dir: Base directory for all notebooks
        """
        super().__init__()
        self.base_dir = Path(base_dir)
        try:
            self.base_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise PersistenceError(f"Cannot create store directory {self.base_dir}: {e}") from e
        self._dirs: dict[str, Path] = {}
        self._load()

    def notebook_dir(self, notebook_id: str) -> Path:
        """Directory holding a notebook's files."""
        directory = self._dirs.get(notebook_id)
        if directory is None:
            directory = self.base_dir / self._sanitize_name(notebook_id)
            self._dirs[notebook_id] = directory
        return directory

    @contextmanager
    def exclusive(self, notebook_id: str) -> Iterator[None]:
        """Hold the notebook's run.lock file and refresh its state from disk.

        The lock is an OS-level advisory lock, so separate processes sharing
        base_dir cannot run or resolve the same notebook at once.

        Raises:
            NotebookLockedError: If another process holds the lock
            PersistenceError: If the notebook files cannot be reloaded
        """
        directory = self.notebook_dir(notebook_id)
        if not (directory / "notebook.json").exists():
            # Nothing on disk to guard; lookups will report the missing notebook.
            yield
            return

        lock = FileLock(directory / "run.lock")
        try:
            lock.acquire(timeout=0)
        except Timeout as e:
            raise NotebookLockedError(f"Notebook {notebook_id} is locked by another process") from e

        try:
            self._reload(directory)
            yield
        finally:
            lock.release()

    def _load(self) -> None:
        """Load every notebook directory under base_dir."""
        for directory in sorted(self.base_dir.iterdir()):
            if not directory.is_dir() or not (directory / "notebook.json").exists():
                continue
            self._install(directory, *self._read_directory(directory))

        logger.debug(f"Loaded {len(self._notebooks)} notebook(s) from {self.base_dir}")

    def _reload(self, directory: Path) -> None:
        """Replace one notebook's cached state with what is on disk."""
        notebook, runs, events = self._read_directory(directory)
        with self._lock:
            previous = self._notebooks.get(notebook.id)
            if previous is not None:
                for cell in previous.cells:
                    self._cell_owner.pop(cell.id, None)
            stale_runs = {run_id for run_id, run in self._runs.items() if run.notebook_id == notebook.id}
            for run_id in stale_runs:
                del self._runs[run_id]
            self._events = [e for e in self._events if e.run_id not in stale_runs]
            self._install(directory, notebook, runs, events)

        logger.debug(f"Reloaded notebook {notebook.id} with {len(runs)} run(s) from {directory}")

    def _read_directory(self, directory: Path) -> tuple[Notebook, list[Run], list[RunEvent]]:
        try:
            with open(directory / "notebook.json", "r", encoding="utf-8") as f:
                notebook = Notebook.model_validate(json.load(f))

            runs = []
            runs_path = directory / "runs.json"
            if runs_path.exists():
                with open(runs_path, "r", encoding="utf-8") as f:
                    runs = [Run.model_validate(r) for r in json.load(f)]

            events = []
            events_path = directory / "events.jsonl"
            if events_path.exists():
                with open(events_path, "r", encoding="utf-8") as f:
                    events = [RunEvent.model_validate_json(line) for line in f if line.strip()]
        except (OSError, json.JSONDecodeError, ValidationError) as e:
            raise PersistenceError(f"Failed to load notebook from {directory}: {e}") from e
        return notebook, runs, events

    def _install(self, directory: Path, notebook: Notebook, runs: list[Run], events: list[RunEvent]) -> None:
        self._dirs[notebook.id] = directory
        self._notebooks[notebook.id] = notebook
        for cell in notebook.cells:
            self._cell_owner[cell.id] = notebook.id
        for run in runs:
            self._runs[run.id] = run
        self._events.extend(events)

    def _persist_notebook(self, notebook_id: str) -> None:
        notebook = self._notebooks[notebook_id]
        self._write_json(
            self.notebook_dir(notebook_id) / "notebook.json",
            notebook.model_dump(mode="json"),
        )

    def _persist_runs(self, notebook_id: str) -> None:
        runs = sorted(
            (r for r in self._runs.values() if r.notebook_id == notebook_id),
            key=lambda r: r.run_number,
        )
        self._write_json(
            self.notebook_dir(notebook_id) / "runs.json",
            [r.model_dump(mode="json") for r in runs],
        )

    def _persist_event(self, event: RunEvent) -> None:
        run = self._runs.get(event.run_id)
        if run is None:
            raise PersistenceError(f"Event for unknown run {event.run_id}")

        path = self.notebook_dir(run.notebook_id) / "events.jsonl"
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with open(path, "a", encoding="utf-8") as f:
                f.write(event.model_dump_json() + "\n")
        except OSError as e:
            raise PersistenceError(f"Failed to append event to {path}: {e}") from e

    def _write_json(self, path: Path, data) -> None:
        """Write JSON atomically (temp file, then rename)."""
        tmp_path = path.with_suffix(path.suffix + ".tmp")
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with open(tmp_path, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2, ensure_ascii=False)
            tmp_path.replace(path)
        except (OSError, TypeError, ValueError) as e:
            raise PersistenceError(f"Failed to write {path}: {e}") from e

    def _sanitize_name(self, name: str) -> str:
        """Sanitize a notebook id for the filesystem.

        Args:
            name: Notebook id

        Returns:
            str: Directory name
        """
        # Remove invalid characters
        invalid_chars = '<>:"/\\|?*'
        for char in invalid_chars:
            name = name.replace(char, "_")

        # Remove leading/trailing spaces and dots
        name = name.strip(". ")

        # Limit length
        if len(name) > 100:
            name = name[:100]

        # Ensure not empty
        if not name:
            name = "unnamed_notebook"

        return name
