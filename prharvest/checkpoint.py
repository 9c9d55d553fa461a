"""Durable run progress.

The checkpoint is one JSON file holding a full ``RunState`` snapshot. Writes
go to a temp file first, then rename, so a crash mid-write leaves either the
previous snapshot or the new one, never a partial file.
"""

import json
import logging
import os
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import UTC, datetime
from pathlib import Path

from pydantic import ValidationError

from .errors import CheckpointLockedError, ConfigMismatchError, PersistenceError
from .models import RunConfig, RunState

logger = logging.getLogger(__name__)

CHECKPOINT_FORMAT = 1


def write_json_atomic(path: Path, payload: str) -> None:
    """Write text to path via a synced temp file and atomic rename."""
    path.parent.mkdir(parents=True, exist_ok=True)
    temp_file = path.with_name(f"{path.name}.tmp")
    with open(temp_file, "w", encoding="utf-8") as f:
        f.write(payload)
        f.flush()
        os.fsync(f.fileno())
    os.replace(temp_file, path)  # Atomic on POSIX


def check_config(state: RunState, config: RunConfig) -> None:
    """Raise ConfigMismatchError unless the stored state belongs to this run."""
    if not state.config.matches(config):
        raise ConfigMismatchError(
            f"Checkpoint is for {state.config.full_name} from {state.config.from_date}, "
            f"requested {config.full_name} from {config.from_date}"
        )


class CheckpointStore:
    """Loads, saves and discards the checkpoint file for one run."""

    def __init__(self, path: Path | str):
        self.path = Path(path)

    @property
    def lock_path(self) -> Path:
        return self.path.with_suffix(".lock")

    def exists(self) -> bool:
        return self.path.exists()

    def load(self) -> RunState | None:
        """Read the checkpoint. Returns None if there is none.

        Raises:
            PersistenceError: The file exists but cannot be read or does not
                hold a consistent snapshot.
        """
        if not self.path.exists():
            return None

        try:
            with open(self.path, encoding="utf-8") as f:
                checkpoint = json.load(f)
        except (OSError, ValueError) as e:
            raise PersistenceError(f"Cannot read checkpoint {self.path}: {e}") from e

        if not isinstance(checkpoint, dict):
            raise PersistenceError(f"Checkpoint {self.path} does not hold a JSON object")

        if checkpoint.get("format") != CHECKPOINT_FORMAT:
            raise PersistenceError(
                f"Unsupported checkpoint format {checkpoint.get('format')!r} in {self.path}"
            )

        try:
            return RunState.model_validate(checkpoint["state"])
        except (KeyError, ValidationError) as e:
            raise PersistenceError(f"Checkpoint {self.path} is inconsistent: {e}") from e

    def load_for(self, config: RunConfig) -> RunState | None:
        """Load the checkpoint if it belongs to ``config``.

        A checkpoint for another repository or start date is discarded so its
        candidates and results can never leak into this run.
        """
        state = self.load()
        if state is None:
            return None

        try:
            check_config(state, config)
        except ConfigMismatchError as e:
            logger.warning(f"Discarding stale checkpoint: {e}")
            self.discard()
            return None

        if state.config.until_date != config.until_date:
            logger.warning(
                f"Checkpoint was discovered up to {state.config.until_date}; "
                f"keeping its candidates for requested end {config.until_date}"
            )
        return state

    def save(self, state: RunState) -> None:
        """Persist a full snapshot atomically.

        Raises:
            PersistenceError: The snapshot could not be written.
        """
        checkpoint = {
            "format": CHECKPOINT_FORMAT,
            "savedAt": datetime.now(UTC).isoformat(),
            "stats": {
                "candidates": len(state.candidates),
                "processed": len(state.processed_ids),
                "skipped": len(state.skipped_ids),
            },
            "state": state.model_dump(mode="json"),
        }
        try:
            write_json_atomic(self.path, json.dumps(checkpoint, indent=2))
        except OSError as e:
            raise PersistenceError(f"Cannot write checkpoint {self.path}: {e}") from e

    def discard(self) -> None:
        """Remove the checkpoint. No-op if it does not exist."""
        try:
            self.path.unlink(missing_ok=True)
        except OSError as e:
            raise PersistenceError(f"Cannot remove checkpoint {self.path}: {e}") from e

    @contextmanager
    def lock(self) -> Iterator[None]:
        """Hold an exclusive lock file for the duration of a run.

        A lock left behind by a dead process is taken over.

        Raises:
            CheckpointLockedError: Another live process holds the lock.
        """
        self.lock_path.parent.mkdir(parents=True, exist_ok=True)
        for _ in range(2):
            try:
                fd = os.open(self.lock_path, os.O_CREAT | os.O_EXCL | os.O_WRONLY)
            except FileExistsError:
                holder = _read_pid(self.lock_path)
                if holder is not None and _pid_alive(holder):
                    raise CheckpointLockedError(
                        f"Another run (pid {holder}) holds {self.lock_path}"
                    ) from None
                logger.warning(f"Removing stale lock {self.lock_path} (pid {holder})")
                self.lock_path.unlink(missing_ok=True)
                continue
            with os.fdopen(fd, "w") as f:
                f.write(str(os.getpid()))
            break
        else:
            raise CheckpointLockedError(f"Could not acquire {self.lock_path}")

        try:
            yield
        finally:
            self.lock_path.unlink(missing_ok=True)


def _read_pid(path: Path) -> int | None:
    try:
        return int(path.read_text().strip())
    except (OSError, ValueError):
        return None


def _pid_alive(pid: int) -> bool:
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        return True
    return True
