"""
Progression state storage abstraction.

Separates persistence from narrative logic for testability.
"""

import json
import logging
from pathlib import Path
from typing import Protocol, runtime_checkable

from pydantic import ValidationError

from .schema import ProgressionState

logger = logging.getLogger(__name__)


@runtime_checkable
class ProgressionStore(Protocol):
    """
    Abstract storage interface for progression state.

    Implementations:
    - JsonProgressionStore: File-based persistence (production)
    - MemoryProgressionStore: In-memory storage (testing)
    """

    def save(self, state: ProgressionState) -> None:
        """Persist a state."""
        ...

    def load(self, state_id: str) -> ProgressionState | None:
        """Load a state by ID. Returns None if not found."""
        ...

    def delete(self, state_id: str) -> bool:
        """Delete a state. Returns True if deleted."""
        ...

    def list_all(self) -> list[dict]:
        """List all saves with metadata."""
        ...

    def exists(self, state_id: str) -> bool:
        """Check if a save exists."""
        ...


def _summary(state: ProgressionState) -> dict:
    return {
        "id": state.id,
        "act": state.current_act,
        "scene": state.current_scene,
        "total_choices": state.total_choices(),
        "ending": state.reached_ending.value if state.reached_ending else None,
        "saved_at": state.saved_at.isoformat() if state.saved_at else None,
    }


class JsonProgressionStore:
    """
    File-based storage using JSON.

    Features:
    - Automatic backup on save
    - Partial ID matching on load
    """

    def __init__(self, saves_dir: Path | str = "saves"):
        self.saves_dir = Path(saves_dir)
        self.saves_dir.mkdir(parents=True, exist_ok=True)

    def _path(self, state_id: str) -> Path:
        return self.saves_dir / f"{state_id}.json"

    def save(self, state: ProgressionState) -> None:
        """Save state to JSON file with backup. Raises OSError on failure."""
        state.save_checkpoint()

        save_file = self._path(state.id)

        if save_file.exists():
            backup = save_file.with_suffix(".json.bak")
            backup.write_bytes(save_file.read_bytes())

        save_file.write_text(state.model_dump_json(indent=2), encoding="utf-8")

    def load(self, state_id: str) -> ProgressionState | None:
        """
        Load state by ID or partial prefix.

        A corrupt file is logged and treated as missing.
        """
        save_file = self._path(state_id)

        if not save_file.exists():
            for f in self.saves_dir.glob("*.json"):
                if f.name.startswith("."):
                    continue
                if f.stem.startswith(state_id):
                    save_file = f
                    break

        if not save_file.exists():
            return None

        try:
            data = json.loads(save_file.read_text(encoding="utf-8"))
            return ProgressionState.model_validate(data)
        except (json.JSONDecodeError, UnicodeDecodeError, OSError, ValidationError) as e:
            logger.warning(f"Could not load save {save_file.name}: {e}")
            return None

    def delete(self, state_id: str) -> bool:
        save_file = self._path(state_id)
        if save_file.exists():
            save_file.unlink()
            return True
        return False

    def list_all(self) -> list[dict]:
        """List saves, most recently modified first."""
        saves = []
        for f in sorted(
            self.saves_dir.glob("*.json"),
            key=lambda x: x.stat().st_mtime,
            reverse=True,
        ):
            if f.name.startswith("."):
                continue
            state = self.load(f.stem)
            if state is not None:
                saves.append(_summary(state))
        return saves

    def exists(self, state_id: str) -> bool:
        return self._path(state_id).exists()


class MemoryProgressionStore:
    """
    In-memory storage for testing.

    No file I/O, fast, isolated.
    """

    def __init__(self):
        self._states: dict[str, str] = {}

    def save(self, state: ProgressionState) -> None:
        state.save_checkpoint()
        # Store serialized so later mutation of the live state doesn't leak in
        self._states[state.id] = state.model_dump_json()

    def load(self, state_id: str) -> ProgressionState | None:
        if state_id not in self._states:
            for sid in self._states:
                if sid.startswith(state_id):
                    state_id = sid
                    break
            else:
                return None
        return ProgressionState.model_validate_json(self._states[state_id])

    def delete(self, state_id: str) -> bool:
        return self._states.pop(state_id, None) is not None

    def list_all(self) -> list[dict]:
        return [_summary(ProgressionState.model_validate_json(raw)) for raw in self._states.values()]

    def exists(self, state_id: str) -> bool:
        return state_id in self._states

    def clear(self) -> None:
        """Clear all stored states."""
        self._states.clear()
