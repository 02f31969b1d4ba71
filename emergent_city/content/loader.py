"""
Content libraries: moments, emergence rules and story beats.

Each library reads every *.json file in its directory, takes the list
under one top-level key and validates each record. Files load lazily on
first access and are cached until reload(). A missing directory, a
malformed file or a bad record is logged and skipped, so a broken
content pack degrades to less content rather than a crash.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Generic, TypeVar

from pydantic import BaseModel, ValidationError

from ..state.schema import Moment
from ..systems.beats import StoryBeat
from ..systems.emergence import EmergenceRule

logger = logging.getLogger(__name__)

# Bundled content ships inside the package
DEFAULT_DATA_DIR = Path(__file__).parent / "data"

RecordT = TypeVar("RecordT", bound=BaseModel)


class ContentLibrary(Generic[RecordT]):
    """
    Lazy, cached collection of validated records.

    Subclasses set `key` (the top-level list in each file), `model` and
    `pattern` (which files to read).
    """

    key: str = ""
    model: type[BaseModel] = BaseModel
    pattern: str = "*.json"

    def __init__(self, data_dir: Path | str | None = None):
        self.data_dir = Path(data_dir) if data_dir is not None else DEFAULT_DATA_DIR
        self._records: list[RecordT] = []
        self._loaded = False

    def load(self) -> list[RecordT]:
        """Load records from disk, or return the cache."""
        if self._loaded:
            return self._records

        self._records = []
        if not self.data_dir.exists():
            logger.warning(f"Content directory {self.data_dir} not found; {self.key} is empty")
        else:
            for json_file in sorted(self.data_dir.glob(self.pattern)):
                self._records.extend(self._load_file(json_file))

        self._loaded = True
        logger.debug(f"Loaded {len(self._records)} {self.key} from {self.data_dir}")
        return self._records

    def _load_file(self, json_file: Path) -> list[RecordT]:
        try:
            with open(json_file, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (json.JSONDecodeError, UnicodeDecodeError, OSError) as e:
            logger.warning(f"Skipping content file {json_file}: {e}")
            return []

        if not isinstance(data, dict):
            logger.warning(f"Skipping content file {json_file}: expected an object")
            return []

        raw_records = data.get(self.key, [])
        if not isinstance(raw_records, list):
            logger.warning(f"Skipping content file {json_file}: {self.key} is not a list")
            return []

        records = []
        for index, raw in enumerate(raw_records):
            try:
                records.append(self.model.model_validate(raw))
            except ValidationError as e:
                logger.warning(f"Skipping {self.key}[{index}] in {json_file.name}: {e.error_count()} error(s)")
        return records

    def reload(self) -> list[RecordT]:
        self._loaded = False
        return self.load()

    def __len__(self) -> int:
        return len(self.load())


class MomentLibrary(ContentLibrary[Moment]):
    key = "moments"
    model = Moment
    pattern = "moments*.json"

    def all(self) -> list[Moment]:
        """Fresh copies; sessions mutate their moments."""
        return [m.model_copy(deep=True) for m in self.load()]

    def get(self, moment_id: str) -> Moment | None:
        for moment in self.load():
            if moment.id == moment_id:
                return moment.model_copy(deep=True)
        return None

    def for_act(self, act: int) -> list[Moment]:
        return [m.model_copy(deep=True) for m in self.load() if m.associated_act == act]


class EmergenceRuleLibrary(ContentLibrary[EmergenceRule]):
    key = "emergent_properties"
    model = EmergenceRule
    pattern = "emergence*.json"

    def all(self) -> list[EmergenceRule]:
        return list(self.load())


class StoryBeatLibrary(ContentLibrary[StoryBeat]):
    key = "beats"
    model = StoryBeat
    pattern = "beats*.json"

    def all(self) -> list[StoryBeat]:
        return list(self.load())
