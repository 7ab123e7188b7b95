"""
Requirement record store.

Loads and persists .milhouse/prd.json and answers typed queries over it.
Each phase loads the store fresh; nothing here is shared between calls,
so no locking is needed as long as phases run one at a time.
"""

import json
import logging
import os
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from milhouse.lib.validate import ValidationError, validate
from milhouse.prd.models import InvalidStatus, Requirement, Status

logger = logging.getLogger(__name__)


class StoreError(Exception):
    """The store file could not be read, parsed, or written."""

    def __init__(self, path: Path, message: str):
        self.path = Path(path)
        super().__init__(f"{message} ({path})")


@dataclass
class Store:
    """Ordered collection of requirement records."""
    records: list[Requirement] = field(default_factory=list)

    def _with_status(self, status: Status) -> list[Requirement]:
        return [r for r in self.records if r.status is status]

    def open(self) -> list[Requirement]:
        return self._with_status(Status.OPEN)

    def active(self) -> list[Requirement]:
        return self._with_status(Status.ACTIVE)

    def pending(self) -> list[Requirement]:
        return self._with_status(Status.PENDING)

    def complete(self) -> list[Requirement]:
        return self._with_status(Status.COMPLETE)

    def find_by_id(self, record_id: str) -> Optional[Requirement]:
        for record in self.records:
            if record.id == record_id:
                return record
        return None

    def counts(self) -> dict[Status, int]:
        counts = {status: 0 for status in Status}
        for record in self.records:
            counts[record.status] += 1
        return counts

    def has_work(self) -> bool:
        """True while anything is left that a phase could act on."""
        return bool(self.open() or self.active() or self.pending())

    def to_dict(self) -> dict:
        return {"prds": [r.to_dict() for r in self.records]}

    @classmethod
    def from_dict(cls, data: dict) -> "Store":
        records = [Requirement.from_dict(item) for item in data.get("prds", [])]
        seen = set()
        for record in records:
            if record.id in seen:
                raise ValueError(f"Duplicate record id: {record.id}")
            seen.add(record.id)
        return cls(records=records)


def load_store(path: Path) -> Store:
    """Load and validate a prd.json file.

    Two malformed shapes are recovered:
    - an empty file is an empty store
    - a bare top-level array is wrapped as {"prds": [...]} and saved back

    Raises:
        StoreError: on any other parse, schema, or status failure
    """
    path = Path(path)
    try:
        raw = path.read_text()
    except OSError as e:
        raise StoreError(path, f"Failed to read prd.json: {e}") from e

    if not raw.strip():
        logger.debug(f"[STORE] {path} is empty, treating as no records")
        return Store()

    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise StoreError(path, f"Failed to parse prd.json: {e}") from e

    recovered = False
    if isinstance(data, list):
        logger.warning(f"[STORE] {path} is a bare JSON array, wrapping in {{\"prds\": [...]}}")
        data = {"prds": data}
        recovered = True

    try:
        validate(data, "prd")
        store = Store.from_dict(data)
    except ValidationError as e:
        raise StoreError(path, f"Invalid prd.json: {e}") from e
    except InvalidStatus as e:
        raise StoreError(path, str(e)) from e
    except ValueError as e:
        raise StoreError(path, f"Invalid prd.json: {e}") from e

    if recovered:
        save_store(path, store)

    return store


def save_store(path: Path, store: Store) -> None:
    """Write the store as indented JSON via temp file + rename.

    Raises:
        StoreError: if the file cannot be written
    """
    path = Path(path)
    content = json.dumps(store.to_dict(), indent=2) + "\n"

    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
        try:
            with os.fdopen(fd, "w") as f:
                f.write(content)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
    except OSError as e:
        raise StoreError(path, f"Failed to write prd.json: {e}") from e

    logger.debug(f"[STORE] Saved {len(store.records)} records to {path}")
