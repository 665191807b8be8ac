"""
Reference signature store.

Records are kept as a flat JSON list, image payloads as data URLs:
  [{"id": ..., "label": ..., "category": ..., "image": "data:image/png;base64,...",
    "width": 640, "height": 200, "created_at": "2026-01-01T12:00:00+00:00"}, ...]
REFERENCES_PATH env var selects the file (see services/api.py).
"""
import json
import os
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import List

from signscan.orchestrator import errors, phases
from signscan.orchestrator.contracts import ImageBuffer, ReferenceRecord
from signscan.orchestrator.errors import CaptureError, ReferencesUnavailable


def new_reference(label: str, category: str, image: ImageBuffer | None) -> ReferenceRecord:
    """Build a record from form input. All fields are required."""
    label = (label or "").strip()
    category = (category or "").strip()
    if not label or not category or image is None:
        raise CaptureError(errors.ERR_INVALID_REFERENCE, "label, category and image are required")
    return ReferenceRecord(
        id=uuid.uuid4().hex,
        label=label,
        category=category,
        reference_image=image,
        created_at=datetime.now(timezone.utc),
    )


def record_to_dict(r: ReferenceRecord) -> dict:
    return {
        "id": r.id,
        "label": r.label,
        "category": r.category,
        "image": r.reference_image.to_data_url(),
        "width": r.reference_image.width,
        "height": r.reference_image.height,
        "source": r.reference_image.source,
        "created_at": r.created_at.isoformat(),
    }


def record_from_dict(d: dict) -> ReferenceRecord:
    image = ImageBuffer.from_data_url(
        d["image"],
        source=d.get("source", phases.UPLOADED),
        width=d.get("width"),
        height=d.get("height"),
    )
    return ReferenceRecord(
        id=str(d["id"]),
        label=d["label"],
        category=d.get("category", ""),
        reference_image=image,
        created_at=datetime.fromisoformat(d["created_at"]),
    )


class ReferenceRepository:
    def list(self) -> List[ReferenceRecord]:
        raise NotImplementedError

    def append(self, record: ReferenceRecord):
        raise NotImplementedError

    def remove(self, reference_id: str) -> bool:
        raise NotImplementedError


class InMemoryReferenceRepository(ReferenceRepository):
    def __init__(self, records: List[ReferenceRecord] | None = None):
        self._records = list(records or [])

    def list(self) -> List[ReferenceRecord]:
        return list(self._records)

    def append(self, record: ReferenceRecord):
        self._records.append(record)

    def remove(self, reference_id: str) -> bool:
        before = len(self._records)
        self._records = [r for r in self._records if r.id != reference_id]
        return len(self._records) != before


class JsonReferenceRepository(ReferenceRepository):
    def __init__(self, status_store, path: str | Path):
        self.status = status_store
        self.path = Path(path)

    def list(self) -> List[ReferenceRecord]:
        if not self.path.exists():
            return []
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
            return [record_from_dict(d) for d in raw]
        except (OSError, ValueError, KeyError, TypeError) as e:
            self.status.log(f"repository: failed to read {self.path.name}: {type(e).__name__}: {e}")
            raise ReferencesUnavailable(f"cannot read {self.path}") from e

    def append(self, record: ReferenceRecord):
        records = self.list()
        records.append(record)
        self._save(records)
        self.status.log(f"repository: added '{record.label}' ({record.category}) id={record.id}")

    def remove(self, reference_id: str) -> bool:
        records = self.list()
        kept = [r for r in records if r.id != reference_id]
        if len(kept) == len(records):
            return False
        self._save(kept)
        self.status.log(f"repository: removed id={reference_id}")
        return True

    def _save(self, records: List[ReferenceRecord]):
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp.write_text(json.dumps([record_to_dict(r) for r in records], indent=2), encoding="utf-8")
            os.replace(tmp, self.path)
        except OSError as e:
            self.status.log(f"repository: failed to write {self.path.name}: {type(e).__name__}: {e}")
            raise ReferencesUnavailable(f"cannot write {self.path}") from e
