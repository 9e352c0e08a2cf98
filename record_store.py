#!/usr/bin/env python3
import os, json, logging
from datetime import datetime, timezone
from pathlib import Path

from cylinder_errors import RecordNotFound

log = logging.getLogger(__name__)


class _ServerTimestamp:
    """Placeholder the store replaces with its own clock at write time."""

    def __repr__(self):
        return "SERVER_TIMESTAMP"


SERVER_TIMESTAMP = _ServerTimestamp()


def utc_now():
    return datetime.now(timezone.utc).isoformat()


def resolve_timestamps(fields, now=None):
    now = now or utc_now()
    return {k: (now if v is SERVER_TIMESTAMP else v) for k, v in fields.items()}


class JsonRecordStore:
    """One JSON document per cylinder: <root>/<record_id>.json."""

    def __init__(self, root, clock=utc_now):
        self.root = Path(root)
        self.clock = clock

    def _path(self, record_id):
        if not record_id or "/" in record_id or "\\" in record_id or record_id.startswith("."):
            raise ValueError(f"bad record id: {record_id!r}")
        return self.root / f"{record_id}.json"

    def _write(self, path, doc):
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp = path.with_suffix(".json.tmp")
        tmp.write_text(json.dumps(doc, indent=2))
        os.replace(tmp, path)

    def get(self, record_id):
        p = self._path(record_id)
        if not p.exists():
            raise RecordNotFound(record_id)
        return json.loads(p.read_text())

    def create(self, record_id, data):
        self._write(self._path(record_id), resolve_timestamps(dict(data), self.clock()))

    def update(self, record_id, fields):
        """Merge `fields` into an existing record."""
        doc = self.get(record_id)
        doc.update(resolve_timestamps(fields, self.clock()))
        self._write(self._path(record_id), doc)
        log.debug("record %s updated: %s", record_id, sorted(fields))

    def pending(self):
        """(record_id, data) for every record that has never been processed."""
        if not self.root.exists():
            return
        for p in sorted(self.root.glob("*.json")):
            try:
                doc = json.loads(p.read_text())
            except json.JSONDecodeError:
                log.warning("skipping unreadable record %s", p.name)
                continue
            if isinstance(doc, dict) and not doc.get("status"):
                yield p.stem, doc
