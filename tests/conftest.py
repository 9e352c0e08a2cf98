from __future__ import annotations

import sys
from pathlib import Path

import pytest

# Make the top-level modules importable without installing the project.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from chain_client import Receipt  # noqa: E402
from cylinder_errors import LogDecodeError, RecordNotFound  # noqa: E402
from record_store import resolve_timestamps  # noqa: E402

SIGNER = "0x00000000000000000000000000000000000000A1"
CONTRACT = "0x00000000000000000000000000000000000000C0"
FIXED_NOW = "2026-10-19T12:00:00+00:00"


class FakePendingTx:
    def __init__(self, client, tx_hash):
        self._client = client
        self.hash = tx_hash

    def await_confirmation(self, timeout):
        self._client.confirm_timeouts.append(timeout)
        if self._client.confirm_error is not None:
            raise self._client.confirm_error
        return self._client.receipt


class FakeChainClient:
    """Stands in for ChainClient. Logs are dicts; a log with "tokenId" decodes."""

    address = SIGNER

    def __init__(self, logs=None, total=7):
        self.receipt = Receipt(tx_hash="0xfeed", block_number=1234, gas_used=210000, status=1, logs=list(logs or []))
        self.total = total
        self.submit_error = None
        self.confirm_error = None
        self.read_error = None
        self.calls = []
        self.reads = []
        self.decoded = []
        self.confirm_timeouts = []

    def call(self, contract_address, fn_name, *args):
        self.calls.append((contract_address, fn_name, args))
        if self.submit_error is not None:
            raise self.submit_error
        return FakePendingTx(self, "0xfeed")

    def decode_event(self, contract_address, event_name, log_entry):
        self.decoded.append(log_entry)
        if "tokenId" not in log_entry:
            raise LogDecodeError(f"log is not {event_name}")
        return {"tokenId": log_entry["tokenId"], "to": SIGNER}

    def read_state(self, contract_address, fn_name, *args):
        self.reads.append(fn_name)
        if self.read_error is not None:
            raise self.read_error
        return self.total


class MemoryStore:
    def __init__(self, docs=None):
        self.docs = {k: dict(v) for k, v in (docs or {}).items()}
        self.updates = []
        self.fail_updates = 0

    def get(self, record_id):
        if record_id not in self.docs:
            raise RecordNotFound(record_id)
        return dict(self.docs[record_id])

    def update(self, record_id, fields):
        self.updates.append((record_id, dict(fields)))
        if self.fail_updates:
            self.fail_updates -= 1
            raise IOError("document store unavailable")
        if record_id not in self.docs:
            raise RecordNotFound(record_id)
        self.docs[record_id].update(resolve_timestamps(fields, FIXED_NOW))

    def pending(self):
        for record_id, doc in list(self.docs.items()):
            if not doc.get("status"):
                yield record_id, dict(doc)


@pytest.fixture
def cylinder():
    return {
        "serialNumber": "GH-2024-000123",
        "manufacturer": "Ghana Gas Works",
        "cylinderType": "LPG-12.5",
        "weight": 12.5,
        "capacity": 0.001,
        "batchNumber": "B-77",
    }


@pytest.fixture
def client():
    return FakeChainClient()


@pytest.fixture
def store(cylinder):
    return MemoryStore({"cyl-1": cylinder})
