from __future__ import annotations

from fastapi.testclient import TestClient

from cylinder_errors import ChainConnectionError
from health_check import create_app

CFG = {"blockchain": {"rpc_url": "https://polygon-rpc.com", "contract_address": "0x" + "c0" * 20}}


class _ReadOnlyClient:
    def network(self):
        return "matic", 137

    def block_number(self):
        return 51234567


def test_health_reports_chain_state() -> None:
    seen = []

    def connect(rpc_url):
        seen.append(rpc_url)
        return _ReadOnlyClient()

    c = TestClient(create_app(CFG, connect=connect))
    r = c.get("/health")

    assert r.status_code == 200
    assert r.json() == {
        "status": "connected",
        "network": {"name": "matic", "chainId": "137"},
        "currentBlock": 51234567,
        "contractAddress": "0x" + "c0" * 20,
    }
    assert seen == ["https://polygon-rpc.com"]


def test_health_does_not_need_signing_key() -> None:
    # CFG carries no private_key
    c = TestClient(create_app(CFG, connect=lambda _url: _ReadOnlyClient()))
    assert c.get("/health").status_code == 200


def test_health_missing_config_is_500() -> None:
    c = TestClient(create_app({"blockchain": {"rpc_url": "https://polygon-rpc.com"}}))
    r = c.get("/health")
    assert r.status_code == 500
    assert "contract_address" in r.json()["error"]


def test_health_unreachable_rpc_is_500() -> None:
    def connect(_url):
        raise ChainConnectionError("RPC unreachable: connection refused")

    c = TestClient(create_app(CFG, connect=connect))
    r = c.get("/health")
    assert r.status_code == 500
    assert r.json() == {"error": "RPC unreachable: connection refused"}
