#!/usr/bin/env python3
"""HTTP check that the configured RPC endpoint answers.

Read-only: no signing key is needed and the record store is never touched.
"""
import os, logging

import uvicorn
from fastapi import FastAPI
from fastapi.responses import JSONResponse

from chain_client import ChainClient
from cylinder_config import blockchain_config, configure_logging, load_cfg

log = logging.getLogger(__name__)


def create_app(cfg=None, connect=ChainClient.connect):
    app = FastAPI(title="cylinder-mint health")

    @app.get("/health")
    def health():
        try:
            bc = blockchain_config(load_cfg() if cfg is None else cfg, require_key=False)
            client = connect(bc.rpc_url)
            name, chain_id = client.network()
            block = client.block_number()
        except Exception as e:
            log.warning("health check failed: %s", e)
            return JSONResponse(status_code=500, content={"error": str(e) or type(e).__name__})
        return {
            "status": "connected",
            "network": {"name": name, "chainId": str(chain_id)},
            "currentBlock": block,
            "contractAddress": bc.contract_address,
        }

    return app


def main():
    configure_logging()
    cfg = load_cfg()
    health_cfg = cfg.get("health") or {}
    host = os.getenv("HEALTH_HOST", health_cfg.get("host", "127.0.0.1"))
    port = int(os.getenv("HEALTH_PORT", health_cfg.get("port", 8080)))
    uvicorn.run(create_app(), host=host, port=port, log_level="info")


if __name__ == "__main__":
    main()
