#!/usr/bin/env python3
import sys, time, logging, argparse

from chain_client import ChainClient
from cylinder_config import blockchain_config, configure_logging, load_cfg, records_dir
from cylinder_errors import MintError
from mint_cylinder import CylinderMinter, record_failure
from record_store import JsonRecordStore

log = logging.getLogger(__name__)


def on_cylinder_created(record_id, data, store, cfg=None, client=None):
    """Handle one newly created cylinder record. Returns MintSuccess or raises.

    Settings are checked on every invocation; `client` may be injected, otherwise
    one is built from the settings.
    """
    try:
        bc = blockchain_config(load_cfg() if cfg is None else cfg)
        if client is None:
            log.info("Connecting to %s (contract %s)", bc.rpc_url, bc.contract_address)
            client = ChainClient.connect(bc.rpc_url, bc.private_key, gas_limit=bc.gas_limit)
    except MintError as exc:
        log.error("Cannot mint cylinder %s: %s", record_id, exc)
        record_failure(store, record_id, exc)
        raise

    minter = CylinderMinter(client, store, bc.contract_address, bc.rpc_url, bc.confirm_timeout)
    return minter.mint(record_id, data)


def poll_once(store, cfg, client=None):
    """Run the handler for every record without a status. Returns (minted, failed)."""
    minted = failed = 0
    for record_id, data in store.pending():
        try:
            out = on_cylinder_created(record_id, data, store, cfg=cfg, client=client)
        except Exception:
            log.exception("ORCH error on cylinder %s", record_id)
            failed += 1
            continue
        print(f"[MINT] {record_id} -> token #{out.token_id} ({out.resolution_method}) tx {out.transaction_hash}")
        minted += 1
    return minted, failed


def shared_client(cfg):
    """One ChainClient for the whole run, or None when the settings are unusable
    (each record then gets the config error written back by the handler)."""
    try:
        bc = blockchain_config(cfg)
        return ChainClient.connect(bc.rpc_url, bc.private_key, gas_limit=bc.gas_limit)
    except MintError as exc:
        log.error("Blockchain settings unusable: %s", exc)
        return None


def main(argv=None):
    ap = argparse.ArgumentParser(description="Mint NFTs for newly created cylinder records.")
    ap.add_argument("--config", help="path to config.yaml")
    ap.add_argument("--records", help="directory holding cylinder records")
    ap.add_argument("--watch", action="store_true", help="keep polling for new records")
    ap.add_argument("--interval", type=float, default=10.0, help="seconds between polls with --watch")
    args = ap.parse_args(argv)

    configure_logging()
    cfg = load_cfg(args.config)
    store = JsonRecordStore(args.records or records_dir(cfg))
    client = shared_client(cfg)

    minted, failed = poll_once(store, cfg, client=client)
    while args.watch:
        time.sleep(args.interval)
        m, f = poll_once(store, cfg, client=client)
        minted += m; failed += f
    print(f"Done. minted={minted} failed={failed}")
    return 0 if failed == 0 else 1


if __name__ == "__main__":
    sys.exit(main())
