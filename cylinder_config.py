#!/usr/bin/env python3
import os, logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import yaml

from cylinder_errors import ConfigError

DEFAULT_CONFIG = "config.yaml"
DEFAULT_CONFIRM_TIMEOUT = 240
DEFAULT_RECORDS_DIR = "cylinders"

# env var -> (section, key)
ENV_OVERRIDES = {
    "BLOCKCHAIN_RPC_URL": ("blockchain", "rpc_url"),
    "BLOCKCHAIN_PRIVATE_KEY": ("blockchain", "private_key"),
    "BLOCKCHAIN_CONTRACT_ADDRESS": ("blockchain", "contract_address"),
    "BLOCKCHAIN_CONFIRM_TIMEOUT": ("blockchain", "confirm_timeout_seconds"),
    "CYLINDER_RECORDS_DIR": (None, "records_dir"),
}


@dataclass(frozen=True)
class BlockchainConfig:
    rpc_url: str
    contract_address: str
    private_key: Optional[str] = None
    confirm_timeout: float = DEFAULT_CONFIRM_TIMEOUT
    gas_limit: Optional[int] = None

    def __repr__(self):
        # keep the signing key out of logs and tracebacks
        return (f"BlockchainConfig(rpc_url={self.rpc_url!r}, contract_address={self.contract_address!r}, "
                f"confirm_timeout={self.confirm_timeout!r}, gas_limit={self.gas_limit!r})")


def load_cfg(path=None):
    """Read config.yaml (if present) and apply environment overrides."""
    p = Path(path or os.environ.get("CYLINDER_MINT_CONFIG") or DEFAULT_CONFIG)
    cfg = {}
    if p.exists():
        cfg = yaml.safe_load(p.read_text()) or {}
        if not isinstance(cfg, dict):
            raise ConfigError(f"{p}: top level must be a mapping")
    for env, (section, key) in ENV_OVERRIDES.items():
        val = os.environ.get(env)
        if not val:
            continue
        if section and cfg.get(section) is None:
            cfg[section] = {}
        target = cfg[section] if section else cfg
        if not isinstance(target, dict):
            raise ConfigError(f"config section '{section}' must be a mapping")
        target[key] = val
    return cfg


def blockchain_config(cfg, require_key=True):
    """Pull the blockchain section out of cfg, failing on missing settings."""
    bc = cfg.get("blockchain") or {}
    if not isinstance(bc, dict):
        raise ConfigError("config section 'blockchain' must be a mapping")
    needed = ["rpc_url", "contract_address"] + (["private_key"] if require_key else [])
    missing = [k for k in needed if not str(bc.get(k) or "").strip()]
    if missing:
        raise ConfigError("Blockchain configuration missing: " + ", ".join(missing))

    try:
        timeout = float(bc.get("confirm_timeout_seconds") or DEFAULT_CONFIRM_TIMEOUT)
        gas_limit = int(bc["gas_limit"]) if bc.get("gas_limit") else None
    except (TypeError, ValueError) as e:
        raise ConfigError(f"invalid blockchain setting: {e}") from e
    if timeout <= 0:
        raise ConfigError("confirm_timeout_seconds must be positive")

    return BlockchainConfig(
        rpc_url=str(bc["rpc_url"]).strip(),
        contract_address=str(bc["contract_address"]).strip(),
        private_key=str(bc["private_key"]).strip() if bc.get("private_key") else None,
        confirm_timeout=timeout,
        gas_limit=gas_limit,
    )


def records_dir(cfg):
    return Path(cfg.get("records_dir") or DEFAULT_RECORDS_DIR)


def configure_logging():
    """Stdlib logging to stderr, level from LOG_LEVEL. Safe to call twice."""
    level_name = (os.environ.get("LOG_LEVEL") or "INFO").strip().upper()
    level = getattr(logging, level_name, logging.INFO)
    root = logging.getLogger()
    if getattr(root, "_cylinder_configured", False):
        root.setLevel(level)
        return
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
    root.handlers = [handler]
    root.setLevel(level)
    root._cylinder_configured = True
