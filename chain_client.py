#!/usr/bin/env python3
import json, logging
from dataclasses import dataclass, field
from pathlib import Path

import requests
from eth_abi.exceptions import DecodingError
from eth_account import Account
from web3 import Web3
from web3.exceptions import ContractLogicError, TimeExhausted, Web3Exception

from cylinder_errors import (
    ChainConnectionError, ConfigError, ConfirmationError, ConfirmationTimeout,
    LogDecodeError, ReadError, SubmissionError,
)

log = logging.getLogger(__name__)

ABI_DIR = Path(__file__).resolve().parent / "abi"

# ethers-style network names for the chains this contract is deployed on
CHAIN_NAMES = {
    1: "mainnet",
    137: "matic",
    80001: "matic-mumbai",
    80002: "matic-amoy",
    11155111: "sepolia",
}


def load_abi(name="CylinderNFT"):
    return json.loads((ABI_DIR / f"{name}.json").read_text())["abi"]


@dataclass
class Receipt:
    tx_hash: str
    block_number: int
    gas_used: int
    status: int
    logs: list = field(default_factory=list)


class PendingTx:
    def __init__(self, client, tx_hash):
        self._client = client
        self.hash = tx_hash

    def await_confirmation(self, timeout):
        """Block until the tx is mined or `timeout` seconds pass."""
        try:
            rec = self._client.w3.eth.wait_for_transaction_receipt(self.hash, timeout=timeout)
        except TimeExhausted as e:
            raise ConfirmationTimeout(f"transaction {self.hash} not confirmed within {timeout}s") from e
        except requests.exceptions.RequestException as e:
            raise ChainConnectionError(f"lost RPC connection while waiting for {self.hash}: {e}") from e
        except (Web3Exception, ValueError) as e:
            raise ConfirmationError(f"could not fetch receipt for {self.hash}: {e}") from e

        if rec["status"] == 0:
            raise SubmissionError(f"transaction {self.hash} reverted in block {rec['blockNumber']}")
        return Receipt(
            tx_hash=Web3.to_hex(rec["transactionHash"]),
            block_number=int(rec["blockNumber"]),
            gas_used=int(rec["gasUsed"]),
            status=int(rec["status"]),
            logs=list(rec["logs"]),
        )


class ChainClient:
    """JSON-RPC connection plus (optionally) a signing account.

    Nothing here is mutated after construction, so one instance may be shared.
    """

    def __init__(self, w3, account=None, abi=None, gas_limit=None):
        self.w3 = w3
        self.account = account
        self.abi = abi if abi is not None else load_abi()
        self.gas_limit = gas_limit

    @classmethod
    def connect(cls, rpc_url, private_key=None, gas_limit=None, request_timeout=30):
        if not rpc_url:
            raise ChainConnectionError("RPC URL is empty")
        w3 = Web3(Web3.HTTPProvider(rpc_url, request_kwargs={"timeout": request_timeout}))
        account = None
        if private_key:
            try:
                account = Account.from_key(private_key)
            except Exception as e:
                # the message may echo the key, so it is not included
                raise ConfigError("invalid signing credential") from e
        return cls(w3, account=account, gas_limit=gas_limit)

    @property
    def address(self):
        return self.account.address if self.account is not None else None

    def _contract(self, address):
        return self.w3.eth.contract(address=Web3.to_checksum_address(address), abi=self.abi)

    def call(self, contract_address, fn_name, *args):
        """Build, sign and send a state-changing call. Returns a PendingTx."""
        if self.account is None:
            raise SubmissionError("no signing credential configured")
        try:
            fn = getattr(self._contract(contract_address).functions, fn_name)(*args)
            params = {
                "from": self.address,
                "chainId": self.w3.eth.chain_id,
                "nonce": self.w3.eth.get_transaction_count(self.address, "pending"),
            }
            if self.gas_limit:
                params["gas"] = self.gas_limit
            tx = fn.build_transaction(params)
            log.debug("sending %s to %s (nonce %s)", fn_name, contract_address, params["nonce"])
            signed = self.w3.eth.account.sign_transaction(tx, private_key=self.account.key)
            txh = self.w3.eth.send_raw_transaction(signed.raw_transaction)
        except requests.exceptions.RequestException as e:
            raise ChainConnectionError(f"RPC unreachable: {e}") from e
        except ContractLogicError as e:
            raise SubmissionError(f"{fn_name} reverted: {e}") from e
        except (Web3Exception, ValueError) as e:
            raise SubmissionError(f"{fn_name} rejected: {e}") from e
        return PendingTx(self, Web3.to_hex(txh))

    def read_state(self, contract_address, fn_name, *args):
        try:
            return getattr(self._contract(contract_address).functions, fn_name)(*args).call()
        except requests.exceptions.RequestException as e:
            raise ChainConnectionError(f"RPC unreachable: {e}") from e
        except (Web3Exception, DecodingError, ValueError) as e:
            raise ReadError(f"{fn_name}() failed: {e}") from e

    def decode_event(self, contract_address, event_name, log_entry):
        """Decode one receipt log as `event_name`; LogDecodeError if it is something else."""
        try:
            ev = getattr(self._contract(contract_address).events, event_name)().process_log(log_entry)
        except (Web3Exception, DecodingError, ValueError) as e:
            raise LogDecodeError(f"log is not {event_name}: {e}") from e
        return dict(ev["args"])

    def read_cylinder_metadata(self, contract_address, token_id):
        raw = self.read_state(contract_address, "getCylinderMetadata", int(token_id))
        names = ("cylinderId", "manufacturer", "cylinderType", "weight",
                 "capacity", "batchNumber", "mintedAt", "isActive")
        return dict(zip(names, raw))

    def network(self):
        chain_id = self._rpc(lambda: self.w3.eth.chain_id)
        return CHAIN_NAMES.get(chain_id, "unknown"), chain_id

    def block_number(self):
        return self._rpc(lambda: self.w3.eth.block_number)

    def _rpc(self, fn):
        try:
            return fn()
        except requests.exceptions.RequestException as e:
            raise ChainConnectionError(f"RPC unreachable: {e}") from e
        except (Web3Exception, ValueError) as e:
            raise ReadError(str(e)) from e
