#!/usr/bin/env python3
"""Mint one cylinder record as an NFT and write the result back to the record.

The pipeline is strictly sequential (see MintState). Whatever goes wrong, the
record gets exactly one error write-back and the original exception is
re-raised to the caller, which owns any retry policy.
"""
import enum, logging
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

from cylinder_errors import LogDecodeError, ReadError, ResolutionAmbiguity, ValidationError
from record_store import SERVER_TIMESTAMP

log = logging.getLogger(__name__)

REQUIRED_FIELDS = ("serialNumber", "manufacturer", "cylinderType")
BATCH_SENTINEL = "N/A"
MINT_FUNCTION = "mintCylinder"
MINT_EVENT = "CylinderMinted"
TOTAL_FUNCTION = "totalCylinders"
UINT256_LIMIT = 2 ** 256


class MintState(enum.Enum):
    VALIDATING = "validating"
    SUBMITTING = "submitting"
    AWAITING_CONFIRMATION = "awaiting_confirmation"
    RESOLVING_TOKEN_ID = "resolving_token_id"
    PERSISTING = "persisting"
    DONE = "done"
    FAILED = "failed"


@dataclass(frozen=True)
class MintRequest:
    cylinder_id: str
    manufacturer: str
    cylinder_type: str
    weight_grams: int
    capacity_grams: int
    batch_number: str = BATCH_SENTINEL

    def call_args(self, to):
        # metadata URI is always empty at mint time
        return (to, self.cylinder_id, self.manufacturer, self.cylinder_type,
                self.weight_grams, self.capacity_grams, self.batch_number, "")


@dataclass(frozen=True)
class MintSuccess:
    token_id: str
    transaction_hash: str
    block_number: int
    gas_used: str
    network: str
    resolution_method: str  # "event" or "fallback"

    def to_record_fields(self):
        return {
            "status": "minted",
            "tokenId": self.token_id,
            "transactionHash": self.transaction_hash,
            "blockNumber": self.block_number,
            "gasUsed": self.gas_used,
            "blockchainNetwork": self.network,
            "resolutionMethod": self.resolution_method,
            "mintedAt": SERVER_TIMESTAMP,
            "updatedAt": SERVER_TIMESTAMP,
        }


@dataclass(frozen=True)
class MintFailure:
    message: str

    @classmethod
    def from_exception(cls, exc):
        return cls(str(exc) or type(exc).__name__)

    def to_record_fields(self):
        return {
            "status": "error",
            "errorMessage": self.message,
            "errorTimestamp": SERVER_TIMESTAMP,
            "updatedAt": SERVER_TIMESTAMP,
        }


def to_grams(value, field_name="value"):
    """kg -> g, rounded half away from zero. Rejects anything non-numeric."""
    if value is None or value == "" or isinstance(value, bool):
        raise ValidationError(f"{field_name} is required and must be numeric", [field_name])
    try:
        kg = Decimal(str(value).strip())
    except (InvalidOperation, ValueError) as e:
        raise ValidationError(f"{field_name} is not a number: {value!r}") from e
    if not kg.is_finite():
        raise ValidationError(f"{field_name} is not a finite number: {value!r}")
    if kg < 0:
        raise ValidationError(f"{field_name} must not be negative: {value!r}")
    # exponent guard first so int() never materialises an enormous number
    if kg.adjusted() > 78:
        raise ValidationError(f"{field_name} is out of range: {value!r}")
    grams = int((kg * 1000).to_integral_value(rounding=ROUND_HALF_UP))
    if grams >= UINT256_LIMIT:
        raise ValidationError(f"{field_name} is out of range: {value!r}")
    return grams


def _text(data, key):
    v = data.get(key)
    if v is not None and not isinstance(v, str):
        raise ValidationError(f"{key} must be a string, got {type(v).__name__}")
    return v or ""


def build_mint_request(data):
    missing = [k for k in REQUIRED_FIELDS if not data.get(k)]
    if missing:
        raise ValidationError("Missing required cylinder metadata: " + ", ".join(missing), missing)

    return MintRequest(
        cylinder_id=_text(data, "serialNumber"),
        manufacturer=_text(data, "manufacturerId") or _text(data, "manufacturer"),
        cylinder_type=_text(data, "cylinderType"),
        weight_grams=to_grams(data.get("weight"), "weight"),
        capacity_grams=to_grams(data.get("capacity"), "capacity"),
        batch_number=_text(data, "batchNumber") or BATCH_SENTINEL,
    )


def network_label(rpc_url):
    """Best-effort label from the RPC URL; not real chain detection."""
    url = (rpc_url or "").lower()
    if "mumbai" in url:
        return "polygon-mumbai"
    if "polygon" in url:
        return "polygon"
    return "unknown"


class CylinderMinter:
    def __init__(self, client, store, contract_address, rpc_url, confirm_timeout):
        self.client = client
        self.store = store
        self.contract_address = contract_address
        self.rpc_url = rpc_url
        self.confirm_timeout = confirm_timeout

    def mint(self, record_id, data):
        state = MintState.VALIDATING
        try:
            req = build_mint_request(data)
            log.info("Processing cylinder registration: %s (serial %s)", record_id, req.cylinder_id)

            state = MintState.SUBMITTING
            pending = self.client.call(self.contract_address, MINT_FUNCTION, *req.call_args(self.client.address))
            log.info("Mint tx: %s", pending.hash)

            state = MintState.AWAITING_CONFIRMATION
            log.info("Waiting for receipt (timeout %ss)...", self.confirm_timeout)
            receipt = pending.await_confirmation(timeout=self.confirm_timeout)
            log.info("Confirmed in block %s, gas used %s", receipt.block_number, receipt.gas_used)

            state = MintState.RESOLVING_TOKEN_ID
            token_id, method = self.resolve_token_id(receipt)

            state = MintState.PERSISTING
            outcome = MintSuccess(
                token_id=token_id,
                transaction_hash=receipt.tx_hash,
                block_number=receipt.block_number,
                gas_used=str(receipt.gas_used),
                network=network_label(self.rpc_url),
                resolution_method=method,
            )
            self.store.update(record_id, outcome.to_record_fields())
            state = MintState.DONE
        except Exception as exc:
            log.error("Minting cylinder %s failed (%s -> %s): %s", record_id, state.value, MintState.FAILED.value, exc)
            record_failure(self.store, record_id, exc)
            raise

        log.info("Minted cylinder %s as NFT #%s (tx %s)", req.cylinder_id, token_id, receipt.tx_hash)
        return outcome

    def resolve_token_id(self, receipt):
        """Return (token_id, method). Event log first, then the racy total-count read."""
        for entry in receipt.logs:
            try:
                args = self.client.decode_event(self.contract_address, MINT_EVENT, entry)
            except LogDecodeError:
                continue
            token_id = str(args["tokenId"])
            log.info("Token ID from event: %s", token_id)
            return token_id, "event"

        log.warning("No %s event in tx %s; falling back to %s() (not safe under concurrent mints)",
                    MINT_EVENT, receipt.tx_hash, TOTAL_FUNCTION)
        try:
            total = self.client.read_state(self.contract_address, TOTAL_FUNCTION)
        except ReadError as e:
            raise ResolutionAmbiguity(f"no {MINT_EVENT} event and {TOTAL_FUNCTION}() failed: {e}") from e
        if isinstance(total, bool) or not isinstance(total, int) or total <= 0:
            raise ResolutionAmbiguity(f"no {MINT_EVENT} event and {TOTAL_FUNCTION}() returned {total!r}")
        log.info("Token ID from total cylinders: %s", total)
        return str(total), "fallback"


def record_failure(store, record_id, exc):
    """Single best-effort error write-back; its own failure is only logged."""
    try:
        store.update(record_id, MintFailure.from_exception(exc).to_record_fields())
    except Exception:
        log.exception("Failed to update error status for cylinder %s", record_id)
