#!/usr/bin/env python3
"""Error types raised while minting a cylinder NFT."""


class MintError(Exception):
    """Base class for every failure of a mint attempt."""


class ValidationError(MintError):
    """Cylinder record is missing a required field or holds a malformed one."""

    def __init__(self, message, missing=None):
        super().__init__(message)
        self.missing = list(missing or [])


class ConfigError(MintError):
    """Blockchain settings are missing or unusable."""


class ChainConnectionError(MintError, ConnectionError):
    """RPC endpoint is unreachable."""


class SubmissionError(MintError):
    """Transaction was rejected (revert, funds, gas, RPC refusal)."""


class ConfirmationError(MintError):
    """Receipt could not be obtained for a submitted transaction."""


class ConfirmationTimeout(ConfirmationError, TimeoutError):
    """Transaction was not included within the confirmation bound."""


class ReadError(MintError):
    """A contract view call failed."""


class LogDecodeError(MintError):
    """A receipt log does not match the requested event."""


class ResolutionAmbiguity(MintError):
    """Token id could be recovered neither from events nor from contract state."""


class RecordNotFound(KeyError):
    pass
