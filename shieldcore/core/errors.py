"""Custom exceptions for shieldcore."""


class ShieldError(Exception):
    """Base exception for all shieldcore errors."""
    pass


# Cryptographic validation errors (fatal to the operation)
class CryptoError(ShieldError):
    """Base exception for cryptographic validation errors."""
    pass


class InvalidPointError(CryptoError):
    """Raised when a point is not on the curve or not in the prime-order subgroup."""
    pass


class InvalidKeyError(CryptoError):
    """Raised when a key is out of range or does not match the note it should open."""
    pass


class CommitmentMismatchError(CryptoError):
    """Raised when a recomputed commitment differs from the expected one."""
    pass


class DecryptionError(CryptoError):
    """Raised when a note ciphertext fails authentication or is malformed."""
    pass


class InvalidMerkleProofError(CryptoError):
    """Raised when a Merkle inclusion proof does not reproduce its root."""
    pass


class WatchOnlyKeyError(CryptoError):
    """Raised when an operation needs the spending key of a watch-only keypair."""
    pass


# Selection errors (recoverable)
class SelectionError(ShieldError):
    """Base exception for coin-selection errors."""
    pass


class InsufficientFundsError(SelectionError):
    """Raised when unspent notes cannot cover the requested amount."""

    def __init__(self, message: str, available: int = 0, required: int = 0):
        super().__init__(message)
        self.available = available
        self.required = required


class TooManyInputsError(SelectionError):
    """Raised when the target is reachable only with more inputs than a circuit accepts."""

    def __init__(self, message: str, max_inputs: int = 0):
        super().__init__(message)
        self.max_inputs = max_inputs


# Staleness errors (recoverable by refetching)
class StaleStateError(ShieldError):
    """Base exception for snapshots that are no longer current."""
    pass


class StaleMerkleRootError(StaleStateError):
    """Raised when a witness root is no longer accepted by the ledger."""
    pass


# External service errors
class ExternalServiceError(ShieldError):
    """Base exception for failures of collaborators outside this package."""
    pass


class IndexerError(ExternalServiceError):
    """Raised when the indexer is unreachable or returns malformed data."""
    pass


class ProverError(ExternalServiceError):
    """Raised when the proving backend fails. Carries the backend's message."""
    pass


class ProofFormatError(ShieldError):
    """Raised when a proof does not match its circuit's byte layout."""
    pass


# Spend tracking
class DoubleSpendError(ShieldError):
    """Raised when a nullifier is published twice."""
    pass


class DuplicateOperationError(ShieldError):
    """Raised when a spend using the same nullifiers was already submitted."""
    pass


class StorageError(ShieldError):
    """Raised when the local note store cannot be read or written."""
    pass
