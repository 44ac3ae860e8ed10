"""
Error kinds raised by the sync core.

Every error derives from TmCloudError so hosts can catch the whole
family in one place. None of these are retried automatically; the
next scheduler tick is the retry.
"""

from __future__ import annotations


class TmCloudError(Exception):
    """Base class for all tmcloud errors."""


class ConfigIncomplete(TmCloudError):
    """Raised when storage settings or the encryption key are missing."""


class StorageError(TmCloudError):
    """Raised when the object store fails (I/O, auth, network)."""


class BackupNotFound(TmCloudError):
    """Raised when a pull finds no backup object to restore."""


class EncryptionError(TmCloudError):
    """Raised when the cipher or key derivation cannot run."""


class InvalidPasswordOrCorruptData(EncryptionError):
    """Raised when the authentication tag does not verify.

    A wrong password and a tampered ciphertext are indistinguishable
    on purpose; both surface as this error.
    """


class MalformedEnvelope(EncryptionError):
    """Raised when an envelope's binary layout is inconsistent."""


class UnsupportedEnvelopeVersion(MalformedEnvelope):
    """Raised for envelopes newer than this implementation understands."""


class MetadataUnavailable(TmCloudError):
    """Raised when the cloud metadata object exists but cannot be decoded."""


class InvalidDataStructure(TmCloudError):
    """Raised when a decoded backup lacks the required top-level fields."""


class OperationTimeout(TmCloudError):
    """Raised to the caller when a queued operation exceeds its timeout."""


class SyncInProgress(TmCloudError):
    """Raised when a top-level engine operation is already running."""
