from __future__ import annotations


class BackupError(Exception):
    """Base class for backup/restore failures."""


class MissingKeyError(BackupError):
    """Raised when no encryption key is configured."""

    def __init__(self, message: str = "BACKUP_ENCRYPTION_KEY is required for secure backups") -> None:
        super().__init__(message)


class IntegrityError(BackupError):
    """Raised when the embedded checksum does not match the payload."""

    def __init__(self, message: str = "Checksum verification failed - backup may be corrupted") -> None:
        super().__init__(message)


class DecryptionError(BackupError):
    """Raised when authenticated decryption fails (wrong key or tampered ciphertext)."""

    def __init__(self, message: str = "Decryption failed - wrong key or tampered backup") -> None:
        super().__init__(message)


class MalformedArtifact(BackupError):
    """Raised when a decrypted payload is not a structurally valid snapshot."""


class VersionMismatch(BackupError):
    def __init__(self, found: str, expected: str) -> None:
        self.found = found
        self.expected = expected
        super().__init__(f"Backup version mismatch: {found} vs {expected}")


def short_reason(cause: BaseException) -> str:
    """
    One-line description of a failure that is safe to show to a client.

    Database errors are reduced to the driver exception name and the first
    line of its message, which drops the SQL text and bound parameters.
    """
    orig = getattr(cause, "orig", None)
    if isinstance(orig, BaseException):
        lines = str(orig).strip().splitlines()
        return f"{type(orig).__name__}: {lines[0]}" if lines else type(orig).__name__
    if getattr(cause, "statement", None) is not None:
        return type(cause).__name__
    lines = str(cause).strip().splitlines()
    return lines[0] if lines else type(cause).__name__


class TableRestoreError(BackupError):
    def __init__(self, table: str, phase: str, cause: BaseException) -> None:
        self.table = table
        self.phase = phase
        self.cause = cause
        super().__init__(f"Failed to {phase} table '{table}': {short_reason(cause)}")


__all__ = [
    "BackupError",
    "MissingKeyError",
    "IntegrityError",
    "DecryptionError",
    "MalformedArtifact",
    "VersionMismatch",
    "TableRestoreError",
    "short_reason",
]
