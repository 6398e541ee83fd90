"""Error taxonomy shared by the store, repositories and sync layer."""

import enum


class ValidationError(ValueError):
    """Rejected locally before anything reaches the store."""


class StoreErrorKind(str, enum.Enum):
    TRANSIENT = "transient"
    PERMISSION = "permission"
    NOT_FOUND = "not_found"


class StoreError(Exception):
    """A remote store operation or subscription failed."""

    def __init__(self, kind: StoreErrorKind, message: str = ""):
        self.kind = StoreErrorKind(kind)
        self.message = message or self.kind.value
        super().__init__(self.message)

    @classmethod
    def transient(cls, message: str = "Network error, please try again") -> "StoreError":
        return cls(StoreErrorKind.TRANSIENT, message)

    @classmethod
    def permission(cls, message: str = "Permission denied") -> "StoreError":
        return cls(StoreErrorKind.PERMISSION, message)

    @classmethod
    def not_found(cls, message: str = "Not found") -> "StoreError":
        return cls(StoreErrorKind.NOT_FOUND, message)

    @property
    def user_message(self) -> str:
        """Message suitable for the error slot shown to the user."""
        if self.kind == StoreErrorKind.PERMISSION:
            return self.message
        if self.kind == StoreErrorKind.NOT_FOUND:
            return f"Not found: {self.message}"
        return f"Connection problem: {self.message}"

    def __repr__(self) -> str:
        return f"StoreError({self.kind.value!r}, {self.message!r})"


class BlobStoreError(Exception):
    """Blob upload, URL resolution or deletion failed."""


class BlobNotFoundError(BlobStoreError):
    """The blob is not (yet) visible; URL resolution may succeed on retry."""


class AuthError(Exception):
    """Identity token could not be verified."""
