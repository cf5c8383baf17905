"""Domain exceptions."""

from typing import Any


class DomainException(Exception):
    """Base exception for all domain exceptions."""

    # Hey future me - message is kept as an attribute so handlers can log it without
    # parsing str(exc). Never raise this directly, pick a subclass so callers can
    # catch precisely.
    def __init__(self, message: str, *args: Any) -> None:
        super().__init__(message, *args)
        self.message = message


class EntityNotFoundException(DomainException):
    """Raised when an entity is not found."""

    def __init__(self, entity_type: str, entity_id: Any) -> None:
        super().__init__(f"{entity_type} with id {entity_id} not found")
        self.entity_type = entity_type
        self.entity_id = entity_id


class ValidationException(DomainException):
    """Raised when input violates a business rule (bad index, empty name, ...)."""

    pass


class InvalidStateException(DomainException):
    """Raised when an operation is not allowed in the current state.

    Example: starting a full sync while another one is still running.
    """

    pass


class ConfigurationError(DomainException):
    """Raised when settings are missing or inconsistent."""

    pass


class TransportError(DomainException):
    """Raised when the remote media server cannot be reached or rejects a call.

    Retries already happened in the client by the time this surfaces. The sync
    workers convert it into a failed page instead of letting it escape.
    """

    def __init__(
        self,
        message: str,
        service: str = "media-server",
        status_code: int | None = None,
        error_code: str | None = None,
    ) -> None:
        super().__init__(message)
        self.service = service
        self.status_code = status_code
        self.error_code = error_code


class UnsupportedCapabilityError(DomainException):
    """Raised when the server dialect does not offer an entity class."""

    def __init__(self, capability: str, dialect: str) -> None:
        super().__init__(f"{dialect} servers do not support {capability}")
        self.capability = capability
        self.dialect = dialect


class MalformedRecordError(DomainException):
    """Raised for a remote record lacking its id or name.

    Reconcilers catch this per record, log it and keep going.
    """

    def __init__(self, entity_class: str, record: Any, reason: str) -> None:
        super().__init__(f"Malformed {entity_class} record: {reason}")
        self.entity_class = entity_class
        self.record = record
        self.reason = reason


class PersistenceError(DomainException):
    """Raised when the local store cannot commit.

    This one is fatal for a run: the sync epoch stays pending and the caller sees it.
    """

    pass


class SyncCancelledError(DomainException):
    """Raised to slot waiters once the batch limiter has been cancelled."""

    def __init__(self, message: str = "Synchronization was cancelled") -> None:
        super().__init__(message)


__all__ = [
    "ConfigurationError",
    "DomainException",
    "EntityNotFoundException",
    "InvalidStateException",
    "MalformedRecordError",
    "PersistenceError",
    "SyncCancelledError",
    "TransportError",
    "UnsupportedCapabilityError",
    "ValidationException",
]
