"""Error taxonomy.

Only ProviderError wraps a foreign exception (botocore's ClientError); the
botocore exception is always chained via ``raise ... from``.
"""

from botocore.exceptions import ClientError

ALREADY_EXISTS_CODES = frozenset(
    {
        "BucketAlreadyExists",
        "BucketAlreadyOwnedByYou",
        "EntityAlreadyExists",
        "InvalidGroup.Duplicate",
        "InvalidKeyPair.Duplicate",
    }
)


class BackupError(Exception):
    """Base class for every error raised by ec2backup."""


class ValidationError(BackupError):
    """Bad local input. Never retried.

    Deliberately not a ValueError: pydantic would otherwise wrap it when it is
    raised from a validator.
    """


class SourceNotFoundError(ValidationError):
    def __init__(self, path):
        self.path = str(path)
        super().__init__(f"Backup source '{self.path}' does not exist")


class ProviderError(BackupError):
    """The provider rejected a call. Code and message are kept verbatim."""

    def __init__(self, operation: str, code: str, message: str, resource: str | None = None):
        self.operation = operation
        self.code = code
        self.message = message
        self.resource = resource
        target = f" ({resource})" if resource else ""
        super().__init__(f"{operation}{target} failed: {code}: {message}")

    @classmethod
    def from_client_error(cls, operation: str, exc: ClientError, resource: str | None = None) -> "ProviderError":
        error = exc.response.get("Error", {})
        code = error.get("Code", "Unknown")
        message = error.get("Message", str(exc))
        klass = AlreadyExistsError if code in ALREADY_EXISTS_CODES else cls
        return klass(operation, code, message, resource)


class AlreadyExistsError(ProviderError):
    """A resource with the requested name already exists."""


class CallTimeoutError(ProviderError):
    """A provider call did not answer within the configured timeout."""

    def __init__(self, operation: str, message: str, resource: str | None = None):
        super().__init__(operation, "Timeout", message, resource)


class KeyFileError(BackupError):
    """A key pair exists remotely but its private key could not be saved locally."""

    def __init__(self, key_name: str, path, reason: str):
        self.key_name = key_name
        self.path = path
        super().__init__(f"Key pair {key_name} created but private key not saved to {path}: {reason}")


class PropagationTimeoutError(BackupError):
    def __init__(self, resource: str, waited: float):
        self.resource = resource
        self.waited = waited
        super().__init__(f"{resource} not visible after {waited:.0f}s")


class PartialFailure(BackupError):
    """Some independent sub-operations of a batch failed."""

    def __init__(self, message: str, outcomes: list):
        self.outcomes = outcomes
        super().__init__(message)


class PoisonRecordError(BackupError):
    """Synthetic failure used to exercise the alarm path."""

    def __init__(self, key: str):
        self.key = key
        super().__init__(f"Synthetic failure for testing CloudWatch Alarm (key={key})")
