class FraudEngineError(Exception):
    """Base class for errors raised by the fraud engine."""


class FingerprintUnavailableError(FraudEngineError):
    def __init__(self, message: str = "No address or user agent to fingerprint") -> None:
        super().__init__(message)


class RecordNotFoundError(FraudEngineError):
    def __init__(self, kind: str, key: str | int) -> None:
        self.kind = kind
        self.key = key
        super().__init__(f"{kind} not found: {key}")


class ConcurrencyConflict(FraudEngineError):
    """A storage-level uniqueness rule rejected a concurrent write."""


__all__ = (
    "ConcurrencyConflict",
    "FingerprintUnavailableError",
    "FraudEngineError",
    "RecordNotFoundError",
)
