class StorageError(Exception):
    """The relational store failed in a way the caller cannot work around."""

    def __init__(self, message: str, *, detail: str | None = None):
        super().__init__(message)
        self.detail = detail


class InferenceError(Exception):
    """The vision / language model call failed or returned unusable output."""

    def __init__(self, message: str, *, detail: str | None = None):
        super().__init__(message)
        self.detail = detail


class InferenceUnavailable(InferenceError):
    """Inference is disabled (mock mode or missing API key)."""
