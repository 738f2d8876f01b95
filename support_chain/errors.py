"""Errors raised by the chain. Everything derives from ChainError."""


class ChainError(Exception):
    """Base for all chain failures."""


class ConfigError(ChainError):
    """Configuration is incomplete (e.g. missing API key)."""


class CompletionError(ChainError):
    """The completion service could not produce text: transport error, non-2xx status, or bad body."""

    def __init__(self, message: str, status_code: int | None = None, body: str | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class StageFailedError(ChainError):
    """A stage failed; remaining stages were not run. `cause` is the triggering exception."""

    def __init__(self, stage: str, ordinal: int, cause: BaseException) -> None:
        detail = str(cause) or type(cause).__name__
        super().__init__(f"Stage {ordinal} ({stage}) failed: {detail}")
        self.stage = stage
        self.ordinal = ordinal
        self.cause = cause


class CategoryNotRecognizedError(ChainError):
    """Category selection text does not name one of the known categories."""

    def __init__(self, text: str, category_name: str) -> None:
        super().__init__(f"Unrecognized category {category_name!r} in selection: {text[:120]!r}")
        self.text = text
        self.category_name = category_name
