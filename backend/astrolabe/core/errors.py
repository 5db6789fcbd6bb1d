"""Error taxonomy shared by the stores, the resolver and the import engine.

Every error here is recoverable: callers surface the message and let the user
re-invoke the operation. Nothing in the core retries automatically.
"""

from __future__ import annotations

from typing import Any, Literal

FetchErrorKind = Literal["network", "not_found", "http", "parse"]


class AstrolabeError(Exception):
    """Base class for all domain errors."""


class RecordNotFoundError(AstrolabeError):
    def __init__(self, kind: str, record_id: Any) -> None:
        super().__init__(f"{kind.capitalize()} {record_id} not found")
        self.kind = kind
        self.record_id = record_id


class DuplicateNameError(AstrolabeError):
    """A dataset name is already taken."""

    def __init__(self, name: str) -> None:
        super().__init__(f'A dataset named "{name}" already exists')
        self.name = name


class DatasetNotFoundError(AstrolabeError):
    """A specification references a dataset name that does not exist."""

    def __init__(self, name: str) -> None:
        super().__init__(f'Dataset "{name}" not found')
        self.name = name


class QuotaExceededError(AstrolabeError):
    """Persisting the snippet collection would exceed the configured quota."""

    def __init__(self, used: int, required: int, quota: int) -> None:
        super().__init__(
            f"Snippet storage quota exceeded: write needs {required} bytes, "
            f"quota is {quota} bytes ({used} bytes in use). Delete old snippets to free space."
        )
        self.used = used
        self.required = required
        self.quota = quota


class FetchError(AstrolabeError):
    """A remote dataset could not be fetched or parsed.

    ``kind`` tells network/CORS-type failures apart from missing resources and
    from payloads that do not parse as the declared format.
    """

    def __init__(self, url: str, kind: FetchErrorKind, detail: str) -> None:
        super().__init__(f"Failed to fetch {url} ({kind}): {detail}")
        self.url = url
        self.kind = kind
        self.detail = detail


class MalformedInputError(AstrolabeError):
    """An import batch failed validation before any write happened."""


class PerRecordImportError(AstrolabeError):
    """One record of an otherwise valid import batch is corrupt."""

    def __init__(self, index: int, detail: str) -> None:
        super().__init__(f"Record {index}: {detail}")
        self.index = index
        self.detail = detail


class ReadOnlyViewError(AstrolabeError):
    """Edits through the published view are rejected while a draft exists."""


class ConfirmationRequiredError(AstrolabeError):
    """A destructive operation was invoked without explicit confirmation."""


class UnsupportedFormatError(AstrolabeError, ValueError):
    def __init__(self, value: Any) -> None:
        super().__init__(f"Unsupported dataset format: {value!r}")
        self.value = value


__all__ = [
    "AstrolabeError",
    "ConfirmationRequiredError",
    "DatasetNotFoundError",
    "DuplicateNameError",
    "FetchError",
    "FetchErrorKind",
    "MalformedInputError",
    "PerRecordImportError",
    "QuotaExceededError",
    "ReadOnlyViewError",
    "RecordNotFoundError",
    "UnsupportedFormatError",
]
