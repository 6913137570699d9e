"""Exception types shared across the indexing and query pipelines."""


class CodeciteError(Exception):
    """Base class for codecite errors."""


class IndexingError(CodeciteError):
    """Indexing a document failed.

    ``retryable`` is True when the failure left no partial state behind
    (the write transaction was rolled back) and the same call may be retried.
    """

    def __init__(self, message: str, path: str | None = None, retryable: bool = True):
        super().__init__(message)
        self.path = path
        self.retryable = retryable


class ProviderError(CodeciteError):
    """An embedding or chat provider call failed or timed out."""


class StructuredOutputError(ProviderError):
    """The chat provider answered, but not with the requested schema."""

    def __init__(self, message: str, raw_text: str = ""):
        super().__init__(message)
        self.raw_text = raw_text


class SourceError(CodeciteError):
    """A source host could not list, diff or fetch repository content."""


class QueryCancelled(CodeciteError):
    """The caller cancelled an in-flight question before it completed."""
