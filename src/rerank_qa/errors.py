"""rerank_qa.errors

Exception hierarchy for the rerank-QA advisor.

Classes
-------
RerankQAError
    Base class for every error raised by this package.
ConfigurationError
    Raised when an advisor or component cannot be constructed.
RetrievalError
    Raised by the bundled data sources when a search fails.
FilterExpressionError
    Raised when a filter expression cannot be parsed.
RerankError
    Raised by the bundled rerankers when a rerank call fails.
MalformedOverrideError
    Raised when a per-request relevancy threshold override is unusable.

Notes
-----
The advisor itself never translates errors. Whatever a collaborator raises
reaches the caller unchanged; these classes are what the bundled
collaborators raise.
"""


class RerankQAError(Exception):
    """Base class for rerank-QA errors."""


class ConfigurationError(RerankQAError, ValueError):
    """Invalid construction-time settings."""


class RetrievalError(RerankQAError):
    """A data source failed to return passages."""


class FilterExpressionError(RetrievalError, ValueError):
    """A filter expression could not be parsed.

    Parameters
    ----------
    message : str
        Human-readable description of the problem.
    expression : str
        The expression being parsed.
    position : int or None, optional
        Character offset at which parsing failed.
    """

    def __init__(self, message: str, expression: str, position: int | None = None):
        self.expression = expression
        self.position = position
        if position is not None:
            message = f"{message} at position {position} in {expression!r}"
        else:
            message = f"{message} in {expression!r}"
        super().__init__(message)


class RerankError(RerankQAError):
    """A reranker call failed or returned an unusable payload."""


class MalformedOverrideError(RerankQAError, ValueError):
    """A per-request override could not be applied."""


__all__ = [
    "RerankQAError",
    "ConfigurationError",
    "RetrievalError",
    "FilterExpressionError",
    "RerankError",
    "MalformedOverrideError",
]
