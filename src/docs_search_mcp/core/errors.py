"""
Error taxonomy for the documentation search engine.

Build-time errors are fatal and propagate to the caller. Run-time errors are
caught by the loader, the query engine and the manager, which degrade to
keyword-only search instead of failing.
"""


class SearchEngineError(Exception):
    """Base class for every search engine error."""


class IndexBuildError(SearchEngineError):
    """The corpus is malformed and the build must abort."""


class ArtifactNotFound(SearchEngineError):
    """No index artifact exists at the configured location."""


class EmbeddingUnavailable(SearchEngineError):
    """The embedding model could not be loaded or failed during inference."""


class ArtifactVersionMismatch(EmbeddingUnavailable):
    """Index vectors were produced by a different model version than the loaded one."""

    def __init__(self, artifact_version: str, model_version: str):
        self.artifact_version = artifact_version
        self.model_version = model_version
        super().__init__(
            f"Index built with model '{artifact_version}' "
            f"but the loaded model is '{model_version}'"
        )


class QueryTimeout(SearchEngineError):
    """Asynchronous work for a query exceeded its time limit."""


class QueryCancelled(SearchEngineError):
    """A newer query superseded this one before it finished."""


__all__ = [
    "SearchEngineError",
    "IndexBuildError",
    "ArtifactNotFound",
    "EmbeddingUnavailable",
    "ArtifactVersionMismatch",
    "QueryTimeout",
    "QueryCancelled",
]
