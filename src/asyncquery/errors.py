"""Error types raised by asyncquery."""

from typing import Any


class FetchCancelledError(Exception):
    """Raised into a fetch or mutation future when it is cancelled.

    ``revert`` restores the query status it had before the fetch started,
    ``silent`` leaves the query state untouched.
    """

    def __init__(self, *, revert: bool = False, silent: bool = False) -> None:
        super().__init__("Fetch cancelled")
        self.revert = revert
        self.silent = silent

    def __repr__(self) -> str:
        return f"FetchCancelledError(revert={self.revert}, silent={self.silent})"


class MissingQueryFunctionError(RuntimeError):
    """A query was fetched without any query function configured."""

    def __init__(self, query_hash: str) -> None:
        super().__init__(f"Missing query_fn for query {query_hash}")
        self.query_hash = query_hash


class MissingMutationFunctionError(RuntimeError):
    """A mutation was executed without a mutation function."""

    def __init__(self) -> None:
        super().__init__("No mutation_fn found")


def is_cancelled_error(value: Any) -> bool:
    return isinstance(value, FetchCancelledError)


__all__ = [
    "FetchCancelledError",
    "MissingMutationFunctionError",
    "MissingQueryFunctionError",
    "is_cancelled_error",
]
