from typing import Optional


class NewsAppError(Exception):
    pass


class UpstreamUnavailable(NewsAppError):
    """The news API answered with a non-2xx status or an unusable payload."""

    def __init__(self, query: str, status: Optional[int] = None, message: str = ""):
        self.query = query
        self.status = status
        detail = f"status {status}" if status is not None else message
        super().__init__(f"News API unavailable for '{query}': {detail}")


class PersistenceFailure(NewsAppError):
    pass


class NewsAggregationError(NewsAppError):
    pass
