from typing import Optional


class BugSortError(Exception):
    """Base class for errors raised by the classification service."""


class ModelError(BugSortError):
    """Raised when the generative-model classifier cannot produce a verdict."""


class ModelUnavailable(ModelError):
    """Model endpoint or credentials are not configured or cannot be acquired."""


class ModelRequestError(ModelError):
    def __init__(self, status: Optional[int], body: str = "", url: str = "") -> None:
        self.status = status
        self.body = body
        self.url = url
        detail = f"status {status}" if status is not None else "request failed"
        message = f"Model endpoint {detail}"
        if url:
            message += f" | url={url}"
        if body:
            message += f" | body={body}"
        super().__init__(message)

    @property
    def retryable(self) -> bool:
        return self.status is None or self.status == 429 or self.status >= 500


class ModelResponseError(ModelError):
    """Model answered, but the body could not be parsed into a verdict."""


class TrackerError(BugSortError):
    def __init__(self, status: Optional[int], body: str = "", message: str = "") -> None:
        self.status = status
        self.body = body
        super().__init__(message or f"Jira API error ({status}): {body}")


class StorageError(BugSortError):
    pass
