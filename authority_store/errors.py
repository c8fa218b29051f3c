class StoreUnavailable(Exception):
    """A backing store (database or cache) failed or timed out.

    Retryable by the caller; rendered as 503 by the API layer.
    """
