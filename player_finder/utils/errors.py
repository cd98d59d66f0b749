"""Custom exception types for consistent error handling."""


class InvalidInputError(Exception):
    """Raised when search input validation fails (location, radius, ranges)."""


class DirectoryUnavailableError(Exception):
    """Raised when the user directory query fails or is unavailable."""


class UserNotFoundError(Exception):
    """Raised when a searcher or user record does not exist."""


class SavedSearchNotFoundError(Exception):
    """Raised when a saved search id does not resolve to a record."""


class SavedSearchStoreError(Exception):
    """Raised when saved search persistence fails."""


class ConcurrentUpdateError(SavedSearchStoreError):
    """Raised when a saved search changed between read and write."""


class NotificationDispatchError(Exception):
    """Raised when a single notification cannot be delivered."""


class GraphExecutionError(Exception):
    """Raised when a graph fails to compile or execute."""
