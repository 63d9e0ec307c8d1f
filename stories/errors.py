"""
Story error taxonomy.

Components raise these; backends translate driver failures into
StoryTransportError so callers only ever see this hierarchy.
"""


class StoryError(Exception):
    """Base exception for story operations."""
    pass


class StoryValidationError(StoryError):
    """Request rejected before it reached the backend."""
    pass


class StoryNotFoundError(StoryError):
    """Story, illustration or version doesn't exist."""
    pass


class StoryTransportError(StoryError):
    """Backend or network failure. Recoverable by retrying."""
    pass
