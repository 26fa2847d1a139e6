"""Domain exceptions raised by the connection pipeline.

The API layer translates these into HTTP responses; the core never imports
FastAPI for them.
"""


class SerendipityError(Exception):
    """Base class for pipeline errors."""


class NotFoundError(SerendipityError):
    """Entry or project is missing, or not owned by the acting user.

    Both cases are reported identically to callers.
    """


class StoreWriteError(SerendipityError):
    """The batch insert of new connections failed."""


class GenerationConfigError(SerendipityError):
    """No text-generation provider is configured."""
