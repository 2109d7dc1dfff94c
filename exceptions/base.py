"""
Root of the sync engine's exception hierarchy.
"""


class PosSyncException(Exception):
    """
    Raised for any failure the engine itself detects.

    Storage, queue, cart and network errors all derive from it, so the CLI and
    the error handler can catch one type and still log the structured context.

    Attributes:
        message: Text shown to the operator
        details: Extra context such as storage keys, item numbers or file paths
    """

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        return self.message

    def __repr__(self) -> str:
        name = type(self).__name__
        if not self.details:
            return f"{name}({self.message!r})"
        context = ", ".join(f"{key}={value!r}" for key, value in self.details.items())
        return f"{name}({self.message!r}, {context})"
