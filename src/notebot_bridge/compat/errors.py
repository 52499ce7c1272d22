"""Typed not-found errors of the compat layer, one per path segment."""


class NotFoundError(LookupError):
    """A compat request names a node that does not exist."""

    segment = "node"
    message = "Not found"

    def __init__(self, slug: str = ""):
        self.slug = slug
        super().__init__(f"{self.message}: {slug!r}" if slug else self.message)

    def to_body(self) -> dict[str, str]:
        """Legacy error payload."""
        return {"error": self.message}


class LevelNotFound(NotFoundError):
    segment = "level"
    message = "Level not found"


class SubjectNotFound(NotFoundError):
    segment = "subject"
    message = "Subject not found"


class TopicNotFound(NotFoundError):
    segment = "topic"
    message = "Topic not found"
