class PredictionLeagueError(Exception):
    """Base class for business errors raised by the services."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFoundError(PredictionLeagueError):
    """A round, league, season or match referenced by id does not exist."""

    def __init__(self, entity: str, entity_id):
        super().__init__(f"{entity} (ID: {entity_id}) was not found.")
        self.entity = entity
        self.entity_id = entity_id


class ConflictError(PredictionLeagueError):
    """A business rule would be violated by the requested change."""


class UnauthorizedError(PredictionLeagueError):
    """The caller is not allowed to perform this action."""
