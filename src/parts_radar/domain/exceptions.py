"""Error taxonomy shared by the Parts Radar services."""


class PartsRadarError(Exception):
    """Base class for all Parts Radar domain errors."""


class NotFoundError(PartsRadarError):
    """Raised when a partner, request or quote id does not exist."""

    def __init__(self, entity: str, entity_id: str):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} not found")


class RequestValidationError(PartsRadarError):
    """Raised when input is rejected before any record is created."""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Requirements not met: {reason}")
