"""Exception taxonomy shared by ingestion, name resolution and the API layer."""


class AlertboardError(Exception):
    pass


class ConfigurationError(AlertboardError):
    """A dependent feature cannot run because its settings are missing."""


class ExternalServiceError(AlertboardError):
    """Transport, auth or protocol failure talking to an upstream service."""


class JiraConnectionError(ExternalServiceError):
    pass


class JiraSearchError(ExternalServiceError):
    def __init__(self, message: str, page: int = 0):
        super().__init__(message)
        self.page = page


class NameResolutionError(ExternalServiceError):
    """Lookup failed; ``fallback`` echoes the requested id as its own name."""

    def __init__(self, message: str, fallback):
        super().__init__(message)
        self.fallback = fallback


class IngestionAlreadyRunningError(AlertboardError):
    pass


class IssueAlreadyMutedError(AlertboardError):
    pass
