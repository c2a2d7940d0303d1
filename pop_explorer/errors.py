"""
Exceptions raised by the query, geometry and saved-query layers.
"""


class PopulationExplorerError(Exception):
    """Base class for all application errors."""


class QueryCancelled(PopulationExplorerError):
    """A population query was superseded before its result could be used.

    Not a failure: callers drop it silently.
    """


class QueryTransportFailure(PopulationExplorerError):
    """The aggregate request could not be completed (HTTP, network, bad payload)."""


class CapacityExceeded(PopulationExplorerError):
    """The saved-query set already holds its maximum number of entries."""

    def __init__(self, capacity: int):
        super().__init__(f"At most {capacity} saved queries are allowed")
        self.capacity = capacity


class InvalidGeometry(PopulationExplorerError):
    """Draw input or buffer parameters did not describe a usable polygon."""
