"""Coordinator error types."""


class CoordinatorError(Exception):
    """Base class for errors surfaced by the coordinator."""


class ProFeatureRequired(CoordinatorError):
    """A Pro-only setting was requested without current entitlement."""

    def __init__(self, feature: str) -> None:
        self.feature = feature
        super().__init__(f"{feature} is a Pro feature")


class ResourceUnavailable(CoordinatorError):
    """The external debugging session could not be reached."""
