"""Exceptions raised by metrics bootstrapping."""


class ConfigurationError(Exception):
    """Raised when metrics configuration is invalid."""

    pass


class MeterRegistrationError(ValueError):
    """Raised when a meter conflicts with one already registered under its name."""

    def __init__(self, name: str, cause: str) -> None:
        self.name = name
        self.cause = cause
        message = f"Cannot register meter {name} because {cause}"
        super().__init__(message)
