"""Exception types raised inside the companion pipeline."""


class CompanionError(Exception):
    """Base class for companion errors."""


class GenerationError(CompanionError):
    """A backend generation request failed or returned an error response."""


class ConfigError(CompanionError):
    """The configuration file could not be read or validated."""
