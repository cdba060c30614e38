"""Exception hierarchy for the autotrader package."""


class AutotraderError(Exception):
    """Base class for all autotrader errors."""
    pass


class ConfigurationError(AutotraderError):
    """Raised when configuration cannot be loaded or validated."""
    pass


class StaleWriteError(AutotraderError):
    """Raised when a versioned write targets a record that changed since it was read."""
    pass
