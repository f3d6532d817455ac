"""Exception hierarchy for the scheduling and evaluation engine."""


class CronSentryError(Exception):
    """Base class for all cronsentry errors."""


class ConfigurationError(CronSentryError):
    """Invalid entity configuration, rejected at create/update time."""


class UrlValidationError(ConfigurationError):
    """A monitor URL failed SSRF validation."""


class CheckNotFound(CronSentryError):
    """No check matches the given slug or id."""


class SweepError(CronSentryError):
    """The sweep could not enumerate its candidate entities."""
