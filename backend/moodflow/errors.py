"""
Error kinds raised by the stats core and mapped to HTTP statuses in main.
"""


class MoodFlowError(Exception):
    status_code = 500


class InvalidArgument(MoodFlowError):
    """Missing user identity, negative duration, unparseable date."""
    status_code = 400


class StorageUnavailable(MoodFlowError):
    """A read or write against Supabase failed. No retry happens here."""
    status_code = 503


class StatsConflict(StorageUnavailable):
    """Concurrent completions kept winning the conditional stats write."""


class ConfigurationError(MoodFlowError):
    """The server's own settings are invalid (bad STATS_TIMEZONE etc.)."""
    status_code = 500
