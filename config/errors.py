"""
Growth Coach — configuration failures.
"""


class ConfigurationError(RuntimeError):
    """A required credential or setting is missing. Never retried."""
