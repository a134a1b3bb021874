from __future__ import annotations


class MyPRsError(Exception):
    """Base class for all errors raised by myprs."""


class InputError(MyPRsError):
    """A typed command, repository reference or status literal is malformed."""


class FetchError(MyPRsError):
    """Loading pull requests for a repository failed (network, auth or payload)."""


class ConfigError(MyPRsError):
    """The configuration is unusable; raised at startup and fatal."""


class PersistError(MyPRsError):
    """Saving the configuration failed. Logged, never fatal."""
