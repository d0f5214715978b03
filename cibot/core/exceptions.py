"""
Error taxonomy for the build trigger engine.

Configuration errors are recovered close to where they happen; malformed input
and dispatch failures are surfaced to the caller.
"""


class CibotError(Exception):
    """Base class for all errors raised by cibot."""


class ConfigurationError(CibotError):
    """A repository or server policy could not be read."""


class MalformedEventError(CibotError, ValueError):
    """An inbound event or callback cannot be interpreted."""


class CommitGraphError(CibotError):
    """The source control plumbing failed to answer a graph query."""


class DispatchError(CibotError):
    """The CI server refused or failed to start a build."""

    def __init__(self, message: str, status_code: int = 0):
        super().__init__(message)
        self.status_code = status_code


class SourceControlError(CibotError):
    """A Bitbucket REST call failed."""
