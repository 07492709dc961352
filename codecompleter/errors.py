"""Error taxonomy for the completion pipeline.

None of these reach the editor: the coordinator and provider downgrade
them to "no suggestion".
"""


class CompletionError(Exception):
    """Base class for recoverable completion failures."""


class ConfigMissingError(CompletionError):
    """No API key configured, or completions are disabled."""


class CompletionTimeout(CompletionError):
    """The remote service did not answer within the profile deadline."""


class NetworkError(CompletionError):
    """Transport or HTTP failure talking to the remote service."""


class InvalidResponseError(CompletionError):
    """The reply had no usable content."""
