"""
Error Taxonomy
==============
Exceptions raised by the importer.

Only ``ConfigurationError`` and ``RunInProgressError`` ever reach the
caller of a run: every other failure is per-URL and is converted into a
report row by the scheduler.
"""


class ImporterError(Exception):
    """Base class for all importer errors."""


class ConfigurationError(ImporterError):
    """Invalid run configuration (empty URL list, bad origin, ...)."""


class RunInProgressError(ImporterError):
    """A run was started while another one is still active."""


class MalformedURLError(ImporterError):
    """A URL could not be parsed as an absolute http(s) URL."""

    def __init__(self, url: str, reason: str = "not an absolute http(s) URL"):
        self.url = url
        self.reason = reason
        super().__init__(f"Malformed URL {url!r}: {reason}")


class NetworkOrRenderFailure(ImporterError):
    """The page could not be fetched or rendered."""


class TransformFailure(ImporterError):
    """The rendered document could not be converted."""


class StaleLoadError(ImporterError):
    """A page load was superseded or abandoned before it could be read."""

    def __init__(self, url: str):
        self.url = url
        super().__init__(f"Load of {url} was superseded")
