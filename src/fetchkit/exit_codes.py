"""Numeric process exit codes following `clig.dev <https://clig.dev/>`_ conventions.

Each constant maps to a failure class and is referenced by the
corresponding :class:`~fetchkit.exceptions.FetchkitError` subclass (or,
for :class:`~fetchkit.exceptions.FetchError`, by its error category).
Shell wrappers can inspect the exit code to tell a rate-limited request
from an unreachable host without parsing stderr.

Example::

    $ fetchkit request GET https://api.example.com/users
    $ echo $?
    6   # EXIT_CONNECTION_ERROR -- the host could not be reached
"""

EXIT_SUCCESS = 0
"""The command completed successfully."""

EXIT_GENERIC_FAILURE = 1
"""An unclassified error occurred."""

EXIT_INVALID_USAGE = 2
"""The command was invoked with invalid arguments or missing required parameters."""

EXIT_CLIENT_ERROR = 3
"""The remote API rejected the request with an HTTP 4xx status."""

EXIT_NOT_FOUND = 4
"""The requested resource was not found (HTTP 404)."""

EXIT_SERVER_ERROR = 5
"""The remote API returned an HTTP 5xx server error."""

EXIT_CONNECTION_ERROR = 6
"""A network-level error occurred (timeout, DNS failure, connection refused)."""

EXIT_PARSE_ERROR = 7
"""The response payload could not be decoded."""

EXIT_CANCELLED = 8
"""The request was cancelled before it completed."""

EXIT_CACHE_ERROR = 9
"""The response cache rejected a write (quota exceeded)."""

EXIT_INTERRUPTED = 130
"""The process received SIGINT (Ctrl-C)."""
