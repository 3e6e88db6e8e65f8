"""Numeric process exit codes following `clig.dev <https://clig.dev/>`_ conventions.

Each constant maps to a specific error category and is referenced by the
corresponding :class:`~clipauth.exceptions.ClipauthError` subclass.
Shell wrappers can inspect the exit code to tell "sign in again" apart from
"the network is down" without parsing stderr.

Example::

    $ clipauth auth token
    $ echo $?
    3   # EXIT_AUTH_FAILURE -- not signed in or the session expired
"""

EXIT_SUCCESS = 0
"""The command completed successfully."""

EXIT_GENERIC_FAILURE = 1
"""An unclassified error occurred."""

EXIT_INVALID_USAGE = 2
"""The command was invoked with invalid arguments."""

EXIT_AUTH_FAILURE = 3
"""Signing in failed, or the stored session is missing or dead."""

EXIT_CONNECTION_ERROR = 6
"""The identity provider could not be reached (timeout, DNS, 5xx)."""
