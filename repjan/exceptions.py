"""Application-level exception types.

Convention:
- ``StoreError``: any failure of the local cache database.  Raised by
  ``CacheStore`` after the enclosing transaction has been rolled back, so the
  caller may assume nothing from the failed call was written.
- ``RecordNotFoundError``: a point lookup or point update addressed a row
  that does not exist.
- ``RemoteError`` and its subclasses: failures reported by (or while talking
  to) the remote repository host.  These are expected at runtime and are
  surfaced to the user as a one-line status message, never as a crash.
"""

from __future__ import annotations


class StoreError(Exception):
    """Raised when the local cache cannot be read or written."""


class RecordNotFoundError(StoreError):
    """Raised when a requested cache row does not exist."""


class RemoteError(Exception):
    """Raised for failed calls against the remote repository host."""


class AuthenticationError(RemoteError):
    """Raised when the remote host rejects our credentials."""


class RateLimitError(RemoteError):
    """Raised when the remote host's API rate limit is exhausted."""


class RemoteNotFoundError(RemoteError):
    """Raised when the remote resource does not exist or is not visible to us."""
