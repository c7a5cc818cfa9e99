"""Protocol for the remote repository host."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from repjan.snapshot import RepositorySnapshot


@runtime_checkable
class RepositoryHost(Protocol):
    """Operations the application needs from the remote host.

    Implementations raise ``RemoteError`` subclasses on failure.
    """

    async def fetch_repositories(self, owner: str) -> list[RepositorySnapshot]:
        """List every repository owned by owner."""
        ...

    async def fetch_readme(self, owner: str, name: str) -> str:
        """Return the decoded README, or an empty string if there is none."""
        ...

    async def archive_repository(self, owner: str, name: str) -> None:
        """Archive one repository."""
        ...

    async def unarchive_repository(self, owner: str, name: str) -> None:
        """Unarchive one repository."""
        ...
