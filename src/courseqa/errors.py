"""Exception hierarchy shared by the scan, fix and storage layers."""

from __future__ import annotations


class CourseQAError(Exception):
    """Base class for all courseqa errors."""


class DomainError(CourseQAError):
    """A precondition of the requested operation does not hold.

    Surfaced to API callers as a 4xx response with the message verbatim.
    """


class ProjectNotFoundError(DomainError):
    def __init__(self, project_id: str) -> None:
        super().__init__("Project not found")
        self.project_id = project_id


class NothingToFixError(DomainError):
    """No archive or no markup to remediate."""


class PackageError(CourseQAError):
    """The course archive is corrupt or contains unsafe entries."""
