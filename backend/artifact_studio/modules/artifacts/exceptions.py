"""Errors raised by the artifact pipeline."""

from __future__ import annotations


class ArtifactError(Exception):
    """Base class for artifact pipeline errors."""


class GenerationSourceError(ArtifactError):
    """The generation source failed mid-stream.

    Carries whatever the handler had accumulated before the failure so the
    streaming session can apply its commit policy.
    """

    def __init__(self, message: str, *, partial: str = "") -> None:
        super().__init__(message)
        self.partial = partial


class GenerationCancelled(ArtifactError):
    """The transport closed while the run was still pulling from the source."""


class DocumentBusyError(ArtifactError):
    """Another run (or save) already holds the document."""

    def __init__(self, document_id: str) -> None:
        super().__init__(f"Document {document_id} already has a generation in flight")
        self.document_id = document_id


class DocumentNotFoundError(ArtifactError, LookupError):
    """Raised when a requested document does not exist."""


class VersionNotFoundError(ArtifactError, LookupError):
    """Raised when a requested version index does not exist."""


class RegistryConfigurationError(ArtifactError):
    """The handler registry is incomplete or inconsistent.

    Raised while wiring the application, never while serving a request.
    """
