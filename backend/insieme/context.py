"""Collaborators shared by the services of one application instance."""

from dataclasses import dataclass, field

from .config.settings import Settings, settings as default_settings
from .services.documents import DocumentIntakeService


@dataclass
class ServiceContext:
    """
    Injected handles for the external collaborators.

    ``store`` needs async get/set/update/add/find (see insieme.store),
    ``ai_backend`` an async ``generate(prompt, file_ref=None, ...)`` and
    ``file_ingestion`` async ``upload_pdf(bytes, display_name)`` / ``delete(ref)``.
    """

    store: object
    ai_backend: object
    file_ingestion: object
    settings: Settings = default_settings
    documents: DocumentIntakeService = field(default_factory=DocumentIntakeService)
