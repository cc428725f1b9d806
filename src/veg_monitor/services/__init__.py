"""Services for imagery access and export of results."""

from .export import FolderExportSink
from .imagery import StacImageryService

__all__ = [
    "FolderExportSink",
    "StacImageryService",
]
