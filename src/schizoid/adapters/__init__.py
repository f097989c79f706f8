from .archive import ArchiveTransport, iter_archive
from .base import MessageTransport, NullTransport

__all__ = ["ArchiveTransport", "MessageTransport", "NullTransport", "iter_archive"]
