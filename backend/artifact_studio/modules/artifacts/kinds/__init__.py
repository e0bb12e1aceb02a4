from .base import DeltaSink, DocumentHandler, Draft, ExistingDocument, GenerationRequest
from .chart import ChartDocumentHandler
from .code import CodeDocumentHandler
from .slide import SlideDocumentHandler
from .text import TextDocumentHandler, chunk_words

__all__ = [
    "DeltaSink",
    "DocumentHandler",
    "Draft",
    "ExistingDocument",
    "GenerationRequest",
    "ChartDocumentHandler",
    "CodeDocumentHandler",
    "SlideDocumentHandler",
    "TextDocumentHandler",
    "chunk_words",
]
