"""
Catalog Drafter - product page to reviewable catalog draft
"""

__version__ = "0.1.0"

from .core.draft_assembler import DraftAssembler
from .core.draft_review import DraftReviewService
from .core.extraction_client import ExtractionClient
from .exceptions import (
    CatalogDrafterError,
    DraftStateError,
    DraftValidationError,
    ExtractionError,
    FetchError,
    PipelineCancelled,
    PipelineError,
    SparseContentError,
)
from .models.product import DraftRequest, ProductDraft, ProductExtractionResult
from .utils.config import ConfigManager

__all__ = [
    "DraftAssembler",
    "DraftReviewService",
    "ExtractionClient",
    "CatalogDrafterError",
    "DraftStateError",
    "DraftValidationError",
    "ExtractionError",
    "FetchError",
    "PipelineCancelled",
    "PipelineError",
    "SparseContentError",
    "DraftRequest",
    "ProductDraft",
    "ProductExtractionResult",
    "ConfigManager",
]
