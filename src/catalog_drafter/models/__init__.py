"""
Data models for the catalog drafter
"""

from .category import Category, CategoryAlternative, CategorySuggestion, ProductSummary
from .page import (
    ExtractedImage,
    FetchedPage,
    ImageElement,
    ImageQuality,
    ImageScore,
    ImageSource,
    ImageType,
    PageMetadata,
    ProcessedHTML,
    ProductMetadata,
    RankedImage,
    RankedImageType,
)
from .product import (
    AdminChange,
    AIMetadata,
    DraftProduct,
    DraftRequest,
    DraftStatus,
    LiveProduct,
    PriceConversion,
    ProductDraft,
    ProductExtractionResult,
    StockStatus,
)
from .settings import AISettings

__all__ = [
    "Category",
    "CategoryAlternative",
    "CategorySuggestion",
    "ProductSummary",
    "ExtractedImage",
    "FetchedPage",
    "ImageElement",
    "ImageQuality",
    "ImageScore",
    "ImageSource",
    "ImageType",
    "PageMetadata",
    "ProcessedHTML",
    "ProductMetadata",
    "RankedImage",
    "RankedImageType",
    "AdminChange",
    "AIMetadata",
    "DraftProduct",
    "DraftRequest",
    "DraftStatus",
    "LiveProduct",
    "PriceConversion",
    "ProductDraft",
    "ProductExtractionResult",
    "StockStatus",
    "AISettings",
]
