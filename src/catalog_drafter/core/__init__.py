"""
Extraction pipeline: fetch, clean, rank, prompt, extract, rewrite, categorize, draft
"""

from .brand_rewriter import BrandRewrite, BrandRewriter
from .category_matcher import CategoryMatcher, infer_category_name, validate_category_name
from .content_extractor import ContentExtractor
from .currency_normalizer import CurrencyNormalizer, detect_currency, format_price, parse_price
from .document import HtmlDocument, SoupDocument
from .draft_assembler import DraftAssembler, PipelinePhase, quality_score
from .draft_review import DraftReviewService
from .extraction_client import ExtractionClient
from .image_processor import ImageProcessor, StoredImage
from .image_ranker import ImageRanker, normalize_image_url
from .page_fetcher import FetchAttempt, PageFetcher
from .prompt_builder import PromptBuilder, PromptPair

__all__ = [
    "BrandRewrite",
    "BrandRewriter",
    "CategoryMatcher",
    "infer_category_name",
    "validate_category_name",
    "ContentExtractor",
    "CurrencyNormalizer",
    "detect_currency",
    "format_price",
    "parse_price",
    "HtmlDocument",
    "SoupDocument",
    "DraftAssembler",
    "PipelinePhase",
    "quality_score",
    "DraftReviewService",
    "ExtractionClient",
    "ImageProcessor",
    "StoredImage",
    "ImageRanker",
    "normalize_image_url",
    "FetchAttempt",
    "PageFetcher",
    "PromptBuilder",
    "PromptPair",
]
