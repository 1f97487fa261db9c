"""
Error types raised by the draft pipeline.

Every error carries a ``user_message`` with next steps for the admin, so
callers can show it without exposing a traceback.
"""

from typing import List, Optional


class CatalogDrafterError(Exception):
    """Base class for all pipeline errors"""

    def __init__(self, message: str, user_message: Optional[str] = None):
        super().__init__(message)
        self.user_message = user_message or message


class FetchError(CatalogDrafterError):
    """Every fetch strategy failed for a product page"""

    BLOCKED = "blocked"
    TIMEOUT = "timeout"
    INVALID_RESPONSE = "invalid-response"

    def __init__(
        self,
        reason: str,
        message: Optional[str] = None,
        attempts: Optional[List] = None,
    ):
        self.reason = reason
        self.attempts = list(attempts or [])
        message = message or (
            "Unable to access this product page. This can happen when:\n"
            "  - the website blocks automated access\n"
            "  - the page requires authentication\n"
            "  - every proxy timed out or returned an empty page\n\n"
            "Alternatives:\n"
            "  1. Upload product images manually (recommended)\n"
            "  2. Paste the product details as text\n"
            "  3. Try a different product URL from the same website"
        )
        super().__init__(message)


class SparseContentError(CatalogDrafterError):
    """Cleaned page content is too short to extract a product from"""

    def __init__(self, length: int, minimum: int):
        self.length = length
        self.minimum = minimum
        super().__init__(
            f"Cleaned page content is only {length} characters (minimum {minimum})",
            "The page had almost no readable content. "
            "Upload product images or paste the product details instead.",
        )


class ExtractionError(CatalogDrafterError):
    """The language model call failed or returned unusable content"""

    CHECKLIST = (
        "Please check:\n"
        "  - the OpenAI API key is valid\n"
        "  - the account has remaining quota\n"
        "  - the network connection is working"
    )

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(
            f"AI extraction failed: {reason}",
            f"AI extraction failed: {reason}\n\n{self.CHECKLIST}",
        )


class PipelineError(CatalogDrafterError):
    """A pipeline phase failed; no draft was created"""

    def __init__(self, phase: str, cause: Exception):
        self.phase = phase
        self.cause = cause
        detail = getattr(cause, "user_message", None) or str(cause)
        super().__init__(
            f"Draft pipeline failed during '{phase}': {cause}",
            f"Draft creation stopped during {phase}.\n\n{detail}",
        )


class PipelineCancelled(CatalogDrafterError):
    """The caller cancelled the pipeline"""

    def __init__(self, phase: str):
        self.phase = phase
        super().__init__(
            f"Draft pipeline cancelled before '{phase}'",
            "Extraction was cancelled. Nothing was saved.",
        )


class DraftStateError(CatalogDrafterError):
    """A draft action is not allowed in the draft's current status"""


class DraftValidationError(CatalogDrafterError):
    """Review input is incomplete (missing title, price or category)"""
