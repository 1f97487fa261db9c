import logging
import uuid
from datetime import datetime
from enum import Enum
from typing import Callable, List, Optional

from ..exceptions import PipelineCancelled, PipelineError
from ..models.category import CategorySuggestion
from ..models.product import (
    AIMetadata,
    DraftProduct,
    DraftRequest,
    DraftStatus,
    PriceConversion,
    ProductDraft,
    ProductExtractionResult,
)
from ..models.settings import AISettings
from ..utils.config import ConfigManager
from ..utils.progress import CancellationToken, ProgressTracker
from .brand_rewriter import BrandRewrite, BrandRewriter
from .category_matcher import CategoryMatcher
from .currency_normalizer import CurrencyNormalizer
from .extraction_client import ExtractionClient

logger = logging.getLogger(__name__)

DRAFTS_COLLECTION = "productDrafts"
CONVERSATIONS_COLLECTION = "aiConversations"

ImageSelector = Callable[[List[str]], Optional[List[str]]]


class PipelinePhase(str, Enum):
    FETCHING = "fetching"
    EXTRACTING = "extracting"
    REWRITING = "rewriting"
    IMAGE_SELECTION = "image-selection"
    CATEGORIZING = "categorizing"
    DRAFTED = "drafted"


def quality_score(warnings: List[str]) -> int:
    """100 minus 10 per warning, kept within 70..95"""
    return max(70, min(95, round((1 - len(warnings) * 0.1) * 100)))


class DraftAssembler:
    """Runs the whole extraction pipeline and stores one reviewable draft"""

    def __init__(
        self,
        config_manager: Optional[ConfigManager],
        store,
        extraction_client: ExtractionClient,
        category_matcher: Optional[CategoryMatcher] = None,
        currency_normalizer: Optional[CurrencyNormalizer] = None,
        image_processor=None,
        settings_repo=None,
        usage_tracker=None,
        brand_rewriter: Optional[BrandRewriter] = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.config = config_manager or ConfigManager()
        self.store = store
        self.extraction_client = extraction_client
        self.category_matcher = category_matcher or CategoryMatcher(store)
        self.currency_normalizer = currency_normalizer or CurrencyNormalizer.from_config(self.config)
        self.image_processor = image_processor
        self.settings_repo = settings_repo
        self.usage_tracker = usage_tracker
        self.brand_rewriter = brand_rewriter or BrandRewriter.from_config(self.config)
        self.clock = clock

    def assemble(
        self,
        request: DraftRequest,
        progress: Optional[ProgressTracker] = None,
        cancel_token: Optional[CancellationToken] = None,
        image_selector: Optional[ImageSelector] = None,
    ) -> ProductDraft:
        """
        Create a product draft from a URL, images and/or text

        Args:
            request: What the admin handed in
            progress: Optional tracker receiving a checkpoint per phase
            cancel_token: Optional token checked at every phase boundary
            image_selector: Optional callback letting the admin pick images

        Returns:
            The stored ProductDraft, always with an empty price

        Raises:
            PipelineError: if any phase failed; nothing is stored in that case
            PipelineCancelled: if the token was cancelled
        """
        progress = progress or ProgressTracker()
        task_id = f"task_{int(self.clock().timestamp() * 1000)}"
        first_phase = PipelinePhase.FETCHING if request.url else PipelinePhase.EXTRACTING

        self._checkpoint(first_phase, cancel_token)
        settings = self._load_settings(request.admin_id)

        try:
            result = self.extraction_client.extract(
                url=request.url,
                image_urls=request.image_urls,
                text=request.text,
                instructions=list(settings.custom_instructions) + list(request.instructions),
                model=settings.model,
                max_tokens=settings.max_tokens_per_request,
                progress=progress,
                cancel_token=cancel_token,
            )
        except PipelineCancelled:
            raise
        except Exception as e:
            raise self._failure(self._current_phase(progress, first_phase), e, progress)

        rewrite = None
        if self.brand_rewriter.enabled:
            self._checkpoint(PipelinePhase.REWRITING, cancel_token)
            progress.update(
                PipelinePhase.REWRITING.value, "active", f"Rewriting branding for {self.brand_rewriter.brand_name}"
            )
            try:
                rewrite = self.brand_rewriter.rewrite(result)
            except Exception as e:
                raise self._failure(PipelinePhase.REWRITING, e, progress)
            result = rewrite.result
            progress.update(PipelinePhase.REWRITING.value, "complete", f"SKU {rewrite.sku}")

        self._checkpoint(PipelinePhase.IMAGE_SELECTION, cancel_token)
        try:
            images, image_warnings = self._select_images(request, result, progress, image_selector)
        except Exception as e:
            raise self._failure(PipelinePhase.IMAGE_SELECTION, e, progress)

        self._checkpoint(PipelinePhase.CATEGORIZING, cancel_token)
        progress.update(PipelinePhase.CATEGORIZING.value, "active", "Analyzing category")
        suggestion = self.category_matcher.suggest(
            result.summary(), settings.category_confidence_threshold
        )
        source_price = self._source_price(result)
        progress.update(
            PipelinePhase.CATEGORIZING.value, "complete", f"Suggested: {suggestion.suggested_name}"
        )

        self._checkpoint(PipelinePhase.DRAFTED, cancel_token)
        warnings = result.warnings + image_warnings
        draft = self._build_draft(
            request, task_id, result, images, suggestion, source_price, warnings, rewrite
        )

        try:
            self.store.set(DRAFTS_COLLECTION, draft.id, draft.model_dump(mode="json"))
        except Exception as e:
            raise self._failure(PipelinePhase.DRAFTED, e, progress)

        self._record_usage(request, result, draft)
        progress.update(PipelinePhase.DRAFTED.value, "complete", f"Draft {draft.id} created")
        logger.info(
            f"Created draft {draft.id} '{draft.product.name}' "
            f"(quality {draft.ai_metadata.quality_score}, {len(warnings)} warnings)"
        )
        return draft

    def _checkpoint(self, phase: PipelinePhase, cancel_token: Optional[CancellationToken]) -> None:
        if cancel_token is not None and cancel_token.cancelled:
            logger.info(f"Pipeline cancelled before {phase.value}")
            raise PipelineCancelled(phase.value)

    def _load_settings(self, admin_id: str) -> AISettings:
        if self.settings_repo is None:
            return AISettings(
                id=admin_id,
                model=self.config.get("extraction.default_model", "gpt-4o"),
                max_tokens_per_request=self.config.get("extraction.max_tokens", 4000),
                category_confidence_threshold=self.config.get("categories.confidence_threshold", 0.7),
            )
        return self.settings_repo.get(admin_id)

    def _select_images(
        self,
        request: DraftRequest,
        result: ProductExtractionResult,
        progress: ProgressTracker,
        image_selector: Optional[ImageSelector],
    ):
        progress.update(PipelinePhase.IMAGE_SELECTION.value, "active", "Selecting product images")

        candidates: List[str] = []
        for url in list(request.image_urls) + list(result.image_urls):
            if url not in candidates:
                candidates.append(url)

        selected = candidates
        if image_selector is not None:
            chosen = image_selector(candidates)
            if chosen is not None:
                selected = list(chosen)

        warnings: List[str] = []
        if self.image_processor is not None and selected:
            stored, warnings = self.image_processor.process_images(selected, progress)
            selected = [image.storage_url for image in stored]

        progress.update(
            PipelinePhase.IMAGE_SELECTION.value, "complete", f"{len(selected)} images selected"
        )
        return selected, warnings

    def _source_price(self, result: ProductExtractionResult) -> Optional[PriceConversion]:
        """Page price converted for reference only; never becomes the draft price"""
        price = result.page_metadata.get("price")
        if not price:
            return None
        return self.currency_normalizer.convert(price, result.page_metadata.get("currency"))

    def _build_draft(
        self,
        request: DraftRequest,
        task_id: str,
        result: ProductExtractionResult,
        images: List[str],
        suggestion: CategorySuggestion,
        source_price: Optional[PriceConversion],
        warnings: List[str],
        rewrite: Optional[BrandRewrite] = None,
    ) -> ProductDraft:
        return ProductDraft(
            id=uuid.uuid4().hex,
            admin_id=request.admin_id,
            task_id=task_id,
            status=DraftStatus.REVIEW_REQUIRED,
            product=DraftProduct(
                name=result.title,
                description=result.description,
                short_description=result.short_description,
                images=images,
                specs=result.specifications,
                tags=result.tags,
                price=None,
                currency=self.currency_normalizer.target_currency,
                stock_status=result.stock_status,
                video_url=result.video_url,
                sku=rewrite.sku if rewrite else None,
            ),
            suggested_category=suggestion,
            ai_metadata=AIMetadata(
                source_url=request.url,
                model=result.model,
                extraction_method=result.extraction_method,
                quality_score=quality_score(warnings),
                warnings=warnings,
                tokens_used=result.tokens_used,
                cost=result.cost,
                source_price=source_price,
                original_brand=rewrite.original_brand if rewrite else None,
                rewrite_log=rewrite.log if rewrite else [],
            ),
            created_at=self.clock(),
        )

    def _record_usage(self, request: DraftRequest, result: ProductExtractionResult, draft: ProductDraft) -> None:
        """Usage and conversation logs are bookkeeping; the stored draft stands if they fail"""
        if self.usage_tracker is not None:
            try:
                self.usage_tracker.record(request.admin_id, result.model, result.tokens_used, result.cost)
            except Exception as e:
                logger.warning(f"Could not record AI usage for draft {draft.id}: {e}")

        try:
            self.store.add(
                CONVERSATIONS_COLLECTION,
                {
                    "admin_id": request.admin_id,
                    "task_id": draft.task_id,
                    "draft_id": draft.id,
                    "request": request.model_dump(mode="json"),
                    "summary": f"Extracted '{result.title}' with {result.model}",
                    "created_at": draft.created_at.isoformat(),
                },
            )
        except Exception as e:
            logger.warning(f"Could not log the AI conversation for draft {draft.id}: {e}")

    def _current_phase(self, progress: ProgressTracker, default: PipelinePhase) -> str:
        return progress.events[-1].phase if progress.events else default.value

    def _failure(self, phase, error: Exception, progress: ProgressTracker) -> PipelineError:
        phase = phase.value if isinstance(phase, PipelinePhase) else phase
        logger.error(f"Draft pipeline failed during {phase}: {error}")
        progress.update(phase, "error", str(error))
        return PipelineError(phase, error)
