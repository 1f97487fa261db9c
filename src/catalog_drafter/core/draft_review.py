import logging
import uuid
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from pydantic import ValidationError

from ..exceptions import DraftStateError, DraftValidationError
from ..integrations.document_store import DocumentNotFoundError
from ..models.category import Category
from ..models.product import AdminChange, DraftStatus, LiveProduct, ProductDraft
from ..utils.text_processing import TextProcessor
from .category_matcher import CATEGORIES_COLLECTION, validate_category_name
from .draft_assembler import DRAFTS_COLLECTION

logger = logging.getLogger(__name__)

PRODUCTS_COLLECTION = "products"

EDITABLE_FIELDS = {
    "name",
    "description",
    "short_description",
    "images",
    "specs",
    "tags",
    "stock_status",
    "video_url",
    "sku",
}


class DraftReviewService:
    """Admin review actions on drafts; the only place a draft's status changes"""

    def __init__(self, store, clock: Callable[[], datetime] = datetime.now):
        self.store = store
        self.clock = clock
        self.text_processor = TextProcessor()

    def get(self, draft_id: str) -> ProductDraft:
        doc = self.store.get(DRAFTS_COLLECTION, draft_id)
        if doc is None:
            raise DocumentNotFoundError(f"{DRAFTS_COLLECTION}/{draft_id}")
        return ProductDraft.model_validate(doc)

    def list_drafts(self, status: Optional[DraftStatus] = None) -> List[ProductDraft]:
        docs = self.store.all(DRAFTS_COLLECTION)
        drafts = [ProductDraft.model_validate(doc) for doc in docs]
        if status is not None:
            drafts = [d for d in drafts if d.status == status]
        return sorted(drafts, key=lambda d: d.created_at, reverse=True)

    def edit(self, draft_id: str, admin_id: str, changes: Dict[str, Any]) -> ProductDraft:
        """
        Apply admin edits to a draft's product fields

        Args:
            draft_id: Draft to edit
            admin_id: Admin making the change
            changes: Product field name to new value

        Returns:
            The updated draft, still awaiting review
        """
        draft = self._reviewable(draft_id)

        unknown = set(changes) - EDITABLE_FIELDS
        if unknown:
            raise DraftValidationError(f"Fields cannot be edited: {', '.join(sorted(unknown))}")

        current = draft.product.model_dump(mode="json")
        try:
            updated = draft.product.model_validate({**current, **changes})
        except ValidationError as e:
            fields = ", ".join(str(error["loc"][0]) for error in e.errors() if error["loc"])
            raise DraftValidationError(
                f"Invalid value for {fields or 'draft'}: {e}",
                f"Please check the value entered for {fields or 'the draft'}.",
            ) from e
        updated_values = updated.model_dump(mode="json")

        now = self.clock()
        for field in sorted(changes):
            if current[field] != updated_values[field]:
                draft.admin_changes.append(
                    AdminChange(
                        field=field,
                        old_value=current[field],
                        new_value=updated_values[field],
                        admin_id=admin_id,
                        timestamp=now,
                    )
                )

        draft.product = updated
        self._save(draft)
        logger.info(f"Draft {draft_id} edited by {admin_id}: {', '.join(sorted(changes))}")
        return draft

    def approve_category(self, draft_id: str, admin_id: str, name: Optional[str] = None) -> Category:
        """Create the suggested (or given) category and attach it to the draft"""
        draft = self._reviewable(draft_id)
        name = (name or draft.suggested_category.suggested_name).strip()

        valid, error = validate_category_name(name)
        if not valid:
            raise DraftValidationError(error)

        slug = self.text_processor.slugify(name)
        existing = self.store.query(CATEGORIES_COLLECTION, "slug", slug)
        if existing:
            category = Category.model_validate(existing[0])
        else:
            category = Category(id=uuid.uuid4().hex, name=name, slug=slug)
            self.store.set(CATEGORIES_COLLECTION, category.id, category.model_dump(mode="json"))
            logger.info(f"Created category '{name}' for draft {draft_id}")

        draft.suggested_category = draft.suggested_category.model_copy(
            update={"category_id": category.id, "suggested_name": category.name, "should_create": False}
        )
        draft.admin_changes.append(
            AdminChange(
                field="category",
                old_value=None,
                new_value=category.id,
                admin_id=admin_id,
                timestamp=self.clock(),
            )
        )
        self._save(draft)
        return category

    def publish(
        self,
        draft_id: str,
        admin_id: str,
        price: float,
        category_id: Optional[str] = None,
    ) -> LiveProduct:
        """
        Publish a draft as a live product

        Args:
            draft_id: Draft to publish
            admin_id: Approving admin
            price: Price confirmed by the admin, must be positive
            category_id: Category to use instead of the suggested one

        Returns:
            The created LiveProduct
        """
        draft = self._reviewable(draft_id)
        title = draft.product.name.strip()

        if not title:
            raise DraftValidationError("Product title is required")
        if price is None or price <= 0:
            raise DraftValidationError("Please enter a valid price")

        category_id = category_id or draft.suggested_category.category_id
        if not category_id:
            raise DraftValidationError("Please select or create a category first")

        product = LiveProduct(
            id=uuid.uuid4().hex,
            name=title,
            slug=self.text_processor.slugify(title),
            category_id=category_id,
            tags=draft.product.tags,
            short_description=draft.product.short_description,
            description=draft.product.description,
            specs=draft.product.specs,
            product_type=draft.product.product_type,
            price=float(price),
            images=draft.product.images,
            stock_status=draft.product.stock_status,
            video_url=draft.product.video_url,
            sku=draft.product.sku,
            source_draft_id=draft.id,
            created_at=self.clock(),
        )
        self.store.set(PRODUCTS_COLLECTION, product.id, product.model_dump(mode="json"))

        draft.product.price = float(price)
        draft.status = DraftStatus.PUBLISHED
        draft.published_at = self.clock()
        draft.published_product_id = product.id
        self._save(draft)

        logger.info(f"Draft {draft_id} published as product {product.id} by {admin_id}")
        return product

    def discard(self, draft_id: str, admin_id: str) -> ProductDraft:
        draft = self._reviewable(draft_id)
        draft.status = DraftStatus.DISCARDED
        self._save(draft)
        logger.info(f"Draft {draft_id} discarded by {admin_id}")
        return draft

    def _reviewable(self, draft_id: str) -> ProductDraft:
        draft = self.get(draft_id)
        if draft.status != DraftStatus.REVIEW_REQUIRED:
            raise DraftStateError(
                f"Draft {draft_id} is already {draft.status.value}",
                f"This draft was already {draft.status.value} and can no longer be changed.",
            )
        return draft

    def _save(self, draft: ProductDraft) -> None:
        self.store.set(DRAFTS_COLLECTION, draft.id, draft.model_dump(mode="json"))
