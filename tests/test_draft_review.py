import pytest

from catalog_drafter.core.category_matcher import CATEGORIES_COLLECTION
from catalog_drafter.core.draft_assembler import DRAFTS_COLLECTION
from catalog_drafter.core.draft_review import PRODUCTS_COLLECTION, DraftReviewService
from catalog_drafter.exceptions import DraftStateError, DraftValidationError
from catalog_drafter.integrations.document_store import DocumentNotFoundError
from catalog_drafter.models.category import CategorySuggestion
from catalog_drafter.models.product import AIMetadata, DraftProduct, DraftStatus, ProductDraft


def save_draft(store, draft_id="d1", category_id=None, suggested_name="LED Panels"):
    draft = ProductDraft(
        id=draft_id,
        admin_id="alice",
        task_id="task_1",
        product=DraftProduct(
            name="Aurora 20W LED Panel",
            description="<p>Slim panel</p>",
            images=["https://cdn.example.com/p/panel-front.jpg"],
            tags=["led", "panel"],
        ),
        suggested_category=CategorySuggestion(
            suggested_name=suggested_name,
            category_id=category_id,
            confidence=0.5,
            should_create=category_id is None,
        ),
        ai_metadata=AIMetadata(model="gpt-4o", extraction_method="html", quality_score=95),
    )
    store.set(DRAFTS_COLLECTION, draft.id, draft.model_dump(mode="json"))
    return draft


def test_edit_records_each_changed_field(store, fixed_clock):
    save_draft(store)
    review = DraftReviewService(store, clock=fixed_clock)

    draft = review.edit("d1", "bob", {"name": "Aurora Panel 20W", "tags": ["led", "panel"]})

    assert draft.product.name == "Aurora Panel 20W"
    assert len(draft.admin_changes) == 1
    change = draft.admin_changes[0]
    assert (change.field, change.old_value, change.new_value) == (
        "name",
        "Aurora 20W LED Panel",
        "Aurora Panel 20W",
    )
    assert change.admin_id == "bob"
    assert review.get("d1").product.name == "Aurora Panel 20W"


def test_edit_rejects_unknown_fields(store):
    save_draft(store)

    with pytest.raises(DraftValidationError):
        DraftReviewService(store).edit("d1", "bob", {"price": 10})


def test_edit_rejects_invalid_values(store):
    save_draft(store)
    review = DraftReviewService(store)

    with pytest.raises(DraftValidationError, match="stock_status"):
        review.edit("d1", "bob", {"stock_status": "bogus"})

    draft = review.get("d1")
    assert draft.product.stock_status.value == "in-stock"
    assert draft.admin_changes == []


def test_publish_creates_live_product(store, fixed_clock):
    save_draft(store, category_id="cat-led")
    review = DraftReviewService(store, clock=fixed_clock)

    product = review.publish("d1", "bob", 1499)

    assert product.slug == "aurora-20w-led-panel"
    assert product.price == 1499.0
    assert product.category_id == "cat-led"
    assert product.source_draft_id == "d1"
    assert store.get(PRODUCTS_COLLECTION, product.id)["name"] == "Aurora 20W LED Panel"

    draft = review.get("d1")
    assert draft.status == DraftStatus.PUBLISHED
    assert draft.published_product_id == product.id
    assert draft.published_at == fixed_clock()
    assert draft.product.price == 1499.0


def test_publish_validation(store):
    save_draft(store)
    review = DraftReviewService(store)

    with pytest.raises(DraftValidationError, match="valid price"):
        review.publish("d1", "bob", 0, category_id="cat-led")
    with pytest.raises(DraftValidationError, match="category"):
        review.publish("d1", "bob", 1499)

    review.edit("d1", "bob", {"name": "   "})
    with pytest.raises(DraftValidationError, match="title"):
        review.publish("d1", "bob", 1499, category_id="cat-led")

    assert store.all(PRODUCTS_COLLECTION) == []


def test_terminal_drafts_cannot_change(store):
    save_draft(store, category_id="cat-led")
    save_draft(store, draft_id="d2")
    review = DraftReviewService(store)

    review.publish("d1", "bob", 1499)
    review.discard("d2", "bob")

    with pytest.raises(DraftStateError):
        review.publish("d1", "bob", 1599)
    with pytest.raises(DraftStateError):
        review.edit("d2", "bob", {"name": "Again"})
    assert review.get("d2").status == DraftStatus.DISCARDED


def test_approve_category_creates_then_reuses(store):
    save_draft(store)
    save_draft(store, draft_id="d2")
    review = DraftReviewService(store)

    created = review.approve_category("d1", "bob")
    reused = review.approve_category("d2", "bob", name="led panels")

    assert created.name == "LED Panels"
    assert created.slug == "led-panels"
    assert reused.id == created.id
    assert len(store.all(CATEGORIES_COLLECTION)) == 1
    assert review.get("d1").suggested_category.category_id == created.id


def test_approve_category_validates_name(store):
    save_draft(store, suggested_name="Lights/Lamps")

    with pytest.raises(DraftValidationError):
        DraftReviewService(store).approve_category("d1", "bob")


def test_missing_draft(store):
    with pytest.raises(DocumentNotFoundError):
        DraftReviewService(store).get("nope")


def test_list_drafts_by_status(store):
    save_draft(store)
    save_draft(store, draft_id="d2")
    review = DraftReviewService(store)
    review.discard("d2", "bob")

    assert [d.id for d in review.list_drafts(DraftStatus.REVIEW_REQUIRED)] == ["d1"]
    assert len(review.list_drafts()) == 2
