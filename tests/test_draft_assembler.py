from decimal import Decimal

import pytest

from conftest import PRODUCT_PAGE, VALID_REPLY, FakeLLM, FakeResponse, FakeSession

from catalog_drafter.core.category_matcher import CategoryMatcher
from catalog_drafter.core.draft_assembler import (
    CONVERSATIONS_COLLECTION,
    DRAFTS_COLLECTION,
    DraftAssembler,
    quality_score,
)
from catalog_drafter.core.extraction_client import ExtractionClient
from catalog_drafter.core.page_fetcher import PageFetcher
from catalog_drafter.exceptions import PipelineCancelled, PipelineError
from catalog_drafter.integrations.document_store import InMemoryDocumentStore
from catalog_drafter.integrations.settings import SettingsRepository, UsageTracker
from catalog_drafter.models.product import DraftRequest, DraftStatus
from catalog_drafter.models.settings import AISettings
from catalog_drafter.utils.progress import CancellationToken, ProgressTracker

URL = "https://shop.example.com/products/aurora-panel"


class FakeImageProcessor:
    def process_images(self, urls, progress=None):
        stored = [
            type("Stored", (), {"storage_url": f"file:///images/{i}.jpg"})()
            for i, _ in enumerate(urls[1:], 1)
        ]
        warnings = [f"Image could not be copied and was skipped: {urls[0]} (HTTP 404)"]
        return stored, warnings


class FailingDraftStore(InMemoryDocumentStore):
    def __init__(self, failing=DRAFTS_COLLECTION):
        super().__init__()
        self.failing = failing

    def set(self, collection, doc_id, data):
        if collection == self.failing:
            raise OSError("disk full")
        super().set(collection, doc_id, data)


def make_assembler(config, store, llm, retry, clock, image_processor=None):
    fetcher = PageFetcher(config, session=FakeSession(lambda url: FakeResponse(200, PRODUCT_PAGE)))
    client = ExtractionClient(config, llm=llm, fetcher=fetcher, retry_policy=retry)
    return DraftAssembler(
        config,
        store,
        client,
        category_matcher=CategoryMatcher(store),
        image_processor=image_processor,
        settings_repo=SettingsRepository(store, config),
        usage_tracker=UsageTracker(store, clock=clock),
        clock=clock,
    )


def test_draft_is_stored_for_review_without_price(config, store, no_sleep_retry, fixed_clock):
    assembler = make_assembler(config, store, FakeLLM(VALID_REPLY), no_sleep_retry, fixed_clock)
    progress = ProgressTracker()

    draft = assembler.assemble(DraftRequest(admin_id="alice", url=URL), progress=progress)

    assert draft.status == DraftStatus.REVIEW_REQUIRED
    assert draft.product.name == "Aurora 20W LED Panel"
    assert draft.product.price is None
    assert draft.product.currency == "INR"
    assert draft.product.images == ["https://cdn.example.com/p/panel-front.jpg"]
    assert draft.task_id == "task_" + str(int(fixed_clock().timestamp() * 1000))

    # The page price is kept for reference only
    source_price = draft.ai_metadata.source_price
    assert source_price.original_currency == "USD"
    assert source_price.target_price == 1669

    assert draft.suggested_category.suggested_name == "LED Panels"
    assert draft.suggested_category.should_create is True
    assert draft.ai_metadata.quality_score == 95
    assert draft.ai_metadata.extraction_method == "html"
    assert draft.ai_metadata.source_url == URL

    assert store.get(DRAFTS_COLLECTION, draft.id)["status"] == "review_required"
    assert len(store.all(CONVERSATIONS_COLLECTION)) == 1
    usage = store.get("aiUsage", "alice_2024-03")
    assert usage["total_requests"] == 1
    assert usage["total_tokens"] == 1500
    assert Decimal(usage["total_cost"]) == Decimal("0.0075")

    assert progress.phases("complete") == [
        "fetching",
        "extracting",
        "image-selection",
        "categorizing",
        "drafted",
    ]


def test_configured_brand_is_rewritten_before_categorizing(config, store, no_sleep_retry, fixed_clock):
    config.update("branding.brand_name", "FlySpark")
    assembler = make_assembler(config, store, FakeLLM(VALID_REPLY), no_sleep_retry, fixed_clock)
    progress = ProgressTracker()

    draft = assembler.assemble(DraftRequest(admin_id="alice", url=URL), progress=progress)

    assert draft.product.name == "FlySpark 20W LED Panel"
    assert draft.product.specs["Brand"] == "FlySpark"
    assert draft.product.sku == "FS-LED-20W-V1"
    assert draft.ai_metadata.original_brand == "Aurora"
    assert draft.ai_metadata.rewrite_log[0] == "Detected brands: Aurora"
    assert progress.phases("complete")[:3] == ["fetching", "extracting", "rewriting"]


def test_admin_settings_shape_the_request(config, store, no_sleep_retry, fixed_clock):
    SettingsRepository(store, config).save(
        AISettings(id="alice", model="gpt-4o-mini", custom_instructions=["Use metric units"])
    )
    llm = FakeLLM(VALID_REPLY)
    assembler = make_assembler(config, store, llm, no_sleep_retry, fixed_clock)

    draft = assembler.assemble(
        DraftRequest(admin_id="alice", text="Aurora panel", instructions=["Mention warranty"])
    )

    assert llm.calls[0]["model"] == "gpt-4o-mini"
    system_prompt = llm.calls[0]["messages"][0]["content"]
    assert "1. Use metric units\n2. Mention warranty" in system_prompt
    assert draft.ai_metadata.model == "gpt-4o-mini"


def test_image_selector_and_processor(config, store, no_sleep_retry, fixed_clock):
    assembler = make_assembler(
        config,
        store,
        FakeLLM(VALID_REPLY),
        no_sleep_retry,
        fixed_clock,
        image_processor=FakeImageProcessor(),
    )
    request = DraftRequest(
        admin_id="alice",
        url=URL,
        image_urls=["https://cdn.example.com/upload/1.jpg", "https://cdn.example.com/p/panel-front.jpg"],
    )
    offered = []

    def selector(candidates):
        offered.extend(candidates)
        return candidates[:2]

    draft = assembler.assemble(request, image_selector=selector)

    assert offered == [
        "https://cdn.example.com/upload/1.jpg",
        "https://cdn.example.com/p/panel-front.jpg",
    ]
    assert draft.product.images == ["file:///images/1.jpg"]
    assert draft.ai_metadata.quality_score == 90
    assert any("could not be copied" in w for w in draft.ai_metadata.warnings)


def test_extraction_failure_reports_phase(config, store, no_sleep_retry, fixed_clock):
    assembler = make_assembler(config, store, FakeLLM("not json"), no_sleep_retry, fixed_clock)
    progress = ProgressTracker()

    with pytest.raises(PipelineError) as excinfo:
        assembler.assemble(DraftRequest(admin_id="alice", url=URL), progress=progress)

    assert excinfo.value.phase == "extracting"
    assert progress.events[-1].status == "error"
    assert store.all(DRAFTS_COLLECTION) == []


def test_store_failure_reports_drafted_phase(config, no_sleep_retry, fixed_clock):
    store = FailingDraftStore()
    assembler = make_assembler(config, store, FakeLLM(VALID_REPLY), no_sleep_retry, fixed_clock)

    with pytest.raises(PipelineError) as excinfo:
        assembler.assemble(DraftRequest(admin_id="alice", text="Aurora panel"))

    assert excinfo.value.phase == "drafted"
    assert store.all(CONVERSATIONS_COLLECTION) == []


@pytest.mark.parametrize("collection", [CONVERSATIONS_COLLECTION, "aiUsage"])
def test_bookkeeping_failure_keeps_the_draft(config, no_sleep_retry, fixed_clock, collection):
    store = FailingDraftStore(failing=collection)
    assembler = make_assembler(config, store, FakeLLM(VALID_REPLY), no_sleep_retry, fixed_clock)
    progress = ProgressTracker()

    draft = assembler.assemble(DraftRequest(admin_id="alice", text="Aurora panel"), progress=progress)

    assert store.get(DRAFTS_COLLECTION, draft.id)["status"] == "review_required"
    assert store.all(collection) == []
    assert progress.phases("complete")[-1] == "drafted"


def test_cancelled_pipeline_stores_nothing(config, store, no_sleep_retry, fixed_clock):
    llm = FakeLLM(VALID_REPLY)
    assembler = make_assembler(config, store, llm, no_sleep_retry, fixed_clock)
    token = CancellationToken()
    token.cancel()

    with pytest.raises(PipelineCancelled) as excinfo:
        assembler.assemble(DraftRequest(admin_id="alice", url=URL), cancel_token=token)

    assert excinfo.value.phase == "fetching"
    assert llm.calls == []
    assert store.all(DRAFTS_COLLECTION) == []


def test_quality_score_bounds():
    assert quality_score([]) == 95
    assert quality_score(["a"]) == 90
    assert quality_score(["a"] * 3) == 70
    assert quality_score(["a"] * 10) == 70
