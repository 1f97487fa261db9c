from decimal import Decimal

import pytest

from conftest import PRODUCT_PAGE, VALID_REPLY, FakeLLM, FakeResponse, FakeSession

from catalog_drafter.core.extraction_client import ExtractionClient, parse_model_json
from catalog_drafter.core.page_fetcher import PageFetcher
from catalog_drafter.exceptions import ExtractionError, PipelineCancelled
from catalog_drafter.models.product import StockStatus
from catalog_drafter.utils.progress import CancellationToken, ProgressTracker

URL = "https://shop.example.com/products/aurora-panel"
IMAGES = [f"https://cdn.example.com/upload/{i}.jpg" for i in range(1, 7)]


def make_client(config, llm, retry, handler=None):
    handler = handler or (lambda url: FakeResponse(200, PRODUCT_PAGE))
    fetcher = PageFetcher(config, session=FakeSession(handler))
    return ExtractionClient(config, llm=llm, fetcher=fetcher, retry_policy=retry)


def test_html_path_extracts_with_page_metadata(config, no_sleep_retry):
    llm = FakeLLM(VALID_REPLY)
    progress = ProgressTracker()

    result = make_client(config, llm, no_sleep_retry).extract(url=URL, progress=progress)

    assert result.title == "Aurora 20W LED Panel"
    assert result.extraction_method == "html"
    assert result.model == "gpt-4o"
    assert result.tokens_used == 1500
    assert result.cost == Decimal("0.0075")
    assert result.page_metadata["price"] == "19.99"
    assert result.page_metadata["currency"] == "USD"
    assert result.warnings == []
    assert [(e.phase, e.status) for e in progress.events] == [
        ("fetching", "active"),
        ("fetching", "complete"),
        ("extracting", "active"),
        ("extracting", "complete"),
    ]

    user_prompt = llm.calls[0]["messages"][1]["content"]
    assert "https://cdn.example.com/p/panel-front.jpg" in user_prompt
    assert "window.dataLayer" not in user_prompt


def test_missing_optional_fields_get_defaults(config, no_sleep_retry):
    reply = {k: v for k, v in VALID_REPLY.items() if k not in ("tags", "videoUrl")}

    result = make_client(config, FakeLLM(reply), no_sleep_retry).extract(text="20W LED panel")

    assert result.tags == []
    assert result.video_url is None
    assert result.stock_status == StockStatus.IN_STOCK
    assert result.extraction_method == "text"


@pytest.mark.parametrize("confidence", ["NaN", '"nan"', "Infinity"])
def test_non_finite_confidence_falls_back(config, no_sleep_retry, confidence):
    # json.loads accepts bare NaN and Infinity
    reply = '{"title": "Lamp", "confidence": %s}' % confidence

    result = make_client(config, FakeLLM(reply), no_sleep_retry).extract(text="Desk lamp")

    assert result.title == "Lamp"
    assert result.confidence == 0.5


def test_reply_without_images_warns(config, no_sleep_retry):
    reply = dict(VALID_REPLY, imageUrls=[])

    result = make_client(config, FakeLLM(reply), no_sleep_retry).extract(text="20W LED panel")

    assert "No product images found; upload images before publishing" in result.warnings


def test_deprecated_model_is_replaced(config, no_sleep_retry):
    llm = FakeLLM(VALID_REPLY)

    result = make_client(config, llm, no_sleep_retry).extract(
        text="20W LED panel", model="gpt-4-vision-preview"
    )

    assert llm.calls[0]["model"] == "gpt-4o"
    assert result.model == "gpt-4o"
    assert "Model 'gpt-4-vision-preview' is deprecated; used 'gpt-4o' instead" in result.warnings


def test_unreachable_page_falls_back_to_images(config, no_sleep_retry):
    llm = FakeLLM(VALID_REPLY)
    progress = ProgressTracker()
    client = make_client(
        config, llm, no_sleep_retry, handler=lambda url: FakeResponse(403, "Forbidden")
    )

    result = client.extract(url=URL, image_urls=IMAGES[:2], progress=progress)

    assert result.extraction_method == "vision"
    assert any("Could not read the product page (blocked)" in w for w in result.warnings)
    assert ("fetching", "error") in [(e.phase, e.status) for e in progress.events]
    user_content = llm.calls[0]["messages"][1]["content"]
    assert [part["type"] for part in user_content] == ["text", "image_url", "image_url"]


def test_sparse_page_falls_back_to_text(config, no_sleep_retry):
    sparse = "<html><head><script>" + "x" * 200 + "</script></head><body></body></html>"
    client = make_client(
        config, FakeLLM(VALID_REPLY), no_sleep_retry, handler=lambda url: FakeResponse(200, sparse)
    )

    result = client.extract(url=URL, text="Aurora 20W LED panel")

    assert result.extraction_method == "text"
    assert any("(sparse-content)" in w for w in result.warnings)


def test_vision_requests_cap_images(config, no_sleep_retry):
    llm = FakeLLM(VALID_REPLY)

    result = make_client(config, llm, no_sleep_retry).extract(image_urls=IMAGES, model="gpt-4o")

    content = llm.calls[0]["messages"][1]["content"]
    image_parts = [part for part in content if part["type"] == "image_url"]
    assert len(image_parts) == 4
    assert image_parts[0]["image_url"] == {"url": IMAGES[0], "detail": "high"}
    assert "Only the first 4 of 6 images were analyzed" in result.warnings


def test_text_only_model_gets_image_urls_as_text(config, no_sleep_retry):
    llm = FakeLLM(VALID_REPLY)

    result = make_client(config, llm, no_sleep_retry).extract(
        image_urls=IMAGES[:1], model="gpt-3.5-turbo"
    )

    content = llm.calls[0]["messages"][1]["content"]
    assert isinstance(content, str)
    assert f"- {IMAGES[0]}" in content
    assert result.extraction_method == "text"
    assert "Model 'gpt-3.5-turbo' cannot read images; image URLs were sent as text only" in result.warnings


def test_invalid_json_reply_fails(config, no_sleep_retry):
    client = make_client(config, FakeLLM("Sorry, I cannot help with that."), no_sleep_retry)

    with pytest.raises(ExtractionError) as excinfo:
        client.extract(text="20W LED panel")

    assert "invalid JSON" in str(excinfo.value)


def test_transient_errors_are_retried(config, no_sleep_retry):
    llm = FakeLLM(RuntimeError("connection reset"), VALID_REPLY)

    result = make_client(config, llm, no_sleep_retry).extract(text="20W LED panel")

    assert result.title == "Aurora 20W LED Panel"
    assert len(llm.calls) == 2
    assert no_sleep_retry.delays == [1.0]


def test_permission_errors_fail_fast_and_notify_once(config, no_sleep_retry):
    llm = FakeLLM(PermissionError("invalid api key"))
    client = make_client(config, llm, no_sleep_retry)
    progress = ProgressTracker()

    for _ in range(2):
        with pytest.raises(ExtractionError):
            client.extract(text="20W LED panel", progress=progress)

    assert len(llm.calls) == 2
    assert no_sleep_retry.delays == []
    assert len(progress.notices) == 1


def test_cancel_after_fetch_stops_before_model_call(config, no_sleep_retry):
    llm = FakeLLM(VALID_REPLY)
    token = CancellationToken()
    token.cancel()

    with pytest.raises(PipelineCancelled) as excinfo:
        make_client(config, llm, no_sleep_retry).extract(url=URL, cancel_token=token)

    assert excinfo.value.phase == "extracting"
    assert llm.calls == []


def test_nothing_to_extract(config, no_sleep_retry):
    with pytest.raises(ExtractionError):
        make_client(config, FakeLLM(VALID_REPLY), no_sleep_retry).extract(text="   ")


def test_calculate_cost(config, no_sleep_retry):
    client = make_client(config, FakeLLM(VALID_REPLY), no_sleep_retry)

    assert client.calculate_cost("gpt-4o-mini", 1_000_000, 1_000_000) == Decimal("0.75")
    # Unknown models use the gpt-4-turbo tier
    assert client.calculate_cost("my-custom-model", 1_000_000, 0) == Decimal("10")


def test_parse_model_json():
    assert parse_model_json('```json\n{"title": "Lamp"}\n```') == {"title": "Lamp"}

    with pytest.raises(ExtractionError):
        parse_model_json("[1, 2, 3]")
    with pytest.raises(ExtractionError):
        parse_model_json("")
