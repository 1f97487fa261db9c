import pytest
import yaml

from catalog_drafter.utils.config import ConfigManager
from catalog_drafter.utils.progress import CancellationToken, ProgressTracker
from catalog_drafter.utils.retry import RetryPolicy, is_retryable
from catalog_drafter.utils.text_processing import TextProcessor


def test_config_defaults_without_file(tmp_path):
    config = ConfigManager(str(tmp_path / "missing.yaml"))

    assert config.get("extraction.default_model") == "gpt-4o"
    assert config.get("categories.confidence_threshold") == 0.7
    assert config.get("currency.fallback_rate") == 83.5
    assert len(config.get("fetching.proxies")) == 5
    assert config.get("does.not.exist", "fallback") == "fallback"


def test_config_file_overrides_merge_with_defaults(tmp_path):
    path = tmp_path / "settings.yaml"
    path.write_text(yaml.safe_dump({"extraction": {"default_model": "gpt-4o-mini"}}))

    config = ConfigManager(str(path))

    assert config.get("extraction.default_model") == "gpt-4o-mini"
    assert config.get("extraction.max_tokens") == 4000


def test_config_update_and_save_round_trip(tmp_path):
    path = tmp_path / "nested" / "settings.yaml"
    config = ConfigManager(str(path))
    config.update("currency.fallback_rate", 82.0)
    config.update("storage.bucket.name", "catalog")
    config.save_config()

    reloaded = ConfigManager(str(path))
    assert reloaded.get("currency.fallback_rate") == 82.0
    assert reloaded.get("storage.bucket.name") == "catalog"


def test_api_key_from_environment(tmp_path, monkeypatch):
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
    config = ConfigManager(str(tmp_path / "missing.yaml"))

    assert config.get_api_key("openai") == "sk-test"
    assert config.get_api_key("unknown") is None


def test_retry_backs_off_then_raises():
    delays = []
    policy = RetryPolicy(max_attempts=3, base_delay=0.5, sleep=delays.append)
    calls = []

    def flaky():
        calls.append(1)
        raise ConnectionError("reset")

    with pytest.raises(ConnectionError):
        policy.call(flaky, label="flaky")

    assert len(calls) == 3
    assert delays == [0.5, 1.0]


def test_retry_returns_first_success():
    policy = RetryPolicy(sleep=lambda _: None)
    results = iter([ValueError("once"), "ok"])

    def operation():
        value = next(results)
        if isinstance(value, Exception):
            raise value
        return value

    assert policy.call(operation) == "ok"


def test_permission_errors_are_not_retried():
    delays = []
    policy = RetryPolicy(sleep=delays.append)
    calls = []

    def denied():
        calls.append(1)
        raise PermissionError("forbidden")

    with pytest.raises(PermissionError):
        policy.call(denied)

    assert calls == [1]
    assert delays == []
    assert not is_retryable(PermissionError())
    assert is_retryable(TimeoutError())


def test_retry_policy_from_config(config):
    config.update("retry.max_attempts", 5)
    policy = RetryPolicy.from_config(config)

    assert policy.max_attempts == 5
    assert policy.delay_for(3) == 8.0


def test_progress_tracker_callback_and_notices():
    seen = []
    tracker = ProgressTracker(seen.append)

    tracker.update("fetching", "active", "https://shop.example.com")
    tracker.update("fetching", "complete")

    assert [e.status for e in seen] == ["active", "complete"]
    assert tracker.phases("complete") == ["fetching"]
    assert tracker.notify_once("openai-permission", "Check the API key") is True
    assert tracker.notify_once("openai-permission", "Check the API key") is False
    assert tracker.notices == ["Check the API key"]


def test_cancellation_token():
    token = CancellationToken()
    assert token.cancelled is False

    token.cancel()
    assert token.cancelled is True


def test_short_keywords_match_whole_tokens_only():
    processor = TextProcessor()

    assert processor.contains_keyword("top-ad slot", "ad")
    assert not processor.contains_keyword("site-header", "ad")
    assert processor.contains_keyword("brand-logo-small", "logo")
    assert processor.contains_keywords("related products", ["banner", "related"])
    assert processor.first_keyword("product zoom", ["thumb", "zoom"]) == "zoom"


def test_text_helpers():
    processor = TextProcessor()

    assert processor.clean_text("<p>Bright\n  LED</p>") == "Bright LED"
    assert processor.slugify("Aurora 20W LED Panel!") == "aurora-20w-led-panel"
    assert processor.truncate("abcdef", 3, "...") == "abc..."
    assert processor.truncate("abc", 3, "...") == "abc"
    assert processor.text_similarity("led panel", "led panel") == 1.0
    assert processor.text_similarity("led panel", "") == 0.0
