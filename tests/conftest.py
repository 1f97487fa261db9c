# conftest.py
# Shared fakes for the draft pipeline: an HTTP session that serves canned
# responses, a chat model that replays canned JSON, and a config that only
# uses built-in defaults.

import json
from datetime import datetime

import pytest
import requests

from catalog_drafter.integrations.document_store import InMemoryDocumentStore
from catalog_drafter.integrations.openai_client import CompletionReply
from catalog_drafter.utils.config import ConfigManager
from catalog_drafter.utils.retry import RetryPolicy


class FakeResponse:
    def __init__(self, status_code=200, text="", headers=None, content=None):
        self.status_code = status_code
        self.text = text
        self.headers = headers or {"content-type": "text/html"}
        self.content = content if content is not None else text.encode("utf-8")

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"HTTP {self.status_code}")


class FakeSession:
    """requests.Session stand-in; handler maps a request URL to a response or exception"""

    def __init__(self, handler):
        self.handler = handler
        self.headers = {}
        self.requested = []

    def get(self, url, headers=None, timeout=None):
        self.requested.append(url)
        result = self.handler(url)
        if isinstance(result, Exception):
            raise result
        return result


class FakeLLM:
    """Replays replies in order; an Exception entry is raised instead of returned"""

    def __init__(self, *replies, prompt_tokens=1000, completion_tokens=500):
        self.replies = list(replies)
        self.prompt_tokens = prompt_tokens
        self.completion_tokens = completion_tokens
        self.calls = []

    def complete(self, messages, model, max_tokens, temperature=0.2, json_mode=True):
        self.calls.append({"messages": messages, "model": model, "max_tokens": max_tokens})
        reply = self.replies.pop(0) if len(self.replies) > 1 else self.replies[0]
        if isinstance(reply, Exception):
            raise reply
        if isinstance(reply, dict):
            reply = json.dumps(reply)
        return CompletionReply(
            content=reply,
            prompt_tokens=self.prompt_tokens,
            completion_tokens=self.completion_tokens,
            model=model,
        )


PRODUCT_PAGE = """
<html>
<head>
  <title>Aurora 20W LED Panel | Example Lighting</title>
  <meta name="description" content="Slim 20W LED panel for offices">
  <meta property="og:image" content="https://cdn.example.com/og/panel-og.jpg">
  <script type="application/ld+json">
  {"@context": "https://schema.org", "@type": "Product", "name": "Aurora 20W LED Panel",
   "image": ["https://cdn.example.com/p/panel-front.jpg", "https://cdn.example.com/p/panel-side.jpg"],
   "brand": {"@type": "Brand", "name": "Aurora"},
   "offers": {"@type": "Offer", "price": "19.99", "priceCurrency": "USD", "availability": "https://schema.org/InStock"}}
  </script>
  <script>window.dataLayer = [];</script>
</head>
<body>
  <h1>Aurora 20W LED Panel</h1>
  <div class="product-description">
    <p>A slim 20 watt LED panel with 6500K daylight output, 2000 lumens and an aluminium frame.
    Suitable for offices, classrooms and retail spaces. Flicker free driver included.</p>
  </div>
  <div class="related-products"><img class="related-product" src="/p/other.jpg"></div>
</body>
</html>
"""

VALID_REPLY = {
    "title": "Aurora 20W LED Panel",
    "description": "<p>Slim 20W LED panel</p>",
    "shortDescription": ["20W", "6500K daylight", "2000 lumens"],
    "specifications": {"Brand": "Aurora", "Power": "20W"},
    "tags": ["led", "panel", "lighting"],
    "imageUrls": ["https://cdn.example.com/p/panel-front.jpg"],
    "videoUrl": None,
    "stockStatus": "in-stock",
    "suggestedCategory": "Lighting > LED Panels",
    "confidence": 0.9,
    "warnings": [],
}


@pytest.fixture
def config(tmp_path):
    """Built-in defaults only, with logs and data kept under tmp_path"""
    manager = ConfigManager(str(tmp_path / "missing.yaml"))
    manager.update("storage.data_dir", str(tmp_path / "data"))
    manager.update("logging.file", None)
    return manager


@pytest.fixture
def store():
    return InMemoryDocumentStore()


@pytest.fixture
def no_sleep_retry():
    delays = []
    policy = RetryPolicy(max_attempts=3, base_delay=1.0, sleep=delays.append)
    policy.delays = delays
    return policy


@pytest.fixture
def fixed_clock():
    return lambda: datetime(2024, 3, 15, 10, 30, 0)
