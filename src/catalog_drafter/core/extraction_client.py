import json
import logging
import re
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional, Tuple

import openai

from ..exceptions import ExtractionError, FetchError, PipelineCancelled, SparseContentError
from ..models.product import ProductExtractionResult
from ..utils.config import ConfigManager
from ..utils.progress import CancellationToken, ProgressTracker
from ..utils.retry import RetryPolicy
from .content_extractor import ContentExtractor
from .image_ranker import ImageRanker
from .page_fetcher import PageFetcher
from .prompt_builder import PromptBuilder, PromptPair

logger = logging.getLogger(__name__)

# USD per million tokens
DEFAULT_PRICING = {
    "gpt-4o": {"input": 2.5, "output": 10},
    "gpt-4o-mini": {"input": 0.15, "output": 0.6},
    "gpt-4.1": {"input": 2, "output": 8},
    "gpt-4-vision-preview": {"input": 10, "output": 30},
    "gpt-4-turbo": {"input": 10, "output": 30},
    "gpt-4": {"input": 30, "output": 60},
    "gpt-3.5-turbo": {"input": 0.5, "output": 1.5},
}
DEFAULT_PRICING_TIER = "gpt-4-turbo"

VISION_MODEL_PREFIXES = ("gpt-4o", "gpt-4.1", "gpt-4-turbo", "gpt-4-vision")

_CODE_FENCE_RE = re.compile(r"^```(?:json)?\s*|\s*```$")


class ExtractionClient:
    """Runs one product extraction against the language model.

    A URL goes through the HTML path first (fetch, process, prompt, call);
    when the page cannot be fetched or is too sparse, or when no URL was
    given, the image/text path sends the admin's images and text instead.
    """

    def __init__(
        self,
        config_manager: Optional[ConfigManager] = None,
        llm=None,
        fetcher: Optional[PageFetcher] = None,
        extractor: Optional[ContentExtractor] = None,
        prompt_builder: Optional[PromptBuilder] = None,
        retry_policy: Optional[RetryPolicy] = None,
        renderer=None,
    ):
        self.config = config_manager or ConfigManager()
        self._llm = llm
        self.fetcher = fetcher or PageFetcher(self.config)
        self.extractor = extractor or ContentExtractor(ranker=ImageRanker())
        self.prompt_builder = prompt_builder or PromptBuilder(
            max_html_chars=self.config.get("extraction.max_html_chars", 15000)
        )
        self.retry_policy = retry_policy or RetryPolicy.from_config(self.config)
        self.renderer = renderer

        self.default_model = self.config.get("extraction.default_model", "gpt-4o")
        self.default_max_tokens = self.config.get("extraction.max_tokens", 4000)
        self.temperature = self.config.get("extraction.temperature", 0.2)
        self.max_vision_images = self.config.get("extraction.max_vision_images", 4)
        self.min_cleaned_chars = self.config.get("extraction.min_cleaned_html_chars", 100)
        self.deprecated_models = set(self.config.get("extraction.deprecated_models", []))
        self.pricing = self.config.get("extraction.pricing") or DEFAULT_PRICING

    @property
    def llm(self):
        if self._llm is None:
            from ..integrations.openai_client import OpenAIChatClient

            self._llm = OpenAIChatClient(config_manager=self.config)
        return self._llm

    def resolve_model(self, model: Optional[str]) -> Tuple[str, Optional[str]]:
        """Swap a deprecated or missing model id for the default, with a warning"""
        if not model:
            return self.default_model, None

        if model in self.deprecated_models:
            warning = f"Model '{model}' is deprecated; used '{self.default_model}' instead"
            logger.warning(warning)
            return self.default_model, warning

        return model, None

    def calculate_cost(self, model: str, prompt_tokens: int, completion_tokens: int) -> Decimal:
        """Cost in USD; unknown models are priced at the default tier"""
        pricing = self.pricing.get(model) or self.pricing.get(DEFAULT_PRICING_TIER) or DEFAULT_PRICING[DEFAULT_PRICING_TIER]

        million = Decimal(1_000_000)
        input_cost = Decimal(prompt_tokens) / million * Decimal(str(pricing["input"]))
        output_cost = Decimal(completion_tokens) / million * Decimal(str(pricing["output"]))
        return input_cost + output_cost

    def extract(
        self,
        url: Optional[str] = None,
        image_urls: Optional[List[str]] = None,
        text: Optional[str] = None,
        instructions: Iterable[str] = (),
        model: Optional[str] = None,
        max_tokens: Optional[int] = None,
        progress: Optional[ProgressTracker] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> ProductExtractionResult:
        """
        Extract structured product data

        Args:
            url: Product page URL
            image_urls: Uploaded product image URLs
            text: Free text pasted by the admin
            instructions: Admin custom instructions
            model: Requested model id
            max_tokens: Maximum output tokens
            progress: Optional tracker for phase checkpoints
            cancel_token: Optional token checked after the page fetch

        Returns:
            ProductExtractionResult validated from the model reply

        Raises:
            ExtractionError: if the model call failed or its reply was not JSON
        """
        image_urls = list(image_urls or [])
        instructions = list(instructions)
        model, model_warning = self.resolve_model(model)
        max_tokens = max_tokens or self.default_max_tokens
        warnings = [model_warning] if model_warning else []

        if not url and not image_urls and not (text and text.strip()):
            raise ExtractionError("Nothing to extract: provide a product URL, images or text")

        if url:
            try:
                return self._extract_from_html(
                    url, image_urls, instructions, model, max_tokens, warnings, progress, cancel_token
                )
            except (FetchError, SparseContentError) as e:
                reason = getattr(e, "reason", "sparse-content")
                warnings.append(
                    f"Could not read the product page ({reason}); "
                    f"extracted from the provided images and text instead"
                )
                logger.warning(f"HTML extraction failed for {url}: {e}. Falling back to image/text path")
                if progress:
                    progress.update("fetching", "error", str(reason))

        return self._extract_from_inputs(
            url, image_urls, text or "", instructions, model, max_tokens, warnings, progress
        )

    def _extract_from_html(
        self,
        url: str,
        image_urls: List[str],
        instructions: List[str],
        model: str,
        max_tokens: int,
        warnings: List[str],
        progress: Optional[ProgressTracker],
        cancel_token: Optional[CancellationToken],
    ) -> ProductExtractionResult:
        if progress:
            progress.update("fetching", "active", url)

        page = self.fetcher.fetch(url)

        document = None
        if self.renderer is not None:
            try:
                document = self.renderer.render(page.final_url)
            except Exception as e:
                logger.warning(f"Rendering {page.final_url} failed, using static HTML only: {e}")

        processed = self.extractor.process(page.html, page.final_url, document)
        if len(processed.cleaned_html) < self.min_cleaned_chars:
            raise SparseContentError(len(processed.cleaned_html), self.min_cleaned_chars)

        if progress:
            progress.update(
                "fetching",
                "complete",
                f"{len(processed.product_images)} candidate images via {page.strategy}",
            )
        if cancel_token is not None and cancel_token.cancelled:
            raise PipelineCancelled("extracting")
        if progress:
            progress.update("extracting", "active", model)

        prompt = self.prompt_builder.build(processed, instructions, source_url=page.final_url)
        payload, tokens, cost = self._call_model(prompt, model, max_tokens, image_urls, warnings, progress)

        page_metadata = processed.metadata.model_dump(exclude_none=True)
        if page.metadata.canonical_url:
            page_metadata.setdefault("canonical_url", page.metadata.canonical_url)

        return self._build_result(
            payload, page.final_url, model, "html", tokens, cost, warnings, page_metadata
        )

    def _extract_from_inputs(
        self,
        url: Optional[str],
        image_urls: List[str],
        text: str,
        instructions: List[str],
        model: str,
        max_tokens: int,
        warnings: List[str],
        progress: Optional[ProgressTracker],
    ) -> ProductExtractionResult:
        if progress:
            progress.update("extracting", "active", model)

        attached = len(image_urls[: self.max_vision_images]) if self._supports_vision(model) else 0
        prompt = self.prompt_builder.build_fallback(text, url, instructions, image_count=attached)
        payload, tokens, cost = self._call_model(prompt, model, max_tokens, image_urls, warnings, progress)

        method = "vision" if attached else "text"
        return self._build_result(payload, url, model, method, tokens, cost, warnings, {})

    def build_messages(
        self, prompt: PromptPair, model: str, image_urls: List[str], warnings: List[str]
    ) -> List[Dict[str, Any]]:
        """Chat messages for a prompt pair, attaching up to the vision cap of images"""
        messages: List[Dict[str, Any]] = [{"role": "system", "content": prompt.system_prompt}]

        if not image_urls:
            messages.append({"role": "user", "content": prompt.user_prompt})
            return messages

        if not self._supports_vision(model):
            warnings.append(f"Model '{model}' cannot read images; image URLs were sent as text only")
            listed = "\n".join(f"- {u}" for u in image_urls)
            messages.append(
                {"role": "user", "content": f"{prompt.user_prompt}\n\nProduct image URLs:\n{listed}"}
            )
            return messages

        if len(image_urls) > self.max_vision_images:
            warnings.append(
                f"Only the first {self.max_vision_images} of {len(image_urls)} images were analyzed"
            )

        content: List[Dict[str, Any]] = [{"type": "text", "text": prompt.user_prompt}]
        for image_url in image_urls[: self.max_vision_images]:
            content.append({"type": "image_url", "image_url": {"url": image_url, "detail": "high"}})

        messages.append({"role": "user", "content": content})
        return messages

    def _call_model(
        self,
        prompt: PromptPair,
        model: str,
        max_tokens: int,
        image_urls: List[str],
        warnings: List[str],
        progress: Optional[ProgressTracker],
    ) -> Tuple[Dict[str, Any], int, Decimal]:
        messages = self.build_messages(prompt, model, image_urls, warnings)

        try:
            reply = self.retry_policy.call(
                lambda: self.llm.complete(messages, model, max_tokens, self.temperature),
                label=f"{model} completion",
            )
        except (openai.AuthenticationError, openai.PermissionDeniedError, PermissionError) as e:
            if progress:
                progress.notify_once(
                    "openai-permission",
                    "The OpenAI API rejected the credentials. Update the API key in AI settings.",
                )
            logger.error(f"Model call rejected: {e}")
            raise ExtractionError(str(e)) from e
        except Exception as e:
            logger.error(f"Model call failed: {e}")
            raise ExtractionError(str(e)) from e

        payload = parse_model_json(reply.content)
        tokens = reply.prompt_tokens + reply.completion_tokens
        cost = self.calculate_cost(model, reply.prompt_tokens, reply.completion_tokens)

        logger.info(f"Extraction used {tokens} tokens (${cost:.4f}) on {model}")
        if progress:
            progress.update("extracting", "complete", f"{tokens} tokens")
        return payload, tokens, cost

    def _build_result(
        self,
        payload: Dict[str, Any],
        source_url: Optional[str],
        model: str,
        method: str,
        tokens: int,
        cost: Decimal,
        warnings: List[str],
        page_metadata: Dict[str, str],
    ) -> ProductExtractionResult:
        result = ProductExtractionResult.from_model_reply(
            payload,
            source_url=source_url,
            tokens_used=tokens,
            cost=cost,
            model=model,
            extraction_method=method,
            page_metadata=page_metadata,
        )

        combined = warnings + result.warnings
        if not result.image_urls:
            combined.append("No product images found; upload images before publishing")

        return result.model_copy(update={"warnings": combined})

    def _supports_vision(self, model: str) -> bool:
        return model.startswith(VISION_MODEL_PREFIXES)


def parse_model_json(content: Optional[str]) -> Dict[str, Any]:
    """Decode the model reply; anything but a JSON object is fatal"""
    if not content or not content.strip():
        raise ExtractionError("No response from the model")

    text = _CODE_FENCE_RE.sub("", content.strip())
    try:
        payload = json.loads(text)
    except ValueError as e:
        raise ExtractionError(f"Model returned invalid JSON: {e}") from e

    if not isinstance(payload, dict):
        raise ExtractionError("Model returned JSON that is not an object")
    return payload
