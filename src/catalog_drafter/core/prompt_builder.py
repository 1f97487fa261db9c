import json
from dataclasses import dataclass
from typing import Iterable, List, Optional

from ..models.page import ProcessedHTML
from ..utils.text_processing import TextProcessor

TRUNCATION_MARKER = "\n\n[CONTENT TRUNCATED: page content exceeded {limit} characters]"

BASE_CONTRACT = """You are an expert e-commerce product data extraction specialist for B2B catalogs. Your task is to analyze product information and extract structured data.

CRITICAL RULES:
1. Extract only factual information from the source
2. Do NOT hallucinate or invent data
3. If information is unclear, mark it in warnings
4. Use professional B2B language
5. Format specifications consistently
6. Provide category suggestions with confidence scores
7. Return ONLY valid JSON

IMAGE RULES:
- Include an image URL only when you are certain it shows THIS product
- When in doubt, leave the image out
- Use absolute URLs exactly as they appear in the source

NEVER EXTRACT:
- Related, recommended or "similar" products
- "Customers also bought", "you may also like" or recently viewed items
- Reviews, ratings, advertisements, banners, logos or navigation content

OUTPUT FORMAT:
{
  "title": "Exact product name/title",
  "description": "Detailed HTML description with <p>, <ul>, <li>, <strong> tags",
  "shortDescription": ["Key feature 1", "Key feature 2", "Key feature 3"],
  "specifications": {
    "Brand": "Value",
    "Model": "Value",
    "Power": "Value with units"
  },
  "tags": ["tag1", "tag2", "tag3"],
  "imageUrls": ["url1", "url2"],
  "videoUrl": "youtube_url or null",
  "stockStatus": "in-stock | out-of-stock | preorder",
  "suggestedCategory": "Electronics > LED Lights",
  "confidence": 0.85,
  "warnings": ["Any data quality issues or missing information"]
}"""


@dataclass(frozen=True)
class PromptPair:
    system_prompt: str
    user_prompt: str


class PromptBuilder:
    """Builds the system/user prompt pair sent to the language model.

    Output depends only on the inputs: no clock, no randomness, and
    structured data is serialized with sorted keys.
    """

    def __init__(self, max_html_chars: int = 15000, text_processor: Optional[TextProcessor] = None):
        self.max_html_chars = max_html_chars
        self.text_processor = text_processor or TextProcessor()

    def build_system_prompt(self, instructions: Iterable[str] = ()) -> str:
        prompt = BASE_CONTRACT

        custom = [i.strip() for i in instructions if i and i.strip()]
        if custom:
            prompt += "\n\nCUSTOM INSTRUCTIONS (HIGHEST PRIORITY - these override the rules above):\n"
            prompt += "\n".join(f"{index}. {instruction}" for index, instruction in enumerate(custom, 1))

        return prompt

    def build(
        self,
        processed: ProcessedHTML,
        instructions: Iterable[str] = (),
        source_url: Optional[str] = None,
    ) -> PromptPair:
        """
        Build the prompt pair for the HTML extraction path

        Args:
            processed: Output of the content extractor
            instructions: Admin custom instructions, in priority order
            source_url: Page URL, included for context

        Returns:
            PromptPair with the system and user prompts
        """
        sections: List[str] = ["Extract product data from the following product page."]

        if source_url:
            sections.append(f"Product URL: {source_url}")

        metadata = processed.metadata.model_dump(exclude_none=True)
        if metadata:
            lines = "\n".join(f"- {key}: {value}" for key, value in sorted(metadata.items()))
            sections.append(f"PAGE METADATA:\n{lines}")

        if processed.product_images:
            lines = "\n".join(
                f"- {image.url} (type: {image.type.value}, quality: {image.quality.value})"
                for image in processed.product_images
            )
            sections.append(f"CANDIDATE PRODUCT IMAGES (best first):\n{lines}")

        if processed.structured_data is not None:
            structured = json.dumps(processed.structured_data, sort_keys=True, ensure_ascii=False)
            sections.append(f"STRUCTURED DATA (JSON-LD):\n{structured}")

        content = self.text_processor.truncate(
            processed.cleaned_html,
            self.max_html_chars,
            TRUNCATION_MARKER.format(limit=self.max_html_chars),
        )
        sections.append(f"PAGE CONTENT:\n{content}")
        sections.append("Return complete product data in JSON format as specified in the system prompt.")

        return PromptPair(
            system_prompt=self.build_system_prompt(instructions),
            user_prompt="\n\n".join(sections),
        )

    def build_fallback(
        self,
        text: str = "",
        url: Optional[str] = None,
        instructions: Iterable[str] = (),
        image_count: int = 0,
    ) -> PromptPair:
        """Prompt pair for the image/text path, used when no usable HTML is available"""
        prompt = "Extract product data from the following:\n\n"

        if url:
            prompt += f"Product URL: {url}\n\n"
            prompt += "The page itself could not be read. Use the URL only as context.\n\n"

        if image_count:
            prompt += f"{image_count} product image(s) are attached. Describe only what they show.\n\n"

        if text and text.strip():
            content = self.text_processor.truncate(
                text.strip(),
                self.max_html_chars,
                TRUNCATION_MARKER.format(limit=self.max_html_chars),
            )
            prompt += f"Additional Information:\n{content}\n\n"

        prompt += "Return complete product data in JSON format as specified in the system prompt."

        return PromptPair(
            system_prompt=self.build_system_prompt(instructions),
            user_prompt=prompt,
        )
