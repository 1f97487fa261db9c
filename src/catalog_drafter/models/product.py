import math
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional
from urllib.parse import urljoin, urlparse

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .category import CategorySuggestion, ProductSummary


class StockStatus(str, Enum):
    IN_STOCK = "in-stock"
    OUT_OF_STOCK = "out-of-stock"
    PREORDER = "preorder"


_STOCK_ALIASES = {
    "instock": StockStatus.IN_STOCK,
    "in-stock": StockStatus.IN_STOCK,
    "available": StockStatus.IN_STOCK,
    "outofstock": StockStatus.OUT_OF_STOCK,
    "out-of-stock": StockStatus.OUT_OF_STOCK,
    "soldout": StockStatus.OUT_OF_STOCK,
    "sold-out": StockStatus.OUT_OF_STOCK,
    "preorder": StockStatus.PREORDER,
    "pre-order": StockStatus.PREORDER,
    "backorder": StockStatus.PREORDER,
}


def is_absolute_url(url: str) -> bool:
    parsed = urlparse(url)
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def _string_list(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, (list, tuple, set)):
        return []

    items = []
    for item in value:
        if item is None or isinstance(item, (dict, list)):
            continue
        text = str(item).strip()
        if text and text not in items:
            items.append(text)
    return items


class PriceConversion(BaseModel):
    """A source-page price converted into the display currency"""

    original_price: Decimal
    original_currency: str
    target_price: int
    target_currency: str = "INR"
    exchange_rate: Decimal
    source: str = "fallback"


class ProductExtractionResult(BaseModel):
    """Structured product data parsed from the language model reply.

    Field validators coerce every malformed or missing field to a safe
    default so that one bad field never rejects the whole reply.
    """

    model_config = ConfigDict(populate_by_name=True)

    title: str = "Untitled Product"
    description: str = ""
    short_description: List[str] = Field(default_factory=list, alias="shortDescription")
    specifications: Dict[str, str] = Field(default_factory=dict)
    tags: List[str] = Field(default_factory=list)
    suggested_category: str = Field(default="General", alias="suggestedCategory")
    image_urls: List[str] = Field(default_factory=list, alias="imageUrls")
    video_url: Optional[str] = Field(default=None, alias="videoUrl")
    stock_status: StockStatus = Field(default=StockStatus.IN_STOCK, alias="stockStatus")
    confidence: float = Field(default=0.5, ge=0.0, le=1.0)
    warnings: List[str] = Field(default_factory=list)
    tokens_used: int = Field(default=0, alias="tokensUsed")
    cost: Decimal = Decimal("0")
    model: str = ""
    extraction_method: str = "text"
    page_metadata: Dict[str, str] = Field(default_factory=dict)

    @field_validator("title", mode="before")
    @classmethod
    def _title(cls, value):
        if isinstance(value, str) and value.strip():
            return value.strip()
        return "Untitled Product"

    @field_validator("description", mode="before")
    @classmethod
    def _description(cls, value):
        return value.strip() if isinstance(value, str) else ""

    @field_validator("suggested_category", mode="before")
    @classmethod
    def _category(cls, value):
        if isinstance(value, str) and value.strip():
            return value.strip()
        return "General"

    @field_validator("short_description", "warnings", mode="before")
    @classmethod
    def _lists(cls, value):
        return _string_list(value)

    @field_validator("tags", mode="before")
    @classmethod
    def _tags(cls, value):
        if isinstance(value, str):
            value = value.split(",")
        return _string_list(value)

    @field_validator("image_urls", mode="before")
    @classmethod
    def _image_urls(cls, value):
        return [url for url in _string_list(value) if is_absolute_url(url)]

    @field_validator("specifications", mode="before")
    @classmethod
    def _specifications(cls, value):
        specs: Dict[str, str] = {}
        if isinstance(value, dict):
            pairs = value.items()
        elif isinstance(value, list):
            pairs = [
                (item.get("name") or item.get("key"), item.get("value"))
                for item in value
                if isinstance(item, dict)
            ]
        else:
            return specs

        for key, val in pairs:
            if key is None or val is None or isinstance(val, (dict, list)):
                continue
            key = str(key).strip()
            if key:
                specs[key] = str(val).strip()
        return specs

    @field_validator("video_url", mode="before")
    @classmethod
    def _video_url(cls, value):
        if isinstance(value, str) and value.strip() and value.strip().lower() != "null":
            return value.strip()
        return None

    @field_validator("stock_status", mode="before")
    @classmethod
    def _stock_status(cls, value):
        if isinstance(value, StockStatus):
            return value
        if not isinstance(value, str):
            return StockStatus.IN_STOCK
        key = value.strip().lower().replace(" ", "-").replace("_", "-")
        key = key.rsplit("/", 1)[-1]  # schema.org URLs like .../InStock
        return _STOCK_ALIASES.get(key, _STOCK_ALIASES.get(key.replace("-", ""), StockStatus.IN_STOCK))

    @field_validator("confidence", mode="before")
    @classmethod
    def _confidence(cls, value):
        try:
            confidence = float(value)
        except (TypeError, ValueError):
            return 0.5
        if not math.isfinite(confidence):
            return 0.5
        return min(max(confidence, 0.0), 1.0)

    @classmethod
    def from_model_reply(
        cls,
        payload: Dict[str, Any],
        source_url: Optional[str] = None,
        **extra: Any,
    ) -> "ProductExtractionResult":
        """Build a result from the decoded JSON object the model returned"""
        data = dict(payload)

        if "shortDescription" not in data and "features" in data:
            data["shortDescription"] = data.get("features")

        if source_url and isinstance(data.get("imageUrls"), list):
            data["imageUrls"] = [
                urljoin(source_url, url) if isinstance(url, str) else url
                for url in data["imageUrls"]
            ]

        known = {
            "title",
            "description",
            "shortDescription",
            "specifications",
            "tags",
            "suggestedCategory",
            "imageUrls",
            "videoUrl",
            "stockStatus",
            "confidence",
            "warnings",
        }
        data = {key: value for key, value in data.items() if key in known}
        data.update(extra)
        return cls.model_validate(data)

    def summary(self) -> ProductSummary:
        return ProductSummary(
            title=self.title,
            tags=self.tags,
            suggested_category=self.suggested_category,
            description=self.description,
            specifications=self.specifications,
        )


class DraftStatus(str, Enum):
    REVIEW_REQUIRED = "review_required"
    PUBLISHED = "published"
    DISCARDED = "discarded"


class DraftProduct(BaseModel):
    name: str
    description: str = ""
    short_description: List[str] = Field(default_factory=list)
    images: List[str] = Field(default_factory=list)
    specs: Dict[str, str] = Field(default_factory=dict)
    tags: List[str] = Field(default_factory=list)
    price: Optional[float] = None
    currency: str = "INR"
    stock_status: StockStatus = StockStatus.IN_STOCK
    product_type: str = "simple"
    video_url: Optional[str] = None
    sku: Optional[str] = None


class AIMetadata(BaseModel):
    source_url: Optional[str] = None
    model: str
    extraction_method: str
    quality_score: int
    warnings: List[str] = Field(default_factory=list)
    tokens_used: int = 0
    cost: Decimal = Decimal("0")
    source_price: Optional[PriceConversion] = None
    original_brand: Optional[str] = None
    rewrite_log: List[str] = Field(default_factory=list)


class AdminChange(BaseModel):
    field: str
    old_value: Any = None
    new_value: Any = None
    admin_id: str
    timestamp: datetime = Field(default_factory=datetime.now)


class ProductDraft(BaseModel):
    """Reviewable draft; only the review service changes its status"""

    id: str
    admin_id: str
    task_id: str
    status: DraftStatus = DraftStatus.REVIEW_REQUIRED
    product: DraftProduct
    suggested_category: CategorySuggestion
    ai_metadata: AIMetadata
    admin_changes: List[AdminChange] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=datetime.now)
    published_at: Optional[datetime] = None
    published_product_id: Optional[str] = None


class DraftRequest(BaseModel):
    """What the admin handed in: a URL, images, free text, or a mix"""

    admin_id: str
    url: Optional[str] = None
    image_urls: List[str] = Field(default_factory=list)
    text: str = ""
    instructions: List[str] = Field(default_factory=list)


class LiveProduct(BaseModel):
    """A published catalog entry"""

    id: str
    name: str
    slug: str
    category_id: str
    tags: List[str] = Field(default_factory=list)
    short_description: List[str] = Field(default_factory=list)
    description: str = ""
    specs: Dict[str, str] = Field(default_factory=dict)
    product_type: str = "simple"
    price: float
    is_price_visible: bool = True
    images: List[str] = Field(default_factory=list)
    main_image_index: int = 0
    stock_status: StockStatus = StockStatus.IN_STOCK
    video_url: Optional[str] = None
    sku: Optional[str] = None
    status: str = "active"
    source_draft_id: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.now)
