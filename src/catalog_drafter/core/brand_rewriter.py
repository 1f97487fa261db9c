import logging
import re
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

from ..models.product import ProductExtractionResult
from ..utils.text_processing import TextProcessor

logger = logging.getLogger(__name__)

BRAND_SPEC_KEYS = ("brand", "manufacturer")
SKU_SPEC_KEYS = ("sku", "model", "model number", "mpn")

# First matching keyword decides the code, so order matters
CATEGORY_CODES = {
    "LED": ["led", "light", "lamp", "bulb", "lighting"],
    "ELEC": ["electronic", "circuit", "electrical", "power supply", "adapter"],
    "TOOL": ["tool", "equipment", "machine", "drill", "saw"],
    "COMP": ["computer", "laptop", "desktop", "pc", "processor"],
    "MOBL": ["mobile", "phone", "smartphone", "tablet"],
    "GADG": ["gadget", "device", "smart", "wearable"],
    "AUDI": ["audio", "speaker", "headphone", "earphone", "sound"],
    "VIDE": ["video", "camera", "webcam", "monitor", "display"],
    "NETW": ["network", "router", "modem", "wifi", "ethernet"],
    "STOR": ["storage", "drive", "ssd", "hdd", "memory"],
}
GENERIC_CATEGORY_CODE = "PROD"

SERIES_CODES = {
    "pro": "PRO",
    "plus": "PLUS",
    "max": "MAX",
    "ultra": "ULTRA",
    "mini": "MINI",
    "lite": "LITE",
    "smart": "SMART",
    "premium": "PREM",
    "standard": "STD",
    "basic": "BASE",
}
GENERIC_SERIES_CODE = "GEN"
SERIES_STOPWORDS = {"THE", "AND", "FOR", "WITH"}

GENERATION_VERSIONS = [
    (("gen 3", "3rd gen"), "V3"),
    (("gen 2", "2nd gen"), "V2"),
    (("gen 1", "1st gen"), "V1"),
]
DEFAULT_VERSION = "V1"

_SKU_CHARS_RE = re.compile(r"[^A-Z0-9-]")
_SKU_VERSION_RE = re.compile(r"V?\d+(?:\.\d+)?")
_YEAR_RE = re.compile(r"20(\d{2})")
_WORD_CHARS_RE = re.compile(r"[^A-Z0-9\s]")


@dataclass
class BrandRewrite:
    """A rewritten extraction result plus what was changed"""

    result: ProductExtractionResult
    sku: str
    original_brand: Optional[str] = None
    original_sku: Optional[str] = None
    log: List[str] = field(default_factory=list)


class BrandRewriter:
    """Replaces source brand mentions with the store's own brand and issues a house SKU.

    Disabled when no brand name is configured. Brands are detected from the
    page metadata, Brand/Manufacturer specifications and a list of well-known
    brand names found in the title or description.
    """

    def __init__(
        self,
        brand_name: Optional[str],
        sku_prefix: Optional[str] = None,
        known_brands: Iterable[str] = (),
        text_processor: Optional[TextProcessor] = None,
    ):
        self.brand_name = (brand_name or "").strip()
        self.sku_prefix = (sku_prefix or _initials(self.brand_name)).upper()
        self.known_brands = list(known_brands)
        self.text_processor = text_processor or TextProcessor()

    @classmethod
    def from_config(cls, config) -> "BrandRewriter":
        return cls(
            brand_name=config.get("branding.brand_name"),
            sku_prefix=config.get("branding.sku_prefix"),
            known_brands=config.get("branding.known_brands", []),
        )

    @property
    def enabled(self) -> bool:
        return bool(self.brand_name)

    def rewrite(self, result: ProductExtractionResult) -> BrandRewrite:
        """
        Rewrite branding in an extraction result

        Args:
            result: Validated model output

        Returns:
            BrandRewrite with the new result, the house SKU and a change log
        """
        log: List[str] = []
        specs = dict(result.specifications)
        original_brand = result.page_metadata.get("brand") or _spec_value(specs, BRAND_SPEC_KEYS)
        original_sku = _spec_value(specs, SKU_SPEC_KEYS)

        brands = self.detect_brands(result)
        if brands:
            log.append(f"Detected brands: {', '.join(brands)}")

        title = result.title
        description = result.description
        short_description = list(result.short_description)

        for brand in brands:
            pattern = re.compile(rf"\b{re.escape(brand)}\b", re.IGNORECASE)
            title = pattern.sub(self.brand_name, title)
            description = pattern.sub(self.brand_name, description)
            short_description = [pattern.sub(self.brand_name, line) for line in short_description]
            for key, value in specs.items():
                if key.lower() in BRAND_SPEC_KEYS:
                    specs[key] = self.brand_name
                else:
                    specs[key] = pattern.sub(self.brand_name, value)
            log.append(f'Replaced "{brand}" with "{self.brand_name}" throughout content')

        sku = self.rewrite_sku(original_sku, title, description)
        if sku != original_sku:
            log.append(f"Rewrote SKU: {original_sku or 'N/A'} -> {sku}")

        if _spec_key(specs, ("brand",)) is None:
            specs["Brand"] = self.brand_name
            log.append(f"Added {self.brand_name} brand to specifications")
        sku_keys = [key for key in specs if key.lower() in SKU_SPEC_KEYS]
        for key in sku_keys:
            specs[key] = sku
        if not sku_keys:
            specs["Model"] = sku
            log.append(f"Added model number: {sku}")

        logger.info(f"Brand rewrite for '{result.title}': {len(log)} changes")

        rewritten = result.model_copy(
            update={
                "title": title,
                "description": description,
                "short_description": short_description,
                "specifications": specs,
            }
        )
        return BrandRewrite(
            result=rewritten,
            sku=sku,
            original_brand=original_brand,
            original_sku=original_sku,
            log=log,
        )

    def detect_brands(self, result: ProductExtractionResult) -> List[str]:
        """Source brand names mentioned by the product, excluding our own"""
        brands: List[str] = []

        def add(name: Optional[str]):
            name = (name or "").strip()
            if name and name.lower() != self.brand_name.lower() and name not in brands:
                brands.append(name)

        add(result.page_metadata.get("brand"))
        for key, value in result.specifications.items():
            if key.lower() in BRAND_SPEC_KEYS:
                add(value)

        text = f"{result.title} {result.description}"
        for brand in self.known_brands:
            if self.text_processor.contains_keyword(text, brand):
                add(brand)

        return brands

    def rewrite_sku(self, original_sku: Optional[str], title: str, description: str) -> str:
        """House SKU: PREFIX-CATEGORY-SERIES-VERSION"""
        cleaned = _SKU_CHARS_RE.sub("", (original_sku or "").upper()).strip()
        if cleaned.startswith(f"{self.sku_prefix}-"):
            return cleaned

        text = f"{title} {description}"
        category = self.category_code(text)
        series = self.series_code(f"{title} {cleaned}", title)

        version = None
        if cleaned:
            match = _SKU_VERSION_RE.search(cleaned)
            if match:
                version = match.group()
                if not version.startswith("V"):
                    version = f"V{version}"

        return "-".join([self.sku_prefix, category, series, version or self.infer_version(text)])

    def category_code(self, text: str) -> str:
        keyword_codes = {kw: code for code, keywords in CATEGORY_CODES.items() for kw in keywords}
        keyword = self.text_processor.first_keyword(text, keyword_codes)
        return keyword_codes[keyword] if keyword else GENERIC_CATEGORY_CODE

    def series_code(self, text: str, title: str) -> str:
        keyword = self.text_processor.first_keyword(text, SERIES_CODES)
        if keyword:
            return SERIES_CODES[keyword]

        for word in _WORD_CHARS_RE.sub("", title.upper()).split():
            if 3 <= len(word) <= 6 and word not in SERIES_STOPWORDS:
                return word[:5]
        return GENERIC_SERIES_CODE

    def infer_version(self, text: str) -> str:
        text_lower = text.lower()
        for markers, version in GENERATION_VERSIONS:
            if any(marker in text_lower for marker in markers):
                return version

        year = _YEAR_RE.search(text_lower)
        return f"V{year.group(1)}" if year else DEFAULT_VERSION


def _initials(name: str) -> str:
    capitals = "".join(c for c in name if c.isupper())
    return capitals if len(capitals) >= 2 else name[:2]


def _spec_key(specs: Dict[str, str], names: Iterable[str]) -> Optional[str]:
    for key in specs:
        if key.lower() in names:
            return key
    return None


def _spec_value(specs: Dict[str, str], names: Iterable[str]) -> Optional[str]:
    key = _spec_key(specs, names)
    return specs[key] if key else None
