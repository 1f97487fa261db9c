import json
import logging
import re
from typing import Any, Dict, Iterable, List, Optional

from bs4 import BeautifulSoup, Comment, Tag

from ..models.page import (
    ExtractedImage,
    ImageQuality,
    ImageSource,
    ImageType,
    ProcessedHTML,
    ProductMetadata,
)
from ..utils.text_processing import TextProcessor
from .document import HtmlDocument, SoupDocument, class_context, parse_dimension

logger = logging.getLogger(__name__)

NON_PRODUCT_KEYWORDS = [
    # Branding
    "logo", "brand-logo", "icon", "favicon",
    # Advertising
    "banner", "ad", "advertisement", "promo",
    # Tracking
    "tracking", "pixel", "analytics", "1x1", "spacer", "blank",
    # Related products
    "related", "recommended", "similar", "also-bought", "you-may-like",
    "cross-sell", "upsell", "recently-viewed",
    # Reviews
    "review", "rating", "star", "badge", "award",
    # Social
    "social", "share", "facebook", "twitter", "instagram", "pinterest",
    # Payment
    "payment", "visa", "mastercard", "paypal", "stripe",
    # UI elements
    "thumbnail-small", "tiny", "avatar", "placeholder",
    # Navigation
    "category", "nav", "menu", "header", "footer",
]

PRODUCT_CONTEXT_KEYWORDS = [
    "product", "item", "gallery", "main", "primary",
    "detail", "zoom", "large", "featured",
]

NON_PRODUCT_CONTEXT_KEYWORDS = [
    "banner", "ad", "advertisement", "related", "recommended",
    "similar", "also-bought", "review", "logo", "brand-logo",
]

HIGH_QUALITY_URL_KEYWORDS = ["original", "large", "hd", "zoom"]
LOW_QUALITY_URL_KEYWORDS = ["thumb", "small", "preview", "icon"]

NOISE_KEYWORDS = ["ad", "advertisement", "tracking", "banner", "popup"]
NOISE_TAGS = ["script", "style", "iframe", "noscript"]

_CONTAINER_RE = re.compile(
    r"product-gallery|gallery|product-images|image-gallery|product-detail|"
    r"product-media|media-gallery|slider|carousel|swiper"
)
_DIMENSION_TOKEN_RE = re.compile(r"(\d+)x(\d+)")
_PRICE_TEXT_RE = re.compile(r"[$€£¥₹]\s*[\d,]+\.?\d*")
_DESCRIPTION_RE = re.compile(r"description|detail|about")
_WHITESPACE_RE = re.compile(r"\s+")
_BETWEEN_TAGS_RE = re.compile(r">\s+<")

CONTAINER_DATA_ATTRS = ["data-src", "data-image", "data-large-image", "data-zoom"]
SRCSET_DATA_ATTRS = ["data-image", "data-large-image", "data-zoom-image"]
# Related-product carousels wrap their images a few levels deep
ANCESTOR_LEVELS = 3


class ContentExtractor:
    """Turns raw product page HTML into cleaned markup, metadata and candidate images"""

    def __init__(self, text_processor: Optional[TextProcessor] = None, ranker=None):
        self.text_processor = text_processor or TextProcessor()
        self.ranker = ranker

    def process(
        self,
        html: str,
        source_url: str,
        document: Optional[HtmlDocument] = None,
    ) -> ProcessedHTML:
        """
        Process a product page

        Args:
            html: Raw page HTML
            source_url: URL the page was fetched from, used to resolve relative links
            document: Optional rendered document; its ranked main images join the candidates

        Returns:
            ProcessedHTML with cleaned markup, metadata and sorted product images
        """
        page = SoupDocument(html or "", source_url)

        structured_data = self._extract_structured_data(page.soup)
        metadata = self._extract_metadata(page.soup, structured_data)
        images = self._extract_product_images(page, structured_data, document)

        logger.debug(
            f"Processed {source_url}: {len(images)} images, "
            f"structured data {'found' if structured_data else 'missing'}"
        )

        return ProcessedHTML(
            cleaned_html=self.clean_html(html or ""),
            product_images=images,
            structured_data=structured_data,
            metadata=metadata,
        )

    # Structured data

    def _extract_structured_data(self, soup: BeautifulSoup) -> Optional[Dict[str, Any]]:
        blocks = []
        for script in soup.find_all("script", attrs={"type": "application/ld+json"}):
            raw = script.string or script.get_text()
            if not raw or not raw.strip():
                continue
            try:
                blocks.append(json.loads(raw))
            except ValueError as e:
                logger.debug(f"Skipping unparsable JSON-LD block: {e}")

        return find_product_schema(blocks)

    def _extract_metadata(
        self, soup: BeautifulSoup, structured_data: Optional[Dict[str, Any]]
    ) -> ProductMetadata:
        values: Dict[str, Optional[str]] = {}

        if structured_data:
            values["title"] = _text(structured_data.get("name"))
            values["description"] = _text(structured_data.get("description"))

            brand = structured_data.get("brand")
            values["brand"] = _text(brand.get("name") if isinstance(brand, dict) else brand)

            offer = structured_data.get("offers")
            if isinstance(offer, list):
                offer = offer[0] if offer else None
            if isinstance(offer, dict):
                values["price"] = _text(offer.get("price"))
                values["currency"] = _text(offer.get("priceCurrency"))
                values["availability"] = _text(offer.get("availability"))

        if not values.get("title") and soup.title and soup.title.string:
            values["title"] = _text(soup.title.string)
        if not values.get("description"):
            values["description"] = _meta_content(soup, name="description")
        if not values.get("price"):
            values["price"] = _meta_content(soup, prop="og:price:amount")
        if not values.get("currency"):
            values["currency"] = _meta_content(soup, prop="og:price:currency")

        missing = [key for key in ("title", "price", "description") if not values.get(key)]
        if missing:
            sections = self._product_sections(soup)
            for key in missing:
                values[key] = sections.get(key)

        return ProductMetadata(**values)

    # Images

    def _extract_product_images(
        self,
        page: SoupDocument,
        structured_data: Optional[Dict[str, Any]],
        document: Optional[HtmlDocument] = None,
    ) -> List[ExtractedImage]:
        images: List[ExtractedImage] = []
        seen = set()

        def add(candidates: Iterable[ExtractedImage]):
            for image in candidates:
                if image.url not in seen:
                    seen.add(image.url)
                    images.append(image)

        add(self._jsonld_images(page, structured_data))
        add(self._og_images(page))
        if document is not None and self.ranker is not None:
            ranked = self.ranker.select_main_images(self.ranker.rank(document))
            add(self.ranker.to_extracted_images(ranked))
        add(self._container_images(page))
        add(self._plain_images(page))
        add(self._srcset_images(page))

        filtered = [
            image
            for image in images
            if image.source == ImageSource.JSONLD
            or image.type in (ImageType.MAIN, ImageType.OG)
            or not (image.type == ImageType.UNKNOWN and image.quality == ImageQuality.LOW)
        ]

        return sorted(filtered, key=lambda image: image.sort_key())

    def _jsonld_images(self, page: SoupDocument, structured_data) -> List[ExtractedImage]:
        if not structured_data or not structured_data.get("image"):
            return []

        raw_images = structured_data["image"]
        if not isinstance(raw_images, list):
            raw_images = [raw_images]

        images = []
        for raw in raw_images:
            if isinstance(raw, dict):
                raw = raw.get("url") or raw.get("contentUrl")
            url = page.resolve(raw) if isinstance(raw, str) else None
            if url:
                images.append(
                    ExtractedImage(
                        url=url,
                        type=ImageType.MAIN,
                        quality=ImageQuality.HIGH,
                        source=ImageSource.JSONLD,
                    )
                )
        return images

    def _og_images(self, page: SoupDocument) -> List[ExtractedImage]:
        url = page.resolve(_meta_content(page.soup, prop="og:image"))
        if not url:
            return []
        return [
            ExtractedImage(
                url=url, type=ImageType.OG, quality=ImageQuality.HIGH, source=ImageSource.OG
            )
        ]

    def _container_images(self, page: SoupDocument) -> List[ExtractedImage]:
        images = []

        for container in page.soup.find_all(_is_gallery_container):
            for element in container.find_all(True):
                raw_urls = []
                if element.name == "img" and element.get("src"):
                    raw_urls.append(element.get("src"))
                raw_urls.extend(element.get(attr) for attr in CONTAINER_DATA_ATTRS if element.get(attr))

                context = surrounding_context(element)
                for raw in raw_urls:
                    if self.is_non_product_image(raw, element.get("alt"), context):
                        continue
                    url = page.resolve(raw)
                    if url:
                        images.append(
                            ExtractedImage(
                                url=url,
                                alt=element.get("alt") or None,
                                type=ImageType.GALLERY,
                                quality=ImageQuality.HIGH,
                                source=ImageSource.IMG,
                            )
                        )
        return images

    def _plain_images(self, page: SoupDocument) -> List[ExtractedImage]:
        images = []

        for img in page.soup.find_all("img"):
            raw = img.get("src")
            alt = img.get("alt") or None
            class_name = class_context(img)

            if not raw or self.is_non_product_image(raw, alt, surrounding_context(img)):
                continue

            url = page.resolve(raw)
            if not url:
                continue

            width = parse_dimension(img.get("width")) or None
            height = parse_dimension(img.get("height")) or None
            is_product = self.check_product_context(class_name, alt)

            images.append(
                ExtractedImage(
                    url=url,
                    alt=alt,
                    width=width,
                    height=height,
                    type=ImageType.GALLERY if is_product else ImageType.UNKNOWN,
                    quality=self.assess_image_quality(raw, width, height),
                    source=ImageSource.IMG,
                )
            )
        return images

    def _srcset_images(self, page: SoupDocument) -> List[ExtractedImage]:
        images = []

        for element in page.soup.find_all(True):
            raw_urls = []
            if element.get("srcset"):
                raw_urls.append(best_srcset_candidate(element.get("srcset")))
            raw_urls.extend(element.get(attr) for attr in SRCSET_DATA_ATTRS if element.get(attr))

            context = surrounding_context(element)
            for raw in raw_urls:
                if not raw or self.is_non_product_image(raw, element.get("alt"), context):
                    continue
                url = page.resolve(raw)
                if url:
                    images.append(
                        ExtractedImage(
                            url=url,
                            type=ImageType.GALLERY,
                            quality=ImageQuality.HIGH,
                            source=ImageSource.IMG,
                        )
                    )
        return images

    def is_non_product_image(
        self, url: str, alt: Optional[str] = None, class_name: Optional[str] = None
    ) -> bool:
        """Check the URL, alt text and classes against the non-product denylist"""
        url_lower = (url or "").lower()
        alt_lower = (alt or "").lower()

        for text in (url_lower, alt_lower, (class_name or "").lower()):
            if self.text_processor.contains_keywords(text, NON_PRODUCT_KEYWORDS):
                return True

        # Tiny size tokens in the file name usually mean icons or badges
        size_match = _DIMENSION_TOKEN_RE.search(url_lower)
        if size_match:
            width, height = int(size_match.group(1)), int(size_match.group(2))
            if width < 100 or height < 100:
                return True

        if url_lower.split("?")[0].endswith(".svg") and "product" not in alt_lower:
            return True

        return False

    def check_product_context(self, class_name: str, alt: Optional[str]) -> bool:
        """True when class/alt text points at the product itself"""
        context = f"{class_name or ''} {alt or ''}".lower()

        if self.text_processor.contains_keywords(context, NON_PRODUCT_CONTEXT_KEYWORDS):
            return False
        return self.text_processor.contains_keywords(context, PRODUCT_CONTEXT_KEYWORDS)

    def assess_image_quality(
        self, url: str, width: Optional[int] = None, height: Optional[int] = None
    ) -> ImageQuality:
        url_lower = (url or "").lower()

        if self.text_processor.contains_keywords(url_lower, HIGH_QUALITY_URL_KEYWORDS):
            return ImageQuality.HIGH
        if self.text_processor.contains_keywords(url_lower, LOW_QUALITY_URL_KEYWORDS):
            return ImageQuality.LOW

        if width and height:
            if width >= 800 and height >= 800:
                return ImageQuality.HIGH
            if width < 300 or height < 300:
                return ImageQuality.LOW

        return ImageQuality.MEDIUM

    # Cleaning

    def clean_html(self, html: str) -> str:
        """Strip scripts, styles, comments, frames and ad/tracking elements, then collapse whitespace"""
        soup = BeautifulSoup(html or "", "html.parser")

        for comment in soup.find_all(string=lambda text: isinstance(text, Comment)):
            comment.extract()

        for element in soup.find_all(NOISE_TAGS):
            element.extract()

        for element in soup.find_all(True):
            if self.text_processor.contains_keywords(class_context(element), NOISE_KEYWORDS):
                element.extract()

        cleaned = _WHITESPACE_RE.sub(" ", str(soup))
        cleaned = _BETWEEN_TAGS_RE.sub("><", cleaned)
        return cleaned.strip()

    def extract_product_sections(self, html: str) -> Dict[str, str]:
        """Key visible sections of a product page: title, price and description"""
        return self._product_sections(BeautifulSoup(html or "", "html.parser"))

    def _product_sections(self, soup: BeautifulSoup) -> Dict[str, str]:
        sections: Dict[str, str] = {}

        h1 = soup.find("h1")
        if h1 and h1.get_text(strip=True):
            sections["title"] = self.text_processor.clean_text(h1.get_text(" "))

        price_element = soup.find(lambda tag: "price" in class_context(tag))
        if price_element and price_element.get_text(strip=True):
            sections["price"] = self.text_processor.clean_text(price_element.get_text(" "))
        else:
            match = _PRICE_TEXT_RE.search(soup.get_text(" "))
            if match:
                sections["price"] = match.group().strip()

        description = soup.find(lambda tag: bool(_DESCRIPTION_RE.search(class_context(tag))))
        if description and description.get_text(strip=True):
            sections["description"] = self.text_processor.clean_text(description.get_text(" "))

        return sections


def find_product_schema(blocks: List[Any]) -> Optional[Dict[str, Any]]:
    """First JSON-LD object whose @type names a Product"""
    for block in blocks:
        if isinstance(block, list):
            candidates = block
        elif isinstance(block, dict) and isinstance(block.get("@graph"), list):
            candidates = [block, *block["@graph"]]
        else:
            candidates = [block]

        for item in candidates:
            if isinstance(item, dict) and _is_product_type(item.get("@type")):
                return item
    return None


def best_srcset_candidate(srcset: str) -> Optional[str]:
    """URL with the highest density or width descriptor in a srcset value"""
    best_url, best_value = None, -1.0

    for entry in srcset.split(","):
        parts = entry.strip().split()
        if not parts:
            continue

        value = 1.0
        if len(parts) > 1:
            try:
                value = float(parts[1].rstrip("xwXW"))
            except ValueError:
                value = 1.0

        if value >= best_value:
            best_url, best_value = parts[0], value

    return best_url


def surrounding_context(element: Tag, levels: int = ANCESTOR_LEVELS) -> str:
    """Class context of an element and its nearest ancestors"""
    parts = [class_context(element)]
    for ancestor in element.parents:
        if len(parts) > levels:
            break
        parts.append(class_context(ancestor))
    return " ".join(part for part in parts if part)


def _is_product_type(value: Any) -> bool:
    if isinstance(value, str):
        return "Product" in value
    if isinstance(value, list):
        return any(isinstance(v, str) and "Product" in v for v in value)
    return False


def _is_gallery_container(tag: Tag) -> bool:
    return tag.name != "img" and bool(_CONTAINER_RE.search(class_context(tag)))


def _meta_content(soup: BeautifulSoup, name: Optional[str] = None, prop: Optional[str] = None):
    attrs = {"name": name} if name else {"property": prop}
    meta = soup.find("meta", attrs=attrs)
    if meta is None:
        return None
    return _text(meta.get("content"))


def _text(value: Any) -> Optional[str]:
    if value is None or isinstance(value, (dict, list)):
        return None
    text = str(value).strip()
    return text or None
