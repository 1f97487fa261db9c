import logging
import re
from typing import List, Optional

from ..models.page import (
    ExtractedImage,
    ImageElement,
    ImageQuality,
    ImageScore,
    ImageSource,
    ImageType,
    RankedImage,
    RankedImageType,
)
from ..utils.text_processing import TextProcessor
from .document import HtmlDocument

logger = logging.getLogger(__name__)

GALLERY_KEYWORDS = ["product-gallery", "image-gallery", "product-image", "main-image", "primary-image"]
ZOOM_KEYWORDS = ["zoom", "enlarge", "detail"]
PRODUCT_ALT_KEYWORDS = ["product", "item", "main", "primary", "featured"]
THUMBNAIL_KEYWORDS = ["thumb", "thumbnail", "small", "preview", "mini"]
UI_KEYWORDS = ["logo", "icon", "badge", "button", "nav", "menu", "header", "footer", "banner"]
RELATED_KEYWORDS = ["related", "recommended", "similar", "also-bought", "cross-sell", "upsell"]
AD_KEYWORDS = ["ad", "advertisement", "promo", "banner"]

MIN_NATURAL_SIZE = 100
MIN_SELECTION_SCORE = 30
SIMILAR_ALT_THRESHOLD = 0.8
SIMILAR_ASPECT_DELTA = 0.1
SIMILAR_POSITION_DELTA = 100

_SIZE_SUFFIX_PATTERNS = [
    re.compile(r"_\d+x\d+"),
    re.compile(r"-\d+x\d+"),
    re.compile(r"@\dx"),
    re.compile(r"-(?:small|medium|large|xl|thumb|thumbnail)(?=[./?_-]|$)"),
]


def normalize_image_url(url: str) -> str:
    """Strip CDN size suffixes so variants of one photo compare equal"""
    normalized = url.lower()
    for pattern in _SIZE_SUFFIX_PATTERNS:
        normalized = pattern.sub("", normalized)
    return normalized


class ImageRanker:
    """Scores rendered-page images to separate main product photos from everything else"""

    def __init__(self, text_processor: Optional[TextProcessor] = None):
        self.text_processor = text_processor or TextProcessor()

    def score(self, image: ImageElement, document: Optional[HtmlDocument] = None) -> ImageScore:
        """
        Score one image from its markup context, size and position

        Args:
            image: Image element with its surrounding class context
            document: Document the image belongs to (unused by the point model itself)

        Returns:
            ImageScore with a non-negative score, type and reasoning trail
        """
        context = " ".join(
            [
                image.url.lower(),
                image.alt.lower(),
                image.class_name.lower(),
                image.parent_class.lower(),
                image.grandparent_class.lower(),
            ]
        )
        alt = image.alt.lower()

        score = 0
        reasoning: List[str] = []
        forced: Optional[RankedImageType] = None

        def has_any(text: str, keywords: List[str]) -> bool:
            return self.text_processor.contains_keywords(text, keywords)

        if image.in_product_schema:
            score += 50
            reasoning.append("Inside Product schema markup (+50)")
            forced = RankedImageType.MAIN_PRODUCT

        if has_any(context, GALLERY_KEYWORDS):
            score += 40
            reasoning.append("In product gallery container (+40)")

        width, height = image.natural_width, image.natural_height
        if image.has_natural_size:
            if width >= 800 and height >= 800:
                score += 30
                reasoning.append(f"High resolution: {width}x{height} (+30)")
            elif width >= 400 and height >= 400:
                score += 15
                reasoning.append(f"Medium resolution: {width}x{height} (+15)")

        if has_any(context, ZOOM_KEYWORDS):
            score += 25
            reasoning.append("Has zoom/enlarge functionality (+25)")
            forced = RankedImageType.MAIN_PRODUCT

        if image.has_geometry:
            if image.top < 800:
                score += 10
                reasoning.append("Above the fold (+10)")

            area = image.display_area
            if area > 200000:
                score += 20
                reasoning.append(f"Large display area: {round(area)} px² (+20)")
            elif area > 100000:
                score += 10
                reasoning.append(f"Medium display area: {round(area)} px² (+10)")

        if has_any(alt, PRODUCT_ALT_KEYWORDS):
            score += 15
            reasoning.append("Product-related alt text (+15)")

        if has_any(context, THUMBNAIL_KEYWORDS):
            score -= 30
            reasoning.append("Thumbnail indicator (-30)")
            forced = RankedImageType.THUMBNAIL

        if has_any(context, UI_KEYWORDS):
            score -= 50
            reasoning.append("UI element indicator (-50)")
            forced = RankedImageType.UI_ELEMENT

        if has_any(context, RELATED_KEYWORDS):
            score -= 35
            reasoning.append("Related product section (-35)")
            forced = RankedImageType.THUMBNAIL

        if has_any(context, AD_KEYWORDS):
            score -= 60
            reasoning.append("Advertisement indicator (-60)")
            forced = RankedImageType.UI_ELEMENT

        if image.has_natural_size and (width < 200 or height < 200):
            score -= 20
            reasoning.append(f"Small image: {width}x{height} (-20)")

        if forced is not None:
            image_type = forced
        elif score >= 60:
            image_type = RankedImageType.MAIN_PRODUCT
        elif score >= 30:
            image_type = RankedImageType.GALLERY
        elif score < 0:
            image_type = RankedImageType.UI_ELEMENT
        else:
            image_type = RankedImageType.UNKNOWN

        return ImageScore(score=max(0, score), type=image_type, reasoning=reasoning)

    def rank(self, document: HtmlDocument) -> List[RankedImage]:
        """Score every usable image in a document, highest score first"""
        ranked = []

        for element in document.image_elements():
            url = element.url.lower()
            if url.startswith("data:") or "placeholder" in url:
                continue
            if not element.visible:
                continue
            if element.has_natural_size and (
                element.natural_width < MIN_NATURAL_SIZE or element.natural_height < MIN_NATURAL_SIZE
            ):
                continue

            result = self.score(element, document)
            ranked.append(
                RankedImage(
                    element=element,
                    score=result.score,
                    type=result.type,
                    reasoning=result.reasoning,
                )
            )

        ranked.sort(key=lambda image: image.score, reverse=True)
        return ranked

    def select_main_images(self, ranked: List[RankedImage]) -> List[RankedImage]:
        """Keep the best variant of each likely product photo"""
        candidates = [
            image
            for image in ranked
            if image.score >= MIN_SELECTION_SCORE
            and image.type in (RankedImageType.MAIN_PRODUCT, RankedImageType.GALLERY)
        ]

        selected = []
        for group in self.group_similar(candidates):
            best = max(group, key=lambda image: image.element.pixel_count)
            best.reasoning.append(f"Selected as highest resolution from {len(group)} variants")
            selected.append(best)

        selected.sort(key=lambda image: image.score, reverse=True)
        logger.debug(f"Selected {len(selected)} main images from {len(ranked)} ranked")
        return selected

    def group_similar(self, images: List[RankedImage]) -> List[List[RankedImage]]:
        groups = []
        processed = set()

        for i, image in enumerate(images):
            if i in processed:
                continue

            group = [image]
            processed.add(i)
            for j in range(i + 1, len(images)):
                if j not in processed and self.are_similar(image.element, images[j].element):
                    group.append(images[j])
                    processed.add(j)

            groups.append(group)

        return groups

    def are_similar(self, a: ImageElement, b: ImageElement) -> bool:
        """Same logical photo: equal normalized URL, near-identical alt, or same spot and shape"""
        if normalize_image_url(a.url) == normalize_image_url(b.url):
            return True

        if a.alt and b.alt:
            if self.text_processor.text_similarity(a.alt, b.alt) > SIMILAR_ALT_THRESHOLD:
                return True

        if a.has_natural_size and b.has_natural_size and a.has_geometry and b.has_geometry:
            aspect_a = a.natural_width / a.natural_height
            aspect_b = b.natural_width / b.natural_height
            if abs(aspect_a - aspect_b) < SIMILAR_ASPECT_DELTA:
                if (
                    abs(a.left - b.left) < SIMILAR_POSITION_DELTA
                    and abs(a.top - b.top) < SIMILAR_POSITION_DELTA
                ):
                    return True

        return False

    def to_extracted_images(self, ranked: List[RankedImage]) -> List[ExtractedImage]:
        """Convert ranked images into pipeline candidates"""
        images = []

        for image in ranked:
            if image.type == RankedImageType.MAIN_PRODUCT:
                image_type = ImageType.MAIN
            elif image.type == RankedImageType.GALLERY:
                image_type = ImageType.GALLERY
            elif image.type == RankedImageType.THUMBNAIL:
                image_type = ImageType.THUMBNAIL
            else:
                image_type = ImageType.UNKNOWN

            element = image.element
            if element.natural_width >= 800 and element.natural_height >= 800:
                quality = ImageQuality.HIGH
            elif element.has_natural_size and (
                element.natural_width < 300 or element.natural_height < 300
            ):
                quality = ImageQuality.LOW
            else:
                quality = ImageQuality.MEDIUM

            images.append(
                ExtractedImage(
                    url=element.url,
                    alt=element.alt or None,
                    width=element.natural_width or None,
                    height=element.natural_height or None,
                    type=image_type,
                    quality=quality,
                    source=ImageSource.IMG,
                )
            )

        return images
