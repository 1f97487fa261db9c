from dataclasses import dataclass, field
from enum import Enum
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class ImageType(str, Enum):
    """Role of an image on a product page"""

    MAIN = "main"
    GALLERY = "gallery"
    THUMBNAIL = "thumbnail"
    OG = "og"
    UNKNOWN = "unknown"


class ImageQuality(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class ImageSource(str, Enum):
    IMG = "img"
    JSONLD = "jsonld"
    OG = "og"
    META = "meta"


TYPE_PRIORITY = {
    ImageType.MAIN: 1,
    ImageType.GALLERY: 2,
    ImageType.OG: 3,
    ImageType.THUMBNAIL: 4,
    ImageType.UNKNOWN: 5,
}

QUALITY_PRIORITY = {
    ImageQuality.HIGH: 1,
    ImageQuality.MEDIUM: 2,
    ImageQuality.LOW: 3,
}


class PageMetadata(BaseModel):
    """Meta fields read straight from the raw HTML"""

    title: Optional[str] = None
    description: Optional[str] = None
    og_image: Optional[str] = None
    canonical_url: Optional[str] = None


class FetchedPage(BaseModel):
    """Raw HTML of a product page as returned by one fetch strategy"""

    model_config = ConfigDict(frozen=True)

    html: str
    final_url: str
    status_code: int
    content_type: str = "text/html"
    metadata: PageMetadata = Field(default_factory=PageMetadata)
    strategy: str = ""


class ExtractedImage(BaseModel):
    """Candidate product image with an absolute URL"""

    model_config = ConfigDict(frozen=True)

    url: str
    alt: Optional[str] = None
    width: Optional[int] = None
    height: Optional[int] = None
    type: ImageType = ImageType.UNKNOWN
    quality: ImageQuality = ImageQuality.MEDIUM
    source: ImageSource = ImageSource.IMG

    def sort_key(self):
        return (TYPE_PRIORITY[self.type], QUALITY_PRIORITY[self.quality])


class ProductMetadata(BaseModel):
    """Product facts taken from structured data or meta tags"""

    title: Optional[str] = None
    description: Optional[str] = None
    price: Optional[str] = None
    currency: Optional[str] = None
    brand: Optional[str] = None
    availability: Optional[str] = None


class ProcessedHTML(BaseModel):
    """Cleaned page content plus ranked product images"""

    cleaned_html: str = ""
    product_images: List[ExtractedImage] = Field(default_factory=list)
    structured_data: Optional[Any] = None
    metadata: ProductMetadata = Field(default_factory=ProductMetadata)


@dataclass
class ImageElement:
    """An <img> as seen by a document backend, with its surrounding context"""

    url: str
    alt: str = ""
    class_name: str = ""
    parent_class: str = ""
    grandparent_class: str = ""
    natural_width: int = 0
    natural_height: int = 0
    # Geometry is only known for rendered documents
    left: Optional[float] = None
    top: Optional[float] = None
    display_width: Optional[float] = None
    display_height: Optional[float] = None
    in_product_schema: bool = False
    visible: bool = True

    @property
    def has_natural_size(self) -> bool:
        return self.natural_width > 0 and self.natural_height > 0

    @property
    def has_geometry(self) -> bool:
        return self.top is not None and self.display_width is not None

    @property
    def display_area(self) -> float:
        if self.display_width is None or self.display_height is None:
            return 0.0
        return self.display_width * self.display_height

    @property
    def pixel_count(self) -> int:
        return self.natural_width * self.natural_height


class RankedImageType(str, Enum):
    MAIN_PRODUCT = "main-product"
    GALLERY = "gallery"
    THUMBNAIL = "thumbnail"
    UI_ELEMENT = "ui-element"
    UNKNOWN = "unknown"


@dataclass
class ImageScore:
    score: int
    type: RankedImageType
    reasoning: List[str] = field(default_factory=list)


@dataclass
class RankedImage:
    element: ImageElement
    score: int
    type: RankedImageType
    reasoning: List[str] = field(default_factory=list)

    @property
    def url(self) -> str:
        return self.element.url
