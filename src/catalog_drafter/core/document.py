import logging
import re
from abc import ABC, abstractmethod
from typing import List, Optional
from urllib.parse import urljoin

from bs4 import BeautifulSoup, Tag

from ..models.page import ImageElement

logger = logging.getLogger(__name__)

_HIDDEN_STYLE_RE = re.compile(r"display\s*:\s*none|visibility\s*:\s*hidden", re.I)
_INT_RE = re.compile(r"\d+")


class HtmlDocument(ABC):
    """Parse-once view of a product page shared by static and rendered backends"""

    def __init__(self, html: str, base_url: str = ""):
        self.html = html or ""
        self.base_url = base_url or ""

    def resolve(self, url: Optional[str]) -> Optional[str]:
        """Absolute http(s) URL for a raw attribute value, or None"""
        if not url:
            return None

        url = url.strip()
        if not url or url.startswith(("data:", "javascript:", "blob:")):
            return None

        absolute = urljoin(self.base_url, url) if self.base_url else url
        if not absolute.startswith(("http://", "https://")):
            return None
        return absolute

    @abstractmethod
    def title(self) -> str:
        """Document title"""
        pass

    @abstractmethod
    def image_elements(self) -> List[ImageElement]:
        """Every <img> with the context the image ranker scores on"""
        pass


class SoupDocument(HtmlDocument):
    """Static HTML parsed with BeautifulSoup.

    Declared width/height attributes stand in for the natural size and
    no geometry is available, so layout-based ranking terms never apply.
    """

    def __init__(self, html: str, base_url: str = ""):
        super().__init__(html, base_url)
        self.soup = BeautifulSoup(self.html, "html.parser")

    def title(self) -> str:
        if self.soup.title and self.soup.title.string:
            return self.soup.title.string.strip()
        return ""

    def image_elements(self) -> List[ImageElement]:
        elements = []

        for img in self.soup.find_all("img"):
            url = self.resolve(img.get("src") or img.get("data-src"))
            if not url:
                continue

            parent = img.parent if isinstance(img.parent, Tag) else None
            grandparent = (
                parent.parent if parent is not None and isinstance(parent.parent, Tag) else None
            )

            elements.append(
                ImageElement(
                    url=url,
                    alt=img.get("alt") or "",
                    class_name=class_context(img),
                    parent_class=class_context(parent),
                    grandparent_class=class_context(grandparent),
                    natural_width=parse_dimension(img.get("width")),
                    natural_height=parse_dimension(img.get("height")),
                    in_product_schema=in_product_schema(img),
                    visible=is_visible(img),
                )
            )

        return elements


def class_context(element: Optional[Tag]) -> str:
    """Class names and id of an element as one lowercase string"""
    if element is None:
        return ""

    classes = element.get("class") or []
    if isinstance(classes, str):
        classes = classes.split()

    parts = list(classes)
    if element.get("id"):
        parts.append(element.get("id"))
    return " ".join(parts).lower()


def parse_dimension(value) -> int:
    """Integer pixel size from an attribute like "800" or "800px"; 0 if unknown"""
    if value is None:
        return 0

    match = _INT_RE.search(str(value))
    return int(match.group()) if match else 0


def in_product_schema(element: Tag) -> bool:
    for ancestor in element.parents:
        itemtype = ancestor.get("itemtype") if isinstance(ancestor, Tag) else None
        if itemtype and "Product" in itemtype:
            return True
    return False


def is_visible(element: Tag) -> bool:
    for node in [element, *element.parents]:
        if not isinstance(node, Tag):
            continue
        if node.has_attr("hidden"):
            return False
        if _HIDDEN_STYLE_RE.search(node.get("style") or ""):
            return False
    return True
