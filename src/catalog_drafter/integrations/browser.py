import logging
from typing import Any, Dict, List, Optional

from selenium import webdriver
from selenium.common.exceptions import TimeoutException, WebDriverException
from selenium.webdriver.chrome.options import Options
from selenium.webdriver.chrome.service import Service
from selenium.webdriver.common.by import By
from selenium.webdriver.support import expected_conditions as EC
from selenium.webdriver.support.ui import WebDriverWait
from webdriver_manager.chrome import ChromeDriverManager

from ..core.document import HtmlDocument
from ..models.page import ImageElement
from ..utils.config import ConfigManager

logger = logging.getLogger(__name__)

# Collects every <img> with its layout and class context from the live DOM
COLLECT_IMAGES_SCRIPT = """
const cls = (el) => el ? `${el.className || ''} ${el.id || ''}`.trim().toLowerCase() : '';
return Array.from(document.querySelectorAll('img')).map((img) => {
  const rect = img.getBoundingClientRect();
  const style = window.getComputedStyle(img);
  const parent = img.parentElement;
  return {
    url: img.currentSrc || img.src || '',
    alt: img.alt || '',
    class_name: cls(img),
    parent_class: cls(parent),
    grandparent_class: cls(parent ? parent.parentElement : null),
    natural_width: img.naturalWidth || 0,
    natural_height: img.naturalHeight || 0,
    left: rect.left + window.scrollX,
    top: rect.top + window.scrollY,
    display_width: rect.width,
    display_height: rect.height,
    in_product_schema: !!img.closest('[itemtype*="Product"]'),
    visible: style.display !== 'none' && style.visibility !== 'hidden',
  };
});
"""


class SeleniumDocument(HtmlDocument):
    """Snapshot of a rendered page: final HTML plus measured image elements"""

    def __init__(self, html: str, base_url: str, title: str, images: List[Dict[str, Any]]):
        super().__init__(html, base_url)
        self._title = title or ""
        self._images = images or []

    def title(self) -> str:
        return self._title

    def image_elements(self) -> List[ImageElement]:
        elements = []
        for raw in self._images:
            url = self.resolve(raw.get("url"))
            if not url:
                continue
            elements.append(
                ImageElement(
                    url=url,
                    alt=raw.get("alt") or "",
                    class_name=raw.get("class_name") or "",
                    parent_class=raw.get("parent_class") or "",
                    grandparent_class=raw.get("grandparent_class") or "",
                    natural_width=int(raw.get("natural_width") or 0),
                    natural_height=int(raw.get("natural_height") or 0),
                    left=raw.get("left"),
                    top=raw.get("top"),
                    display_width=raw.get("display_width"),
                    display_height=raw.get("display_height"),
                    in_product_schema=bool(raw.get("in_product_schema")),
                    visible=raw.get("visible", True) is not False,
                )
            )
        return elements


class BrowserRenderer:
    """Loads pages in headless Chrome for DOM-based image ranking"""

    def __init__(self, config_manager: Optional[ConfigManager] = None):
        self.config = config_manager or ConfigManager()
        self.timeout = self.config.get("fetching.render_timeout_seconds", 15)

        # Selenium driver (initialized lazily)
        self._driver = None

    def _get_driver(self):
        """Get or create Selenium WebDriver"""
        if self._driver is None:
            chrome_options = Options()
            chrome_options.add_argument("--headless")
            chrome_options.add_argument("--no-sandbox")
            chrome_options.add_argument("--disable-dev-shm-usage")
            chrome_options.add_argument("--disable-gpu")
            chrome_options.add_argument("--window-size=1920,1080")

            self._driver = webdriver.Chrome(
                service=Service(ChromeDriverManager().install()),
                options=chrome_options,
            )
            self._driver.set_page_load_timeout(self.timeout)

        return self._driver

    def render(self, url: str) -> SeleniumDocument:
        """
        Load a URL and snapshot its rendered DOM

        Args:
            url: Page URL

        Returns:
            SeleniumDocument with the final HTML and measured images

        Raises:
            WebDriverException: if the browser cannot start or load the page
        """
        driver = self._get_driver()
        driver.get(url)

        try:
            WebDriverWait(driver, self.timeout).until(
                EC.presence_of_element_located((By.TAG_NAME, "body"))
            )
        except TimeoutException:
            logger.warning(f"Timed out waiting for {url} to render; using partial DOM")

        images = driver.execute_script(COLLECT_IMAGES_SCRIPT) or []
        logger.info(f"Rendered {url}: {len(images)} images in DOM")

        return SeleniumDocument(
            html=driver.page_source,
            base_url=driver.current_url or url,
            title=driver.title,
            images=images,
        )

    def close(self) -> None:
        """Quit the browser if one was started"""
        if self._driver is not None:
            try:
                self._driver.quit()
            except WebDriverException as e:
                logger.debug(f"Error closing browser: {e}")
            finally:
                self._driver = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
