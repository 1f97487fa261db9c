import logging
import re
from typing import Dict, List, Optional, Tuple

from ..models.category import Category, CategoryAlternative, CategorySuggestion, ProductSummary

logger = logging.getLogger(__name__)

CATEGORIES_COLLECTION = "categories"
FALLBACK_CATEGORY = "General Products"
PLACEHOLDER_SUGGESTIONS = {"", "general"}

CATEGORY_PATTERNS = [
    (["led", "light", "lamp", "bulb"], "LED Lights"),
    (["electronic", "circuit", "pcb"], "Electronics"),
    (["component", "resistor", "capacitor"], "Electronic Components"),
    (["cable", "wire", "connector"], "Cables & Connectors"),
    (["power", "adapter", "supply"], "Power Supplies"),
    (["sensor", "module"], "Sensors & Modules"),
    (["tool", "equipment"], "Tools & Equipment"),
    (["industrial"], "Industrial Equipment"),
]

_CATEGORY_NAME_RE = re.compile(r"^[a-zA-Z0-9\s&\-\.]+$")
_NUMERIC_RE = re.compile(r"^\d+$")


def extract_keywords(product: ProductSummary) -> List[str]:
    """Lowercased keywords from title words, tags and specifications, first-seen order"""
    keywords: Dict[str, None] = {}

    def add(word: str):
        word = word.lower().strip()
        if word:
            keywords.setdefault(word, None)

    for word in product.title.lower().split():
        if len(word) > 2:
            add(word)

    for tag in product.tags:
        add(tag)
        for word in tag.split():
            if len(word) > 2:
                add(word)

    for key, value in product.specifications.items():
        add(key)
        for word in str(value).split():
            if len(word) > 2 and not _NUMERIC_RE.match(word):
                add(word)

    return list(keywords)


def calculate_category_score(category_name: str, product_keywords: List[str]) -> float:
    """Keyword overlap between a category name and a product, in [0, 1]"""
    category_name = category_name.lower()
    category_keywords = category_name.split()
    if not product_keywords or not category_keywords:
        return 0.0

    match_count = sum(
        1
        for keyword in product_keywords
        for cat_keyword in category_keywords
        if cat_keyword in keyword or keyword in cat_keyword
    )
    base_score = match_count / max(len(product_keywords), len(category_keywords))

    exact_matches = sum(
        1
        for keyword in product_keywords
        if keyword in category_name or (len(keyword) > 4 and category_name in keyword)
    )
    exact_boost = (exact_matches / len(product_keywords)) * 0.3

    return min(base_score + exact_boost, 1.0)


def infer_category_name(product: ProductSummary) -> str:
    """Category name from common product keyword patterns"""
    title = product.title.lower()
    keywords = [t.lower() for t in product.tags] + [k.lower() for k in product.specifications]

    for pattern_keywords, category in CATEGORY_PATTERNS:
        for keyword in pattern_keywords:
            if keyword in title or any(keyword in k for k in keywords):
                return category

    if product.tags:
        tag = product.tags[0]
        return tag[:1].upper() + tag[1:]

    return FALLBACK_CATEGORY


def validate_category_name(name: Optional[str]) -> Tuple[bool, Optional[str]]:
    """Check a new category name; returns (valid, error message)"""
    if not name or not name.strip():
        return False, "Category name cannot be empty"
    if len(name) < 2:
        return False, "Category name must be at least 2 characters"
    if len(name) > 50:
        return False, "Category name must be less than 50 characters"
    if not _CATEGORY_NAME_RE.match(name):
        return False, "Category name contains invalid characters"
    return True, None


class CategoryMatcher:
    """Decides whether a product fits an existing category or needs a new one"""

    def __init__(self, store):
        self.store = store

    def suggest(
        self, product: ProductSummary, confidence_threshold: float = 0.7
    ) -> CategorySuggestion:
        """
        Suggest a category for an extracted product

        Args:
            product: Title, tags, suggestion, description and specs of the product
            confidence_threshold: Minimum score to reuse an existing category

        Returns:
            CategorySuggestion; never raises, falling back to a low-confidence guess
        """
        try:
            return self._suggest(product, confidence_threshold)
        except Exception as e:
            logger.warning(f"Category suggestion failed, using fallback: {e}")
            return CategorySuggestion(
                suggested_name=self._extractor_suggestion(product) or FALLBACK_CATEGORY,
                confidence=0.3,
                should_create=True,
                reasoning="Error occurred while analyzing categories. Using fallback suggestion.",
                alternatives=[],
            )

    def load_categories(self) -> List[Category]:
        return [Category.model_validate(doc) for doc in self.store.all(CATEGORIES_COLLECTION)]

    def _suggest(self, product: ProductSummary, confidence_threshold: float) -> CategorySuggestion:
        categories = self.load_categories()

        if not categories:
            return CategorySuggestion(
                suggested_name=self._extractor_suggestion(product) or FALLBACK_CATEGORY,
                confidence=0.5,
                should_create=True,
                reasoning="No categories exist yet. Creating first category.",
                alternatives=[],
            )

        keywords = extract_keywords(product)
        scores = sorted(
            ((category, calculate_category_score(category.name, keywords)) for category in categories),
            key=lambda pair: pair[1],
            reverse=True,
        )
        best, best_score = scores[0]

        if best_score >= confidence_threshold:
            return CategorySuggestion(
                suggested_name=best.name,
                category_id=best.id,
                confidence=best_score,
                should_create=False,
                reasoning=(
                    f'Strong match found with existing category "{best.name}" '
                    f"({best_score * 100:.0f}% confidence)"
                ),
                alternatives=_alternatives(scores[1:4]),
            )

        name = self._extractor_suggestion(product) or infer_category_name(product)
        logger.info(f"No category reached {confidence_threshold:.2f} (best {best_score:.2f}); suggesting '{name}'")

        return CategorySuggestion(
            suggested_name=name,
            confidence=best_score,
            should_create=True,
            reasoning=(
                f'No strong match found. Best match "{best.name}" is only '
                f"{best_score * 100:.0f}% confident. Suggesting new category \"{name}\"."
            ),
            alternatives=_alternatives(scores[:3]),
        )

    def _extractor_suggestion(self, product: ProductSummary) -> Optional[str]:
        """The model's category guess, leaf segment only, unless it is the generic placeholder"""
        suggestion = (product.suggested_category or "").split(">")[-1].strip()
        if suggestion.lower() in PLACEHOLDER_SUGGESTIONS:
            return None
        return suggestion


def _alternatives(scores: List[Tuple[Category, float]]) -> List[CategoryAlternative]:
    return [
        CategoryAlternative(id=category.id, name=category.name, score=score)
        for category, score in scores
    ]
