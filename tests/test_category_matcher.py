from catalog_drafter.core.category_matcher import (
    CATEGORIES_COLLECTION,
    CategoryMatcher,
    calculate_category_score,
    extract_keywords,
    infer_category_name,
    validate_category_name,
)
from catalog_drafter.integrations.document_store import InMemoryDocumentStore
from catalog_drafter.models.category import ProductSummary


def seeded_store():
    return InMemoryDocumentStore(
        {
            CATEGORIES_COLLECTION: {
                "cat-led": {"name": "LED Lights", "slug": "led-lights"},
                "cat-cables": {"name": "Cables & Connectors", "slug": "cables-connectors"},
                "cat-power": {"name": "Power Supplies", "slug": "power-supplies"},
            }
        }
    )


class BrokenStore(InMemoryDocumentStore):
    def all(self, collection):
        raise RuntimeError("database unavailable")


def test_first_category_is_created_when_none_exist(store):
    product = ProductSummary(title="Aurora Panel", suggested_category="Lighting > LED Panels")

    suggestion = CategoryMatcher(store).suggest(product)

    assert suggestion.should_create is True
    assert suggestion.confidence == 0.5
    assert suggestion.alternatives == []
    assert suggestion.suggested_name == "LED Panels"


def test_strong_match_reuses_existing_category():
    product = ProductSummary(title="LED Lights", tags=["led", "lights"])

    suggestion = CategoryMatcher(seeded_store()).suggest(product, confidence_threshold=0.7)

    assert suggestion.should_create is False
    assert suggestion.category_id == "cat-led"
    assert suggestion.suggested_name == "LED Lights"
    assert suggestion.confidence == 1.0
    assert [alt.id for alt in suggestion.alternatives] == ["cat-cables", "cat-power"]


def test_weak_match_suggests_new_category():
    product = ProductSummary(title="Aurora Desk Fan", tags=["fan"], suggested_category="General")

    suggestion = CategoryMatcher(seeded_store()).suggest(product)

    assert suggestion.should_create is True
    assert suggestion.category_id is None
    assert suggestion.suggested_name == "Fan"
    assert suggestion.confidence == 0.0
    assert len(suggestion.alternatives) == 3


def test_store_failure_falls_back():
    product = ProductSummary(title="Aurora Panel", suggested_category="General")

    suggestion = CategoryMatcher(BrokenStore()).suggest(product)

    assert suggestion.suggested_name == "General Products"
    assert suggestion.confidence == 0.3
    assert suggestion.should_create is True


def test_score_is_bounded():
    assert calculate_category_score("LED Lights", ["led", "lights"]) == 1.0
    assert calculate_category_score("LED Lights", []) == 0.0
    assert calculate_category_score("", ["led"]) == 0.0

    score = calculate_category_score("LED Lights", ["aurora", "led", "lights", "panel"])
    assert 0.0 <= score <= 1.0
    assert abs(score - 0.65) < 1e-9


def test_extract_keywords():
    product = ProductSummary(
        title="Aurora LED Panel",
        tags=["ceiling light"],
        specifications={"Power": "20 W", "Colour": "Cool white"},
    )

    assert extract_keywords(product) == [
        "aurora",
        "led",
        "panel",
        "ceiling light",
        "ceiling",
        "light",
        "power",
        "colour",
        "cool",
        "white",
    ]


def test_infer_category_name():
    assert infer_category_name(ProductSummary(title="Aurora LED Panel")) == "LED Lights"
    assert infer_category_name(ProductSummary(title="Mesh", tags=["hammock"])) == "Hammock"
    assert infer_category_name(ProductSummary(title="Mesh")) == "General Products"


def test_validate_category_name():
    assert validate_category_name("LED & Lights") == (True, None)
    assert validate_category_name("")[0] is False
    assert validate_category_name("A")[0] is False
    assert validate_category_name("x" * 51)[0] is False
    assert validate_category_name("Lights/Lamps") == (False, "Category name contains invalid characters")
