from typing import Dict, List, Optional

from pydantic import BaseModel, Field


class Category(BaseModel):
    """An existing catalog category"""

    id: str
    name: str
    slug: str = ""


class CategoryAlternative(BaseModel):
    id: str
    name: str
    score: float


class CategorySuggestion(BaseModel):
    """Whether to reuse an existing category or create a new one"""

    suggested_name: str
    category_id: Optional[str] = None
    confidence: float = Field(ge=0.0, le=1.0)
    should_create: bool
    reasoning: str = ""
    alternatives: List[CategoryAlternative] = Field(default_factory=list, max_length=3)


class ProductSummary(BaseModel):
    """The parts of an extraction result used for category matching"""

    title: str = ""
    tags: List[str] = Field(default_factory=list)
    suggested_category: str = ""
    description: str = ""
    specifications: Dict[str, str] = Field(default_factory=dict)
