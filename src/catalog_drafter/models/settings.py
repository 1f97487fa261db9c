from typing import List, Optional

from pydantic import BaseModel, Field


class AISettings(BaseModel):
    """Per-admin extraction settings kept in the aiSettings collection"""

    id: str
    model: str = "gpt-4o"
    max_tokens_per_request: int = Field(default=4000, gt=0)
    monthly_budget_inr: float = 5000
    enable_cost_notifications: bool = True
    auto_suggest_categories: bool = True
    allow_create_categories: bool = True
    category_confidence_threshold: float = Field(default=0.7, ge=0.0, le=1.0)
    custom_instructions: List[str] = Field(default_factory=list)
    openai_api_key: Optional[str] = Field(default=None, repr=False)
