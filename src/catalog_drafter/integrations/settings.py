import logging
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Optional

from ..models.settings import AISettings
from ..utils.config import ConfigManager

logger = logging.getLogger(__name__)

SETTINGS_COLLECTION = "aiSettings"
USAGE_COLLECTION = "aiUsage"


class SettingsRepository:
    """Per-admin AI settings, falling back to configured defaults"""

    def __init__(self, store, config_manager: Optional[ConfigManager] = None):
        self.store = store
        self.config = config_manager or ConfigManager()

    def defaults(self, admin_id: str) -> AISettings:
        return AISettings(
            id=admin_id,
            model=self.config.get("extraction.default_model", "gpt-4o"),
            max_tokens_per_request=self.config.get("extraction.max_tokens", 4000),
            category_confidence_threshold=self.config.get("categories.confidence_threshold", 0.7),
        )

    def get(self, admin_id: str) -> AISettings:
        doc = self.store.get(SETTINGS_COLLECTION, admin_id)
        if doc is None:
            return self.defaults(admin_id)

        merged = self.defaults(admin_id).model_dump()
        merged.update({key: value for key, value in doc.items() if value is not None})
        return AISettings.model_validate(merged)

    def save(self, settings: AISettings) -> None:
        self.store.set(SETTINGS_COLLECTION, settings.id, settings.model_dump(mode="json"))
        logger.info(f"Saved AI settings for {settings.id}")


class UsageTracker:
    """Accumulates token and cost usage per admin and month in aiUsage"""

    def __init__(self, store, clock=datetime.now):
        self.store = store
        self.clock = clock

    def usage_id(self, admin_id: str, when: Optional[datetime] = None) -> str:
        when = when or self.clock()
        return f"{admin_id}_{when:%Y-%m}"

    def record(self, admin_id: str, model: str, tokens: int, cost: Decimal) -> Dict[str, Any]:
        """
        Add one request's usage to the admin's monthly document

        Args:
            admin_id: Admin who ran the extraction
            model: Model id the request was billed to
            tokens: Total tokens used
            cost: Cost in USD

        Returns:
            The updated usage document
        """
        now = self.clock()
        doc_id = self.usage_id(admin_id, now)
        doc = self.store.get(USAGE_COLLECTION, doc_id) or {
            "admin_id": admin_id,
            "month": f"{now:%Y-%m}",
            "total_requests": 0,
            "total_tokens": 0,
            "total_cost": "0",
            "by_model": {},
            "daily": {},
        }

        doc["total_requests"] += 1
        doc["total_tokens"] += tokens
        doc["total_cost"] = str(Decimal(doc["total_cost"]) + cost)

        model_usage = doc["by_model"].setdefault(model, {"requests": 0, "tokens": 0, "cost": "0"})
        model_usage["requests"] += 1
        model_usage["tokens"] += tokens
        model_usage["cost"] = str(Decimal(model_usage["cost"]) + cost)

        day = f"{now:%Y-%m-%d}"
        daily = doc["daily"].setdefault(day, {"requests": 0, "tokens": 0, "cost": "0"})
        daily["requests"] += 1
        daily["tokens"] += tokens
        daily["cost"] = str(Decimal(daily["cost"]) + cost)

        doc["updated_at"] = now.isoformat()
        self.store.set(USAGE_COLLECTION, doc_id, doc)
        return doc

    def monthly_cost(self, admin_id: str) -> Decimal:
        doc = self.store.get(USAGE_COLLECTION, self.usage_id(admin_id))
        return Decimal(doc["total_cost"]) if doc else Decimal("0")
