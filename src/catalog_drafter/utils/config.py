import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from dotenv import load_dotenv

logger = logging.getLogger(__name__)

load_dotenv()

KNOWN_BRANDS = [
    "Apple", "Samsung", "Sony", "LG", "Dell", "HP", "Lenovo", "Asus",
    "Acer", "Microsoft", "Google", "Amazon", "Xiaomi", "Huawei", "OnePlus",
    "Oppo", "Vivo", "Realme", "Motorola", "Nokia", "Panasonic", "Philips",
    "Bosch", "Siemens", "Canon", "Nikon", "Fujifilm", "GoPro", "DJI",
    "Intel", "AMD", "Nvidia", "Corsair", "Logitech", "Razer", "SteelSeries",
]


class ConfigManager:
    """Manages system configuration and settings"""

    def __init__(self, config_path: Optional[str] = None):
        if config_path is None:
            config_path = os.getenv("CATALOG_DRAFTER_CONFIG") or (
                Path(__file__).resolve().parents[3] / "config" / "settings.yaml"
            )

        self.config_path = Path(config_path)
        self.config = self._load_config()

    def _load_config(self) -> Dict[str, Any]:
        """Load configuration from YAML file, layered over the defaults"""
        config = self._get_default_config()
        if not self.config_path.exists():
            return config

        try:
            with open(self.config_path, "r", encoding="utf-8") as f:
                loaded = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            logger.warning(f"Failed to load config from {self.config_path}: {e}")
            return config

        return _merge(config, loaded)

    def _get_default_config(self) -> Dict[str, Any]:
        """Get default configuration"""
        return {
            "fetching": {
                "timeout_seconds": 15,
                "min_body_bytes": 100,
                "user_agent": "Mozilla/5.0 (compatible; CatalogDrafter/1.0)",
                "proxies": [
                    "https://api.allorigins.win/raw?url={url}",
                    "https://corsproxy.io/?{url}",
                    "https://api.codetabs.com/v1/proxy?quest={url}",
                    "https://corsproxy.org/?{url}",
                    "https://thingproxy.freeboard.io/fetch/{url}",
                ],
                "direct_fallback": True,
            },
            "extraction": {
                "default_model": "gpt-4o",
                "max_tokens": 4000,
                "temperature": 0.2,
                "max_vision_images": 4,
                "max_html_chars": 15000,
                "min_cleaned_html_chars": 100,
                "deprecated_models": [
                    "gpt-4-vision-preview",
                    "gpt-4-32k",
                    "gpt-4-0314",
                    "gpt-3.5-turbo-0301",
                    "text-davinci-003",
                ],
            },
            "retry": {"max_attempts": 3, "base_delay_seconds": 1.0},
            "categories": {"confidence_threshold": 0.7},
            "currency": {"target": "INR", "fallback_rate": 83.5},
            "branding": {
                "brand_name": "",
                "sku_prefix": "",
                "known_brands": list(KNOWN_BRANDS),
            },
            "storage": {"data_dir": "./data", "image_dir": "./data/images"},
            "logging": {
                "level": "INFO",
                "file": "./logs/catalog_drafter.log",
            },
        }

    def get(self, key: str, default: Any = None) -> Any:
        """Get configuration value using dot notation"""
        keys = key.split(".")
        value = self.config

        for k in keys:
            if isinstance(value, dict) and k in value:
                value = value[k]
            else:
                return default

        return value

    def get_api_key(self, service: str) -> Optional[str]:
        """Get API key from environment variables"""
        env_var_map = {
            "openai": "OPENAI_API_KEY",
        }

        env_var = env_var_map.get(service.lower())
        if env_var:
            return os.getenv(env_var)

        return None

    def save_config(self) -> None:
        """Save current configuration to file"""
        self.config_path.parent.mkdir(parents=True, exist_ok=True)

        with open(self.config_path, "w", encoding="utf-8") as f:
            yaml.dump(self.config, f, default_flow_style=False, indent=2)

    def update(self, key: str, value: Any) -> None:
        """Update configuration value using dot notation"""
        keys = key.split(".")
        config_ref = self.config

        for k in keys[:-1]:
            if k not in config_ref:
                config_ref[k] = {}
            config_ref = config_ref[k]

        config_ref[keys[-1]] = value


def _merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged
