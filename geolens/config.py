"""Configuration helpers for environment-backed runtime settings."""

from __future__ import annotations

from dataclasses import dataclass, field
import os
from pathlib import Path
from typing import Any

import yaml


def _get_env(name: str) -> str | None:
    raw = os.getenv(name)
    if raw is None:
        return None
    value = raw.strip()
    return value or None


def _first_env(*names: str) -> str | None:
    for name in names:
        value = _get_env(name)
        if value:
            return value
    return None


def _float_env(name: str, default: float) -> float:
    raw = _get_env(name)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}") from None


@dataclass(frozen=True)
class BackendConfig:
    """Resolved completion backend settings from environment variables."""

    api_key: str | None
    provider: str
    api_base: str | None
    timeout_s: float


@dataclass(frozen=True)
class SearchConfig:
    """Resolved web search settings from environment variables."""

    api_key: str | None


def load_backend_config() -> BackendConfig:
    """Load completion backend config from environment variables."""

    return BackendConfig(
        api_key=_first_env("GEMINI_API_KEY", "GOOGLE_GEN_AI_KEY"),
        provider=_get_env("GEOLENS_MODEL_PROVIDER") or "gemini",
        api_base=_get_env("GEOLENS_API_BASE"),
        timeout_s=_float_env("GEOLENS_REQUEST_TIMEOUT", 60.0),
    )


def load_search_config() -> SearchConfig:
    """Load Tavily config from environment variables."""

    return SearchConfig(api_key=_first_env("TAVILY_API_KEY", "VITE_TAVILY_API_KEY"))


@dataclass(frozen=True)
class BrandConfig:
    """Brand being monitored, loaded from a YAML file."""

    brand_name: str
    industry: str
    category: str
    competitors: list[str] = field(default_factory=list)
    product_names: list[str] = field(default_factory=list)


def _str_list(value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [part.strip() for part in value.split(",") if part.strip()]
    if isinstance(value, list):
        return [str(item).strip() for item in value if str(item).strip()]
    raise ValueError(f"Expected a list of strings, got {type(value).__name__}")


def brand_config_from_dict(data: dict[str, Any]) -> BrandConfig:
    brand_name = str(data.get("brand_name") or "").strip()
    if not brand_name:
        raise ValueError("brand_name is required")
    industry = str(data.get("industry") or "").strip()
    if not industry:
        raise ValueError("industry is required")
    # category falls back to industry, as in the monitoring form
    category = str(data.get("category") or industry).strip()
    return BrandConfig(
        brand_name=brand_name,
        industry=industry,
        category=category,
        competitors=_str_list(data.get("competitors")),
        product_names=_str_list(data.get("product_names")),
    )


def load_brand_config(path: str | Path) -> BrandConfig:
    """Load a brand config YAML file."""
    with open(path, encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: expected a mapping at the top level")
    return brand_config_from_dict(data)
