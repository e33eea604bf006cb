"""PagePick configuration settings."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Literal
from urllib.parse import urlparse

from pydantic import BaseModel, Field, field_validator


def _csv_env(var_name: str) -> list[str]:
    raw = os.getenv(var_name, "")
    return [item.strip().lower().rstrip(".") for item in raw.split(",") if item.strip()]


def _float_env(var_name: str, default: float) -> float:
    raw = os.getenv(var_name, "").strip()
    return float(raw) if raw else default


class SimilarityConfig(BaseModel):
    """Thresholds for the structural similarity matcher.

    Both values are empirical; they are exposed here so they can be tuned
    per deployment without touching the matcher.
    """

    class_overlap_threshold: float = Field(
        default_factory=lambda: _float_env("PAGEPICK_CLASS_OVERLAP_THRESHOLD", 0.3)
    )
    position_similarity_threshold: float = Field(
        default_factory=lambda: _float_env("PAGEPICK_POSITION_SIMILARITY_THRESHOLD", 0.8)
    )

    @field_validator("class_overlap_threshold", "position_similarity_threshold")
    @classmethod
    def _validate_ratio(cls, value: float) -> float:
        if not 0.0 <= value <= 1.0:
            raise ValueError("similarity thresholds must be within [0, 1]")
        return value


class ContainerConfig(BaseModel):
    """Heuristics for locating the repeated card/row around an exemplar."""

    max_marker_depth: int = 8
    max_layout_depth: int = 5
    marker_tokens: tuple[str, ...] = ("card", "item", "product", "menu", "col-")
    layout_tokens: tuple[str, ...] = ("row", "grid")
    layout_displays: tuple[str, ...] = ("grid", "flex")
    min_marker_siblings: int = 2
    min_layout_children: int = 3


class SelectionConfig(BaseModel):
    """Selection session behaviour."""

    hint_duration_s: float = 2.5
    hover_style: dict[str, str] = Field(
        default_factory=lambda: {
            "outline": "2px solid #4DEAC7",
            "outline-offset": "2px",
            "background-color": "rgba(77, 234, 199, 0.1)",
        }
    )

    @field_validator("hint_duration_s")
    @classmethod
    def _validate_hint_duration(cls, value: float) -> float:
        if not 0.5 <= value <= 5.0:
            raise ValueError("hint_duration_s must be between 0.5 and 5 seconds")
        return value


class StoreConfig(BaseModel):
    """Record store configuration."""

    backend: Literal["memory", "jsonl"] = Field(
        default_factory=lambda: os.getenv("PAGEPICK_STORE_BACKEND", "memory")
    )
    data_dir: Path = Field(
        default_factory=lambda: Path(os.getenv("PAGEPICK_DATA_DIR", "./data"))
    )

    @property
    def records_path(self) -> Path:
        return self.data_dir / "records.jsonl"


class BrowserConfig(BaseModel):
    """Browser layer configuration."""

    headless: bool = True
    viewport_width: int = 1400
    viewport_height: int = 900
    user_agent: str | None = None
    locale: str = "en-US"
    navigation_timeout_ms: int = 30000


class URLPolicyConfig(BaseModel):
    """Which page URLs the operator may load."""

    allowed_schemes: list[str] = Field(default_factory=lambda: ["http", "https"])
    allowed_domains: list[str] = Field(
        default_factory=lambda: _csv_env("PAGEPICK_ALLOWED_DOMAINS")
    )
    denied_domains: list[str] = Field(
        default_factory=lambda: _csv_env("PAGEPICK_DENIED_DOMAINS")
    )


class APIConfig(BaseModel):
    """API/security controls from environment."""

    api_token: str = Field(default_factory=lambda: os.getenv("PAGEPICK_API_TOKEN", ""))
    allowed_origins: list[str] = Field(
        default_factory=lambda: APIConfig.parse_allowed_origins(
            os.getenv("PAGEPICK_ALLOWED_ORIGINS", "")
        )
    )

    @staticmethod
    def parse_allowed_origins(value: str) -> list[str]:
        if not value.strip():
            return ["http://localhost", "http://127.0.0.1"]
        origins = [origin.strip() for origin in value.split(",") if origin.strip()]
        if "*" in origins:
            raise ValueError("PAGEPICK_ALLOWED_ORIGINS cannot include '*'")
        return origins

    @field_validator("allowed_origins")
    @classmethod
    def _validate_allowed_origins(cls, value: list[str]) -> list[str]:
        if not value:
            raise ValueError("allowed_origins cannot be empty")
        for origin in value:
            parsed = urlparse(origin)
            if parsed.scheme not in {"http", "https"} or not parsed.netloc:
                raise ValueError(f"Invalid CORS origin: {origin}")
        return value


class PagePickConfig(BaseModel):
    """Root configuration for an extraction workbench."""

    similarity: SimilarityConfig = Field(default_factory=SimilarityConfig)
    containers: ContainerConfig = Field(default_factory=ContainerConfig)
    selection: SelectionConfig = Field(default_factory=SelectionConfig)
    store: StoreConfig = Field(default_factory=StoreConfig)
    browser: BrowserConfig = Field(default_factory=BrowserConfig)
    url_policy: URLPolicyConfig = Field(default_factory=URLPolicyConfig)
    api: APIConfig = Field(default_factory=APIConfig)
    log_level: str = Field(default_factory=lambda: os.getenv("PAGEPICK_LOG_LEVEL", "INFO"))
