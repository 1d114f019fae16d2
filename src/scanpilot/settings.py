"""Pydantic-based settings loaded from YAML with env-var overrides."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings

from scanpilot.models import CandidateProfile


_PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent

DEFAULT_BONUS_TERMS = ["engineer", "software", "mechanical", "new york", "nyc", "remote"]


class AppSettings(BaseSettings):
    """Application configuration with YAML + env var support.

    Env vars are prefixed with ``SCANPILOT_``.
    Example: ``SCANPILOT_OPENAI_API_KEY=sk-...``
    """

    model_config = {"env_prefix": "SCANPILOT_"}

    # --- credentials ---
    email: str = ""
    password: str = ""

    # --- browser ---
    headless: bool = True
    slow_mo: int = 0  # ms between Playwright actions
    max_search_pages: int = 1

    # --- search ---
    search_urls: list[str] = Field(default_factory=list)
    keywords: list[str] = Field(default_factory=list)
    locations: list[str] = Field(default_factory=list)
    date_posted: str = "Past Week"
    sort_order: str = "recent"

    # --- scoring ---
    openai_api_key: str = ""
    openai_model: str = "gpt-4o"
    llm_temperature: float = 0.1
    llm_max_tokens: int = 1000
    llm_content_chars: int = 8000
    fallback_content_chars: int = 2000
    bonus_terms: list[str] = Field(default_factory=lambda: list(DEFAULT_BONUS_TERMS))

    # --- deep scan ---
    deep_scan_concurrency: int = 2
    max_deep_scan_jobs: int = 10
    job_timeout_seconds: float = 300.0
    batch_pause_seconds: float = 1.0
    fetch_timeout_seconds: float = 30.0
    rescan_on_profile_change: bool = False

    # --- digest ---
    digest_to: str = ""
    min_match_score: float = 0.7
    send_digest_on_zero_jobs: bool = False

    # --- smtp ---
    smtp_host: str = ""
    smtp_port: int = 587
    smtp_user: str = ""
    smtp_password: str = ""
    smtp_from: str = ""
    smtp_secure: bool = False

    # --- paths / storage ---
    state_dir: str = ".state"
    index_backend: str = "json"  # json or sqlite
    index_key: str = "job_index"
    plan_file: str = "plan.yaml"

    # --- fixtures ---
    mock_mode: bool = False
    fixtures_file: str = "fixtures.yaml"

    @field_validator("sort_order", "index_backend")
    @classmethod
    def _normalise(cls, v: str) -> str:
        return v.strip().lower()

    @field_validator("deep_scan_concurrency", "max_deep_scan_jobs", "max_search_pages")
    @classmethod
    def _at_least_one(cls, v: int) -> int:
        return max(1, v)

    @field_validator("min_match_score")
    @classmethod
    def _unit_interval(cls, v: float) -> float:
        return min(1.0, max(0.0, v))

    # ---- factory ----

    @classmethod
    def from_yaml(cls, path: str | Path | None = None) -> "AppSettings":
        """Load settings from a YAML file, then overlay env vars.

        Env vars (``SCANPILOT_*``) take priority over YAML values.
        """
        import os

        if path is None:
            path = _PROJECT_ROOT / "settings.yaml"
        path = Path(path)
        raw: dict[str, Any] = {}
        if path.exists():
            with open(path) as fh:
                raw = yaml.safe_load(fh) or {}

        # Let env vars override YAML: remove YAML keys that have an env override
        prefix = "SCANPILOT_"
        for key in list(raw.keys()):
            env_key = f"{prefix}{key.upper()}"
            if env_key in os.environ:
                del raw[key]

        return cls(**raw)

    def smtp_missing(self) -> list[str]:
        """Names of the SMTP fields that still need a value."""
        required = {
            "smtp_host": self.smtp_host,
            "smtp_user": self.smtp_user,
            "smtp_password": self.smtp_password,
        }
        return [name for name, value in required.items() if not value]


def load_plan(path: str | Path | None = None) -> CandidateProfile:
    """Load the candidate profile and search plan from *plan.yaml*."""
    if path is None:
        path = _PROJECT_ROOT / "plan.yaml"
    path = Path(path)
    if not path.exists():
        return CandidateProfile()
    with open(path) as fh:
        data = yaml.safe_load(fh) or {}
    search_urls = []
    for entry in data.get("search_urls", []) or []:
        # entries may be bare URLs or {url: ..., label: ...} mappings
        url = entry.get("url") if isinstance(entry, dict) else entry
        if url:
            search_urls.append(str(url).strip())
    return CandidateProfile(
        profile=str(data.get("profile") or ""),
        scan_prompt=str(data.get("scan_prompt") or ""),
        search_urls=tuple(search_urls),
        search_terms=tuple(str(t) for t in data.get("search_terms", []) or []),
    )
