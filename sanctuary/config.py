"""Environment-driven settings.

Values come from the process environment after load_dotenv() has read the
project's .env file. Without LLM_PROVIDER_URL the app runs on EchoGateway.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel

from sanctuary.llm import EchoGateway, Gateway, HttpGateway, ProviderFormat, ThrottledGateway

logger = logging.getLogger(__name__)

ROOT = Path(__file__).parent.parent


class Settings(BaseModel):
    data_dir: Path = ROOT / "data"
    world_file: Path | None = None
    provider_url: str = ""
    api_key: str = ""
    provider_format: ProviderFormat = "koboldcpp"
    model: str = ""
    timeout: float = 120.0
    min_interval: float = 0.8
    max_retries: int = 3
    backoff_base: float = 1.0
    host: str = "0.0.0.0"
    port: int = 13013


def load_settings(env_file: Path | None = None) -> Settings:
    """Read settings from the environment (and .env, if present)."""
    load_dotenv(env_file or ROOT / ".env")
    env = {
        "data_dir": os.getenv("SANCTUARY_DATA_DIR"),
        "world_file": os.getenv("SANCTUARY_WORLD_FILE"),
        "provider_url": os.getenv("LLM_PROVIDER_URL"),
        "api_key": os.getenv("LLM_API_KEY"),
        "provider_format": os.getenv("LLM_PROVIDER_FORMAT"),
        "model": os.getenv("LLM_MODEL"),
        "timeout": os.getenv("LLM_TIMEOUT"),
        "min_interval": os.getenv("LLM_MIN_INTERVAL"),
        "max_retries": os.getenv("LLM_MAX_RETRIES"),
        "backoff_base": os.getenv("LLM_BACKOFF_BASE"),
        "host": os.getenv("HOST"),
        "port": os.getenv("PORT"),
    }
    return Settings.model_validate({k: v for k, v in env.items() if v})


def build_gateway(settings: Settings) -> Gateway:
    if not settings.provider_url:
        logger.info("LLM_PROVIDER_URL not set, using EchoGateway")
        return EchoGateway()
    http = HttpGateway(
        provider_url=settings.provider_url,
        api_key=settings.api_key,
        provider_format=settings.provider_format,
        model=settings.model,
        timeout=settings.timeout,
    )
    return ThrottledGateway(
        http,
        min_interval=settings.min_interval,
        max_retries=settings.max_retries,
        backoff_base=settings.backoff_base,
    )
