"""Central configuration loader for Crypto-Analyst."""

import os
from pathlib import Path

import yaml
from dotenv import load_dotenv

# Project root is the parent of the crypto_analyst/ directory
PROJECT_ROOT = Path(__file__).resolve().parent.parent

load_dotenv(PROJECT_ROOT / ".env")


def load_settings() -> dict:
    """Load settings from configs/settings.yaml."""
    settings_path = PROJECT_ROOT / "configs" / "settings.yaml"
    if not settings_path.exists():
        return {}
    with open(settings_path) as f:
        return yaml.safe_load(f) or {}


SETTINGS = load_settings()


# --- API Keys ---
class Keys:
    TAVILY = os.getenv("TAVILY_API_KEY", "")
    ANTHROPIC = os.getenv("ANTHROPIC_API_KEY", "")
    COINGECKO = os.getenv("COINGECKO_API_KEY", "")


# --- Paths ---
class Paths:
    ROOT = PROJECT_ROOT
    REPORTS_OUTPUT = PROJECT_ROOT / "reports" / "output"
    REPORTS_TEMPLATES = PROJECT_ROOT / "reports" / "templates"


def section(name: str) -> dict:
    """Return a top-level settings section, or an empty dict."""
    value = SETTINGS.get(name, {})
    return value if isinstance(value, dict) else {}
