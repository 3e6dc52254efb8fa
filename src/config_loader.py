import os
from dataclasses import dataclass
from typing import Dict, List, Optional

import yaml
from dotenv import load_dotenv


DEFAULT_BASE_URL = "https://api.freeagent.com/v2"
DEFAULT_USER_AGENT = "Receipt OCR Uploader (you@example.com)"

DEFAULTS = {
    "default_category": "/categories/280",  # General Purchases
    "contact_fallback_name": "Misc Receipts",
    "merchant_max_length": 80,
    "attachment_strategy_order": [
        "multipart_file",
        "multipart_nested",
        "json_attachment",
        "record_update",
        "inline",
    ],
    # per record kind, e.g. {"bill": ["record_update"]}
    "attachment_strategy_overrides": {},
    "standalone_upload_paths": ["attachments", "attachments.json"],
}


def _config_path() -> str:
    override = os.getenv("UPLOADER_CONFIG")
    if override:
        return override
    return os.path.join(os.path.dirname(os.path.dirname(__file__)), "config", "uploader.yml")


def load_uploader_config(path: Optional[str] = None) -> dict:
    path = path or _config_path()
    try:
        with open(path, "r", encoding="utf-8") as f:
            cfg = yaml.safe_load(f) or {}
    except FileNotFoundError:
        return dict(DEFAULTS)

    # shallow merge defaults
    merged = dict(DEFAULTS)
    for k, v in (cfg or {}).items():
        if isinstance(v, dict) and isinstance(merged.get(k), dict):
            mv = dict(merged[k])
            mv.update(v)
            merged[k] = mv
        else:
            merged[k] = v
    return merged


def strategy_order_for(cfg: dict, kind: str) -> List[str]:
    overrides = cfg.get("attachment_strategy_overrides") or {}
    return list(overrides.get(kind) or cfg.get("attachment_strategy_order") or DEFAULTS["attachment_strategy_order"])


def _parse_bool(value: Optional[str], default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class Settings:
    base_url: str
    client_id: str
    client_secret: str
    access_token: str
    refresh_token: str
    user_agent: str
    timeout_s: float
    aws_region: str
    dry_run: bool

    @property
    def is_sandbox(self) -> bool:
        return "sandbox" in self.base_url


def load_settings() -> Settings:
    """Read FreeAgent / AWS settings from the environment (.env included)"""
    load_dotenv()
    return Settings(
        base_url=(os.getenv("FREEAGENT_BASE_URL") or DEFAULT_BASE_URL).rstrip("/"),
        client_id=os.getenv("FREEAGENT_CLIENT_ID", ""),
        client_secret=os.getenv("FREEAGENT_CLIENT_SECRET", ""),
        access_token=os.getenv("FREEAGENT_ACCESS_TOKEN", ""),
        refresh_token=os.getenv("FREEAGENT_REFRESH_TOKEN", ""),
        user_agent=os.getenv("FREEAGENT_USER_AGENT") or DEFAULT_USER_AGENT,
        timeout_s=float(os.getenv("FREEAGENT_TIMEOUT_S", "30")),
        aws_region=os.getenv("AWS_REGION", "eu-west-2"),
        dry_run=_parse_bool(os.getenv("DRY_RUN"), False),
    )


def missing_settings(settings: Settings) -> List[str]:
    required: Dict[str, str] = {
        "FREEAGENT_CLIENT_ID": settings.client_id,
        "FREEAGENT_CLIENT_SECRET": settings.client_secret,
        "FREEAGENT_REFRESH_TOKEN": settings.refresh_token,
    }
    return [name for name, value in required.items() if not value]
