"""Application configuration via environment variables."""

from decimal import Decimal
from typing import Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    app_name: str = "risk-controls"
    app_version: str = "0.1.0"
    debug: bool = False
    log_level: str = "INFO"
    log_json: bool = True

    host: str = "0.0.0.0"
    port: int = 8000

    # Optional JSON file with cooling configs, limit tiers and SCA rows.
    # Relative paths resolve against the repository root.
    policy_seed_path: str = "data/policy_seed.json"

    default_rail: str = "fps"
    default_cooling_hours: int = 24
    default_kyc_level: str = "basic"

    waiver_min_reason_length: int = 5
    credit_min_note_length: int = 5

    sca_amount_threshold: Decimal = Decimal("25")
    sca_max_attempts: int = 3
    sca_expiry_seconds: int = 300

    # Lookback for single_transaction / merchant_payment / large_incoming alerts
    alert_window_hours: int = 24
    # None keeps merchant matching to case-insensitive equality
    merchant_match_threshold: Optional[int] = None

    currency_symbol: str = "£"

    model_config = {"env_prefix": "RISK_", "env_file": ".env", "extra": "ignore"}


settings = Settings()
