import os
from functools import lru_cache
from pathlib import Path


class Settings:
    def __init__(
        self,
        database_url: str,
        timezone: str,
        currency: str,
        token_secret: str,
        token_max_age_hours: int,
        cache_ttl_secs: float,
        session_ttl_hours: int,
        default_bank: str,
        fx_fee_bps: int,
    ) -> None:
        self.database_url = database_url
        self.timezone = timezone
        self.currency = currency
        self.token_secret = token_secret
        self.token_max_age_hours = token_max_age_hours
        self.cache_ttl_secs = cache_ttl_secs
        self.session_ttl_hours = session_ttl_hours
        self.default_bank = default_bank
        self.fx_fee_bps = fx_fee_bps


def _ensure_data_dir() -> Path:
    root = Path(os.getenv("PAYMEE_DATA_DIR", "./data")).resolve()
    root.mkdir(parents=True, exist_ok=True)
    return root


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    data_dir = _ensure_data_dir()
    default_db = data_dir / "paymee.db"
    database_url = os.getenv("PAYMEE_DATABASE_URL", f"sqlite:///{default_db}")
    timezone = os.getenv("PAYMEE_TIMEZONE", "Africa/Lagos")
    currency = os.getenv("PAYMEE_CURRENCY", "NGN")
    token_secret = os.getenv(
        "PAYMEE_TOKEN_SECRET",
        "5d0c1f8e2b7a44c39a6e0f1d8b2c7e4a91f3d6b8c0e2a4f6b8d0c2e4f6a8b0c2",
    )
    token_max_age_hours = int(os.getenv("PAYMEE_TOKEN_MAX_AGE_HOURS", "24"))
    cache_ttl_secs = float(os.getenv("PAYMEE_CACHE_TTL_SECS", "30"))
    session_ttl_hours = int(os.getenv("PAYMEE_SESSION_TTL_HOURS", "168"))
    default_bank = os.getenv("PAYMEE_DEFAULT_BANK", "PayMee Bank")
    fx_fee_bps = int(os.getenv("PAYMEE_FX_FEE_BPS", "150"))
    return Settings(
        database_url=database_url,
        timezone=timezone,
        currency=currency,
        token_secret=token_secret,
        token_max_age_hours=token_max_age_hours,
        cache_ttl_secs=cache_ttl_secs,
        session_ttl_hours=session_ttl_hours,
        default_bank=default_bank,
        fx_fee_bps=fx_fee_bps,
    )
