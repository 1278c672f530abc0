from typing import List

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False, extra="ignore")

    # Database
    database_url: str = "sqlite+aiosqlite:///./aurum.db"
    sql_echo: bool = False

    # Execution venue bridge (local HTTP listener in front of the trading terminal)
    bridge_url: str = "http://127.0.0.1:8787"
    bridge_timeout_seconds: float = 10.0
    paper_trading: bool = True  # Acknowledge commands in-process instead of sending them to the bridge

    # Instrument
    trading_symbol: str = "XAUUSD"
    contract_multiplier: float = 100.0  # P/L per 1.0 price move per lot
    default_volume: float = 0.1  # Lots proposed by the strategy before clamping
    default_confidence: str = "Moderate"

    # Indicator parameters
    ema_short_period: int = 9
    ema_long_period: int = 21
    rsi_period: int = 14
    atr_period: int = 14
    candle_timeframe: str = "ONE_MINUTE"
    candle_lookback: int = 100
    indicator_max_age_seconds: int = 120

    # Bracket derivation (ATR multiples)
    stop_loss_atr_multiplier: float = 1.5
    take_profit_atr_multiplier: float = 2.0

    # Cadence
    cycle_interval_seconds: int = 15
    update_log_interval_seconds: int = 60
    monitor_tick_seconds: int = 5

    # Execution command channel
    command_ack_timeout_seconds: float = 10.0
    command_max_attempts: int = 3
    command_retry_backoff_seconds: float = 0.5

    # Trading day boundary, expressed as an offset from UTC (0 = UTC midnight)
    trading_day_utc_offset_hours: int = 0

    # Advisory (optional, never on the trading path)
    # Options: anthropic, openai, or empty to disable
    advisory_provider: str = ""
    anthropic_api_key: str = ""
    openai_api_key: str = ""
    advisory_model: str = ""
    advisory_timeout_seconds: float = 30.0

    # API
    cors_origins: List[str] = ["http://localhost:3000", "http://localhost:5173"]
    log_level: str = "INFO"

    @field_validator("trading_day_utc_offset_hours")
    @classmethod
    def validate_offset(cls, v: int) -> int:
        if not -12 <= v <= 14:
            raise ValueError("trading_day_utc_offset_hours must be between -12 and 14")
        return v

    @field_validator("advisory_provider")
    @classmethod
    def normalize_provider(cls, v: str) -> str:
        return (v or "").strip().lower()

    def get_cors_origins_list(self) -> List[str]:
        return list(self.cors_origins)


settings = Settings()
