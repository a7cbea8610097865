"""
Configuration management for the Profit Decisions service
"""
from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    """Application settings"""

    # Application
    app_name: str = "Profit Decisions"
    environment: str = "development"
    debug: bool = True
    log_level: str = "INFO"
    log_dir: str = "logs"
    log_to_file: bool = True

    # API
    api_host: str = "0.0.0.0"
    api_port: int = 8000

    # Database
    database_url: str = "sqlite:///./profit_decisions.db"

    # Merchant defaults (overridable per shop)
    default_shipping_cost: float = 3.50
    default_currency: str = "GBP"

    # Decision engine
    system_min_impact: float = 50.0  # currency/month floor for surfaced decisions
    min_orders_for_decisions: int = 30
    analysis_window_days: int = 90
    max_active_decisions: int = 3

    # Outcome tracking
    outcome_window_days: int = 30
    min_outcome_orders: int = 10

    # Data cache
    order_cache_hours: int = 24

    # Schedules
    enable_scheduler: bool = True
    evaluate_outcomes_schedule: str = "0 3 * * *"
    cache_cleanup_schedule: str = "30 3 * * *"

    class Config:
        env_file = ".env"
        case_sensitive = False


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()
