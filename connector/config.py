"""Configuration settings for the Bridge connector."""
from typing import Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Algoan (lending platform)
    algoan_base_url: str = "http://localhost:8080"
    algoan_client_id: str = "connector"
    algoan_client_secret: str = "connector-secret"
    rest_hooks_secret: str = "rest-hooks-secret"
    hooks_target_url: str = "http://localhost:8000/hooks"
    event_list: list[str] = ["aggregator_link_required", "bank_details_required"]
    load_service_accounts_on_startup: bool = True

    # Bridge (bank aggregator)
    bridge_base_url: str = "https://api.bridgeapi.io"
    bridge_version: str = "2021-06-01"
    bridge_client_id: Optional[str] = None
    bridge_client_secret: Optional[str] = None
    bridge_user_email_domain: str = "algoan-bridge.com"
    transactions_page_size: int = 500

    # Polling (seconds)
    synchronization_timeout: float = 60.0
    synchronization_waiting_time: float = 5.0

    # History to collect when the tenant does not override it
    default_nb_of_months: int = 3

    http_timeout: float = 30.0

    log_level: str = "INFO"

    # Service identification
    service_name: str = "bridge-connector"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


settings = Settings()
