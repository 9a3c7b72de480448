from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_name: str = "IPO Result Relay API"
    app_env: str = "development"
    host: str = "0.0.0.0"
    port: int = 3000

    upstream_base_url: str = "https://iporesult.cdsc.com.np"
    result_check_path: str = "/result/result/check"
    user_agent: str = "Mozilla/5.0 (Windows NT 10.0; Win64; x64)"
    request_timeout_seconds: int = 15
    verify_tls: bool = True

    cache_ttl_seconds: int = Field(300, gt=0)
    rate_limit_max_requests: int = Field(100, gt=0)
    rate_limit_window_seconds: int = Field(60, gt=0)
    companies_file: str = "companies.json"

    log_json: bool = False
    verbose: bool = False

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")


settings = Settings()
