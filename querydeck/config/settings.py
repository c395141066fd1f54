"""
Application settings loaded from environment variables.

Note: connection credentials and saved connections are owned by the
backend service reachable at BACKEND_URL. Only workspace behaviour
(auto-limit, page size, timeouts) and the HTTP surface are configured here.
"""

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """
    Workspace settings loaded from environment variables.
    """

    # Debug mode
    debug_mode: bool = Field(default=False, alias="DEBUG_MODE")

    # -------------------------------------------------------------------------
    # Query Settings
    # -------------------------------------------------------------------------

    # Row cap injected into ad-hoc SELECT statements (0 disables rewriting)
    auto_limit: int = Field(default=100, alias="AUTO_LIMIT")
    # Rows per window when browsing a table
    page_size: int = Field(default=50, alias="PAGE_SIZE")
    query_timeout: int = Field(default=30, alias="QUERY_TIMEOUT")

    # -------------------------------------------------------------------------
    # Query Backend
    # -------------------------------------------------------------------------

    backend_url: str = Field(default="http://127.0.0.1:8400", alias="BACKEND_URL")
    backend_api_key: str = Field(default="", alias="BACKEND_API_KEY")
    backend_retry_attempts: int = Field(default=2, alias="BACKEND_RETRY_ATTEMPTS")
    backend_retry_delay: float = Field(default=0.25, alias="BACKEND_RETRY_DELAY")

    # Security
    api_key: str = Field(default="", alias="API_KEY")  # Optional API key for auth
    allowed_origins: str = Field(default="*", alias="ALLOWED_ORIGINS")

    # Server
    host: str = Field(default="0.0.0.0", alias="HOST")
    port: int = Field(default=8300, alias="PORT")

    class Config:
        env_file = ".env"
        extra = "ignore"


settings = Settings()
