# app/config.py
from pathlib import Path
from typing import Literal
from pydantic_settings import BaseSettings

class Settings(BaseSettings):
    # Served filesystem root
    DATA_DIR: Path = Path("./data")

    # user.json and .permissions live here (kept outside DATA_DIR by default)
    STATE_DIR: Path = Path("./.user")

    # Path-scoped authorization
    PERMISSIONS_ENABLED: bool = False
    PERMISSION_PREFIX_ONLY: bool = False

    # Sessions
    SESSION_AUTH_ENABLED: bool = True
    SESSION_TOKEN_MODE: Literal["username", "random"] = "username"
    SESSION_IDLE_TIMEOUT_SEC: float | None = None

    # First-run account (weak on purpose, override in .env)
    DEFAULT_ADMIN_USERNAME: str = "admin"
    DEFAULT_ADMIN_PASSWORD: str = "admin"
    BOOTSTRAP_FAILURE_FATAL: bool = False

    # File operations
    WRITABLE_EXTENSIONS: str = ".md"
    MAX_UPLOAD_BYTES: int = 20 << 20

    # HTTP transport
    HTTP_HOST: str = "127.0.0.1"
    HTTP_PORT: int = 8080
    CORS_ALLOW_ORIGINS: str = "*"
    STATIC_DIR: Path = Path("./frontend/dist")

    # Logging
    LOG_LEVEL: str = "INFO"

    class Config:
        env_file = ".env"

    @property
    def writable_extensions(self) -> set[str]:
        return {e.strip().lower() for e in self.WRITABLE_EXTENSIONS.split(",") if e.strip()}

    @property
    def cors_origins(self) -> list[str]:
        return [o.strip() for o in self.CORS_ALLOW_ORIGINS.split(",") if o.strip()]
