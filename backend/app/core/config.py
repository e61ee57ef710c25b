"""
Application settings.

All configuration is read by pydantic-settings from environment variables and
the project-level ``.env`` file (one directory above ``backend/``).

Precedence:
1. environment variables
2. ``.env``
3. defaults declared below
"""
import secrets
import warnings
from typing import Annotated, Any, Literal

from pydantic import (
    AnyUrl,
    BeforeValidator,
    HttpUrl,
    PostgresDsn,
    computed_field,
    model_validator,
)
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing_extensions import Self


def parse_cors(v: Any) -> list[str] | str:
    """
    Parse ``BACKEND_CORS_ORIGINS``.

    Accepts a comma separated string (``"http://a,http://b"``) or a list.

    Raises:
        ValueError: for any other input type
    """
    if isinstance(v, str) and not v.startswith("["):
        return [i.strip() for i in v.split(",") if i.strip()]
    elif isinstance(v, list | str):
        return v
    raise ValueError(v)


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file="../.env",
        env_ignore_empty=True,
        extra="ignore",
    )
    API_V1_STR: str = "/api/v1"
    SECRET_KEY: str = secrets.token_urlsafe(32)  # JWT signing key
    ACCESS_TOKEN_EXPIRE_DAYS: int = 7
    ENVIRONMENT: Literal["local", "staging", "production"] = "local"
    LOG_LEVEL: str = "INFO"

    BACKEND_CORS_ORIGINS: Annotated[
        list[AnyUrl] | str, BeforeValidator(parse_cors)
    ] = []

    @computed_field  # type: ignore[prop-decorator]
    @property
    def all_cors_origins(self) -> list[str]:
        return [str(origin).rstrip("/") for origin in self.BACKEND_CORS_ORIGINS]

    PROJECT_NAME: str = "Ebook Store"
    SENTRY_DSN: HttpUrl | None = None

    SNOWFLAKE_NODE_ID: int = 0

    POSTGRES_SERVER: str = "localhost"
    POSTGRES_PORT: int = 5432
    POSTGRES_USER: str = "postgres"
    POSTGRES_PASSWORD: str = ""
    POSTGRES_DB: str = ""

    @computed_field  # type: ignore[prop-decorator]
    @property
    def SQLALCHEMY_DATABASE_URI(self) -> PostgresDsn:
        return PostgresDsn.build(
            scheme="postgresql+psycopg",
            username=self.POSTGRES_USER,
            password=self.POSTGRES_PASSWORD,
            host=self.POSTGRES_SERVER,
            port=self.POSTGRES_PORT,
            path=self.POSTGRES_DB,
        )

    # Redis (receipt job stream)
    REDIS_HOST: str = "localhost"
    REDIS_PORT: int = 6379
    REDIS_DB: int = 0
    REDIS_PASSWORD: str | None = None
    REDIS_SOCKET_TIMEOUT_SECONDS: float = 2.0
    RECEIPT_STREAM: str = "payment_receipt_email"
    CART_DISCOUNT_TTL_SECONDS: int = 7 * 24 * 3600  # how long an applied code stays on a cart

    # Paymob (Accept) payment processor
    PAYMOB_BASE_URL: str = "https://accept.paymob.com/api"
    PAYMOB_API_KEY: str | None = None
    PAYMOB_INTEGRATION_ID: int | None = None
    PAYMOB_IFRAME_ID: int | None = None
    PAYMOB_HMAC_SECRET: str | None = None
    PAYMOB_CURRENCY: str = "EGP"
    PAYMOB_TIMEOUT_SECONDS: float = 15.0
    PAYMOB_PAYMENT_KEY_EXPIRATION: int = 3600  # seconds the payment link stays valid

    def _check_default_secret(self, var_name: str, value: str | None) -> None:
        """
        Refuse ``changethis`` placeholders outside local development.

        Raises:
            ValueError: when a placeholder is used in staging/production
        """
        if value == "changethis":
            message = (
                f'The value of {var_name} is "changethis", '
                "for security, please change it, at least for deployments."
            )
            if self.ENVIRONMENT == "local":
                warnings.warn(message, stacklevel=1)
            else:
                raise ValueError(message)

    @model_validator(mode="after")
    def _enforce_non_default_secrets(self) -> Self:
        self._check_default_secret("SECRET_KEY", self.SECRET_KEY)
        self._check_default_secret("POSTGRES_PASSWORD", self.POSTGRES_PASSWORD)
        self._check_default_secret("PAYMOB_HMAC_SECRET", self.PAYMOB_HMAC_SECRET)

        return self


settings = Settings()  # type: ignore
