import os
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation


@dataclass(frozen=True)
class Settings:
    database_url: str
    environment: str
    log_level: str
    jwt_key: str
    jwt_issuer: str
    jwt_audience: str
    jwt_expires_hours: int
    app_base_url: str | None
    frontend_url: str
    cors_origins: tuple[str, ...]
    trusted_proxies: tuple[str, ...]
    redis_url: str | None
    redis_prefix: str
    login_rate_limit: int
    login_user_rate_limit: int
    login_rate_window: int
    register_rate_limit: int
    register_rate_window: int
    db_pool_min: int
    db_pool_max: int
    db_pool_timeout: float
    db_pool_max_waiting: int
    email_token_ttl_hours: int
    smtp_host: str
    smtp_port: int
    smtp_username: str
    smtp_password: str
    smtp_from_email: str
    smtp_from_name: str
    smtp_timeout: float
    yookassa_api_url: str
    yookassa_shop_id: str
    yookassa_secret_key: str
    yookassa_return_url: str
    yookassa_timeout: float
    premium_price: Decimal
    premium_currency: str
    premium_duration_days: int
    payment_webhook_verify: bool
    files_dir: str

    @property
    def is_development(self) -> bool:
        return self.environment == "development"


def _env_str(name: str, default: str = "") -> str:
    return (os.getenv(name) or "").strip() or default


def _env_bool(name: str, default: bool = False) -> bool:
    raw = (os.getenv(name) or "").strip().lower()
    if not raw:
        return default
    return raw in ("1", "true", "yes", "on")


def _env_list(name: str, default: str = "") -> tuple[str, ...]:
    return tuple(item.strip() for item in _env_str(name, default).split(",") if item.strip())


def _env_decimal(name: str, default: str) -> Decimal:
    try:
        return Decimal(_env_str(name, default))
    except InvalidOperation:
        return Decimal(default)


def load_settings() -> Settings:
    database_url = _env_str("DATABASE_URL")
    if not database_url:
        raise RuntimeError("DATABASE_URL is required")

    jwt_key = _env_str("JWT_KEY")
    jwt_issuer = _env_str("JWT_ISSUER")
    jwt_audience = _env_str("JWT_AUDIENCE")
    if not jwt_key:
        raise RuntimeError("JWT_KEY is required")
    if not jwt_issuer:
        raise RuntimeError("JWT_ISSUER is required")
    if not jwt_audience:
        raise RuntimeError("JWT_AUDIENCE is required")

    db_pool_min = max(1, int(os.getenv("DB_POOL_MIN", "1")))
    db_pool_max = max(db_pool_min, int(os.getenv("DB_POOL_MAX", "10")))

    smtp_username = _env_str("SMTP_USERNAME")

    return Settings(
        database_url=database_url,
        environment=_env_str("APP_ENV", "production").lower(),
        log_level=_env_str("LOG_LEVEL", "INFO").upper(),
        jwt_key=jwt_key,
        jwt_issuer=jwt_issuer,
        jwt_audience=jwt_audience,
        jwt_expires_hours=max(1, int(os.getenv("JWT_EXPIRES_IN_HOURS", "1"))),
        app_base_url=_env_str("APP_BASE_URL").rstrip("/") or None,
        frontend_url=_env_str("FRONTEND_URL", "https://t-finance-web.ru").rstrip("/"),
        cors_origins=_env_list("CORS_ORIGINS", "http://localhost:5173"),
        trusted_proxies=_env_list("TRUSTED_PROXIES"),
        redis_url=_env_str("REDIS_URL") or None,
        redis_prefix=_env_str("REDIS_PREFIX", "tfinance"),
        login_rate_limit=int(os.getenv("LOGIN_RATE_LIMIT", "5")),
        login_user_rate_limit=int(os.getenv("LOGIN_USER_RATE_LIMIT", "5")),
        login_rate_window=int(os.getenv("LOGIN_RATE_WINDOW", "60")),
        register_rate_limit=int(os.getenv("REGISTER_RATE_LIMIT", "3")),
        register_rate_window=int(os.getenv("REGISTER_RATE_WINDOW", "60")),
        db_pool_min=db_pool_min,
        db_pool_max=db_pool_max,
        db_pool_timeout=float(os.getenv("DB_POOL_TIMEOUT", "30")),
        db_pool_max_waiting=int(os.getenv("DB_POOL_MAX_WAITING", "100")),
        email_token_ttl_hours=max(1, int(os.getenv("EMAIL_TOKEN_TTL_HOURS", "24"))),
        smtp_host=_env_str("SMTP_HOST", "smtp.yandex.ru"),
        smtp_port=int(os.getenv("SMTP_PORT", "587")),
        smtp_username=smtp_username,
        smtp_password=_env_str("SMTP_PASSWORD"),
        smtp_from_email=_env_str("SMTP_FROM_EMAIL", smtp_username),
        smtp_from_name=_env_str("SMTP_FROM_NAME", "T-Finance"),
        smtp_timeout=float(os.getenv("SMTP_TIMEOUT", "30")),
        yookassa_api_url=_env_str("YOOKASSA_API_URL", "https://api.yookassa.ru/v3").rstrip("/"),
        yookassa_shop_id=_env_str("YOOKASSA_SHOP_ID"),
        yookassa_secret_key=_env_str("YOOKASSA_SECRET_KEY"),
        yookassa_return_url=_env_str("YOOKASSA_RETURN_URL"),
        yookassa_timeout=float(os.getenv("YOOKASSA_TIMEOUT", "15")),
        premium_price=_env_decimal("PREMIUM_PRICE", "999.00"),
        premium_currency=_env_str("PREMIUM_CURRENCY", "RUB").upper(),
        premium_duration_days=max(1, int(os.getenv("PREMIUM_DURATION_DAYS", "30"))),
        payment_webhook_verify=_env_bool("PAYMENT_WEBHOOK_VERIFY"),
        files_dir=_env_str("FILES_DIR", "/app/Files"),
    )


settings = load_settings()
