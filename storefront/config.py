import os
from dataclasses import dataclass, field

from dotenv import load_dotenv
from fastapi import Request


def _env_bool(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).lower() == "true"


@dataclass(frozen=True)
class Settings:
    """
    Process-wide configuration.
    Built once at startup and handed to every component that needs it.
    """

    jwt_secret: str
    database_url: str = "sqlite:///./storefront.db"
    jwt_expiry_days: int = 2
    cookie_secure: bool = False

    mailgun_api_key: str | None = None
    mailgun_domain: str | None = None
    sender_email: str | None = None
    sender_name: str = "Storefront"

    cloudinary_cloud_name: str | None = None
    cloudinary_api_key: str | None = None
    cloudinary_api_secret: str | None = None

    razorpay_key_id: str | None = None
    razorpay_key_secret: str | None = None

    results_per_page: int = 6
    shipping_charges: int = 40
    tax_rate: float = 18.0

    port: int = 4000
    cors_origins: tuple[str, ...] = field(default=("http://localhost:3000",))
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        load_dotenv()

        jwt_secret = os.getenv("JWT_SECRET")
        if not jwt_secret:
            raise RuntimeError("JWT_SECRET must be set in environment variables")

        database_url = os.getenv("DATABASE_URL", "sqlite:///./storefront.db")
        # Heroku/Render style URLs use the scheme SQLAlchemy no longer accepts
        if database_url.startswith("postgres://"):
            database_url = database_url.replace("postgres://", "postgresql://", 1)

        mailgun_domain = os.getenv("MAILGUN_DOMAIN")
        origins = os.getenv("CORS_ORIGINS", "http://localhost:3000")

        return cls(
            jwt_secret=jwt_secret,
            database_url=database_url,
            jwt_expiry_days=int(os.getenv("JWT_EXPIRY_DAYS", "2")),
            cookie_secure=_env_bool("COOKIE_SECURE"),
            mailgun_api_key=os.getenv("MAILGUN_API_KEY"),
            mailgun_domain=mailgun_domain,
            sender_email=os.getenv(
                "SENDER_EMAIL",
                f"postmaster@{mailgun_domain}" if mailgun_domain else None,
            ),
            sender_name=os.getenv("SENDER_NAME", "Storefront"),
            cloudinary_cloud_name=os.getenv("CLOUDINARY_CLOUD_NAME"),
            cloudinary_api_key=os.getenv("CLOUDINARY_API_KEY"),
            cloudinary_api_secret=os.getenv("CLOUDINARY_API_SECRET"),
            razorpay_key_id=os.getenv("RAZORPAY_KEY_ID"),
            razorpay_key_secret=os.getenv("RAZORPAY_KEY_SECRET"),
            results_per_page=int(os.getenv("RESULTS_PER_PAGE", "6")),
            shipping_charges=int(os.getenv("SHIPPING_CHARGES", "40")),
            tax_rate=float(os.getenv("TAX_RATE", "18")),
            port=int(os.getenv("PORT", "4000")),
            cors_origins=tuple(o.strip() for o in origins.split(",") if o.strip()),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        )


# =========================
# DEPENDENCY
# =========================

def get_settings(request: Request) -> Settings:
    return request.app.state.settings
