# backend/videgrenier/config.py
from __future__ import annotations
import os


def _csv(value: str) -> set[str]:
    return {item.strip() for item in value.split(",") if item.strip()}


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/videgrenier.sqlite3 unless DATABASE_URL is set
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        "sqlite:///videgrenier.sqlite3",
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {"pool_pre_ping": True}

    FRONTEND_URL = os.environ.get("FRONTEND_URL", "http://localhost:5173")
    CORS_ORIGINS = _csv(os.environ.get(
        "CORS_ORIGINS",
        "http://localhost:5173,http://127.0.0.1:5173",
    ))

    # Session tokens
    SESSION_ABSOLUTE_TIMEOUT_HOURS = int(os.environ.get("SESSION_ABSOLUTE_TIMEOUT_HOURS", "168"))
    SESSION_IDLE_TIMEOUT_HOURS = int(os.environ.get("SESSION_IDLE_TIMEOUT_HOURS", "24"))

    # Transactional email (Brevo HTTP API). "memory" keeps messages in an outbox.
    MAIL_BACKEND = os.environ.get("MAIL_BACKEND", "brevo")
    BREVO_API_KEY = os.environ.get("BREVO_API_KEY")
    BREVO_API_URL = os.environ.get("BREVO_API_URL", "https://api.brevo.com/v3/smtp/email")
    EMAIL_FROM = os.environ.get("EMAIL_FROM", "no-reply@videgrenierkamer.com")
    EMAIL_FROM_NAME = os.environ.get("EMAIL_FROM_NAME", "Vide Grenier Kamer")
    ADMIN_EMAIL = os.environ.get("ADMIN_EMAIL", "contact@videgrenierkamer.com")

    # Mobile money gateway (CamPay)
    CAMPAY_BASE_URL = os.environ.get("CAMPAY_BASE_URL", "https://demo.campay.net/api")
    CAMPAY_USERNAME = os.environ.get("CAMPAY_USERNAME")
    CAMPAY_PASSWORD = os.environ.get("CAMPAY_PASSWORD")
    CAMPAY_WEBHOOK_SECRET = os.environ.get("CAMPAY_WEBHOOK_SECRET")

    # Product images (Cloudinary)
    CLOUDINARY_CLOUD_NAME = os.environ.get("CLOUDINARY_CLOUD_NAME")
    CLOUDINARY_API_KEY = os.environ.get("CLOUDINARY_API_KEY")
    CLOUDINARY_API_SECRET = os.environ.get("CLOUDINARY_API_SECRET")
    CLOUDINARY_FOLDER = os.environ.get("CLOUDINARY_FOLDER", "vide_grenier_products")
    UPLOAD_MAX_BYTES = int(os.environ.get("UPLOAD_MAX_BYTES", str(5 * 1024 * 1024)))

    HTTP_TIMEOUT_SECONDS = float(os.environ.get("HTTP_TIMEOUT_SECONDS", "30"))


class TestConfig(Config):
    TESTING = True
    SECRET_KEY = "test"
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    SQLALCHEMY_ENGINE_OPTIONS = {}
    MAIL_BACKEND = "memory"
    CAMPAY_USERNAME = "test-user"
    CAMPAY_PASSWORD = "test-pass"
    CAMPAY_WEBHOOK_SECRET = "test-webhook-secret"
    CLOUDINARY_CLOUD_NAME = "test-cloud"
    CLOUDINARY_API_KEY = "test-key"
    CLOUDINARY_API_SECRET = "test-secret"
