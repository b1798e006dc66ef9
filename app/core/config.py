from typing import List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    database_url: str = Field(..., alias="DATABASE_URL")

    jwt_secret_key: str = Field(..., alias="JWT_SECRET_KEY")
    jwt_algorithm: str = Field("HS256", alias="JWT_ALGORITHM")
    access_token_expire_minutes: int = Field(60 * 24, alias="ACCESS_TOKEN_EXPIRE_MINUTES")
    bcrypt_rounds: int = Field(12, alias="BCRYPT_ROUNDS")

    cors_origins: List[str] = Field(
        default_factory=lambda: ["http://localhost:5173"],
        alias="CORS_ORIGINS",
    )

    upload_dir: str = Field("uploads", alias="UPLOAD_DIR")
    max_upload_size_mb: int = Field(10, alias="MAX_UPLOAD_SIZE_MB")
    backup_dir: str = Field("backups", alias="BACKUP_DIR")

    resend_api_key: Optional[str] = Field(None, alias="RESEND_API_KEY")
    email_from: str = Field("College Attendance System <noreply@college.edu>", alias="EMAIL_FROM")

    log_level: str = Field("INFO", alias="LOG_LEVEL")

    seed_admin_email: str = Field("admin@college.com", alias="SEED_ADMIN_EMAIL")
    seed_admin_password: str = Field("Admin@123", alias="SEED_ADMIN_PASSWORD")

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"


settings = Settings()
