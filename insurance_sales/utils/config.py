"""Configuration management using pydantic-settings"""

from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    # Database mode: 'supabase' or 'memory'
    db_mode: str = Field(default="memory", description="Data backend: 'supabase' or 'memory'")
    log_level: str = Field(default="INFO", description="Logging level")

    # Supabase settings
    supabase_url: Optional[str] = Field(default=None, description="Supabase project URL")
    supabase_key: Optional[str] = Field(default=None, description="Supabase anon key")
    supabase_service_key: Optional[str] = Field(default=None, description="Supabase service role key")

    # File storage
    storage_bucket: str = Field(default="documents", description="Bucket holding template attachments")
    signed_url_ttl_seconds: int = Field(default=3600, description="Lifetime of signed download URLs")

    # Signature links
    signature_link_expiration_days: int = Field(default=1, description="Days a signature link stays valid")
    signature_base_url: str = Field(
        default="http://localhost:5173/firmar",
        description="Base URL of the public signing page",
    )

    # Document generation
    generation_lease_seconds: int = Field(default=300, description="Max duration of a generation lease")
    currency_symbol: str = Field(default="Gs.", description="Prefix for formatted amounts")

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"


def get_settings() -> Settings:
    """Get application settings"""
    return Settings()
