"""Configuration management for the Cloud BPA analysis core."""

import os
from typing import Optional
from dataclasses import dataclass

from .infra_parser.archive import ZipLimits


@dataclass
class Config:
    """Central configuration for the parser, the differential analyzer and the API."""

    # AWS Configuration
    aws_region: str = os.getenv("AWS_REGION", "us-east-1")

    # Runtime Configuration
    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    runtime_mode: str = os.getenv("RUNTIME_MODE", "development")

    # ZIP Safety Limits
    max_zip_entries: int = int(os.getenv("MAX_ZIP_ENTRIES", "100"))
    max_zip_entry_bytes: int = int(os.getenv("MAX_ZIP_ENTRY_BYTES", str(50 * 1024 * 1024)))
    max_zip_total_bytes: int = int(os.getenv("MAX_ZIP_TOTAL_BYTES", str(100 * 1024 * 1024)))
    zip_workers: int = int(os.getenv("ZIP_WORKERS", "4"))

    # Differential Analysis
    differential_ttl_days: int = int(os.getenv("DIFFERENTIAL_TTL_DAYS", "90"))
    default_threshold: str = os.getenv("DEFAULT_THRESHOLD", "all")

    # API Configuration
    api_host: str = os.getenv("API_HOST", "0.0.0.0")
    api_port: int = int(os.getenv("API_PORT", "3000"))
    default_created_by: Optional[str] = os.getenv("DEFAULT_CREATED_BY")

    def validate(self) -> None:
        """Validate configuration and raise errors for invalid values."""
        positive_fields = [
            ("max_zip_entries", self.max_zip_entries),
            ("max_zip_entry_bytes", self.max_zip_entry_bytes),
            ("max_zip_total_bytes", self.max_zip_total_bytes),
            ("zip_workers", self.zip_workers),
            ("differential_ttl_days", self.differential_ttl_days),
        ]

        invalid = [field for field, value in positive_fields if value <= 0]
        if self.default_threshold not in ("all", "medium", "high"):
            invalid.append("default_threshold")
        if not self.aws_region:
            invalid.append("aws_region")
        if invalid:
            raise ValueError(f"Invalid configuration fields: {invalid}")

    def zip_limits(self) -> ZipLimits:
        """Archive limits handed to the ZIP reader."""
        return ZipLimits(
            max_entries=self.max_zip_entries,
            max_entry_bytes=self.max_zip_entry_bytes,
            max_total_bytes=self.max_zip_total_bytes,
            workers=self.zip_workers,
        )

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.runtime_mode.lower() == "production"

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.runtime_mode.lower() == "development"
