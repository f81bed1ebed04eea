"""
Configuration
=============

Centralized configuration management using Pydantic Settings.
Supports PKGLENS_* environment variables and .env files.
"""

import os
from typing import List, Optional

from dotenv import load_dotenv
from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from pkglens.constants import DependencyMode

load_dotenv()


class Settings(BaseSettings):
    """Runtime settings with environment variable support."""

    model_config = SettingsConfigDict(
        env_prefix="PKGLENS_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # Logging
    LOG_LEVEL: str = "WARNING"

    # Collection
    DEFAULT_DEPENDENCIES: DependencyMode = DependencyMode.RECURSIVE
    INCLUDE_BASE: bool = False

    # None means: only on Windows, where DLL manifests are written at install time
    NATIVE_CHECKSUMS: Optional[bool] = None

    # Overrides sys.path as the list of library roots
    LIBRARY_PATHS: Optional[List[str]] = None

    # Label used for packages installed from the public index
    PUBLIC_REPOSITORY: str = "PyPI"

    @field_validator("DEFAULT_DEPENDENCIES")
    @classmethod
    def validate_default_dependencies(cls, v: DependencyMode) -> DependencyMode:
        if v is DependencyMode.DEFAULT:
            raise ValueError("DEFAULT_DEPENDENCIES must name a concrete mode, not 'default'")
        return v

    @property
    def native_checks(self) -> bool:
        if self.NATIVE_CHECKSUMS is None:
            return os.name == "nt"
        return self.NATIVE_CHECKSUMS


settings = Settings()
