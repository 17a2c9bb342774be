"""
Droid Gateway Configuration Settings

Pydantic-based configuration loading from YAML and environment variables.
"""

from __future__ import annotations
from enum import Enum
from pathlib import Path
from typing import Optional, Literal
from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings
import yaml


# =============================================================================
# Gateway Configuration
# =============================================================================

class GatewayConfig(BaseModel):
    """Gateway server configuration"""
    host: str = "0.0.0.0"
    port: int = 3000
    dev_mode: bool = False
    log_level: str = "INFO"
    request_timeout: int = 600
    system_prompt: str = ""
    user_agent: str = "factory-cli/0.19.3"


# =============================================================================
# Auth Configuration
# =============================================================================

class AuthConfig(BaseModel):
    """Upstream credential configuration"""
    token_url: str = "https://api.workos.com/user_management/authenticate"
    client_id: str = "client_01HNM792M5G5G1A2THWPXKFMXB"
    refresh_interval_hours: float = 6.0
    token_valid_hours: float = 8.0
    auth_file: Path = Path.home() / ".factory" / "auth.json"
    env_auth_file: Path = Path("auth.json")
    allow_client_auth: bool = True


# =============================================================================
# Endpoint Configuration
# =============================================================================

class EndpointType(str, Enum):
    """Backend protocol variants"""
    ANTHROPIC = "anthropic"
    OPENAI = "openai"
    COMMON = "common"


class EndpointConfig(BaseModel):
    """Upstream endpoint for one protocol variant"""
    name: EndpointType
    base_url: str


# =============================================================================
# Model Configuration
# =============================================================================

class ModelConfig(BaseModel):
    """Model routing entry"""
    id: str
    name: Optional[str] = None
    type: EndpointType
    reasoning: Optional[Literal["low", "medium", "high", "off"]] = None

    @field_validator("reasoning", mode="before")
    @classmethod
    def normalize_reasoning(cls, value):
        if isinstance(value, str):
            value = value.strip().lower()
            if value not in ("low", "medium", "high", "off"):
                return None
        return value

    @property
    def reasoning_level(self) -> Optional[str]:
        """Reasoning level, or None when disabled"""
        if self.reasoning in ("low", "medium", "high"):
            return self.reasoning
        return None


# =============================================================================
# Complete Settings
# =============================================================================

class Settings(BaseModel):
    """Complete application settings"""
    gateway: GatewayConfig = Field(default_factory=GatewayConfig)
    auth: AuthConfig = Field(default_factory=AuthConfig)
    endpoints: list[EndpointConfig] = Field(default_factory=list)
    models: list[ModelConfig] = Field(default_factory=list)

    @classmethod
    def from_yaml(cls, path: Path) -> "Settings":
        """Load settings from YAML file"""
        if not path.exists():
            return cls()

        with open(path, "r") as f:
            data = yaml.safe_load(f) or {}

        return cls(**data)

    def get_model(self, model_id: str) -> Optional[ModelConfig]:
        """Get model config by id"""
        for model in self.models:
            if model.id == model_id:
                return model
        return None

    def get_endpoint(self, endpoint_type: EndpointType) -> Optional[EndpointConfig]:
        """Get endpoint by protocol type"""
        for endpoint in self.endpoints:
            if endpoint.name == endpoint_type:
                return endpoint
        return None


# =============================================================================
# Environment Settings
# =============================================================================

class EnvSettings(BaseSettings):
    """Environment-based settings"""
    config_path: Path = Path("config/config.yaml")
    log_level: Optional[str] = None
    dev_mode: Optional[bool] = None
    refresh_key: Optional[str] = None
    factory_api_key: Optional[str] = Field(default=None, validation_alias="FACTORY_API_KEY")

    class Config:
        env_prefix = "DROID_"
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"


# =============================================================================
# Settings Loader
# =============================================================================

_settings: Optional[Settings] = None
_env_settings: Optional[EnvSettings] = None


def load_env_settings() -> EnvSettings:
    """Load environment settings"""
    global _env_settings
    if _env_settings is None:
        _env_settings = EnvSettings()
    return _env_settings


def load_settings(config_path: Optional[Path] = None) -> Settings:
    """Load application settings from YAML and environment"""
    global _settings

    if _settings is not None and config_path is None:
        return _settings

    env = load_env_settings()
    settings = Settings.from_yaml(config_path or env.config_path)

    # Environment wins over the file
    if env.log_level:
        settings.gateway.log_level = env.log_level
    if env.dev_mode is not None:
        settings.gateway.dev_mode = env.dev_mode

    _settings = settings
    return _settings
