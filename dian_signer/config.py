"""
Signing Engine Configuration

Environment-driven settings for the signing engine. The signature policy,
algorithms and claimed role are fixed by the authority and are not
configurable.
"""

import os
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

logger = logging.getLogger(__name__)


class SignerEnvironment(str, Enum):
    """DIAN environments"""
    HABILITACION = "habilitacion"
    PRODUCCION = "produccion"


@dataclass
class SignerConfig:
    """Signing engine settings"""
    environment: SignerEnvironment = SignerEnvironment.HABILITACION

    # Encrypted bundle cache
    cache_ttl_seconds: int = 3600

    # Reject expired / not-yet-valid certificates before signing
    validate_before_signing: bool = True

    # Return documents unsigned when no certificate is configured
    allow_unsigned: bool = False

    # Structured audit trail
    audit_enabled: bool = True

    def __post_init__(self):
        """Validate configuration after initialization"""
        if self.cache_ttl_seconds <= 0:
            raise ValueError("cache_ttl_seconds must be positive")

        if self.is_production:
            if self.allow_unsigned:
                raise ValueError("Unsigned documents are not allowed in production")
            if not self.validate_before_signing:
                raise ValueError("Production requires certificate validation before signing")
        elif self.allow_unsigned:
            logger.warning("Unsigned documents allowed (test mode only)")

    @property
    def is_production(self) -> bool:
        return self.environment == SignerEnvironment.PRODUCCION


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("1", "true", "yes")


class SignerConfigManager:
    """Loads SignerConfig from environment variables"""

    def __init__(self):
        self._config: Optional[SignerConfig] = None

    def get_config(self) -> SignerConfig:
        if self._config is None:
            self._config = self._load_config()
        return self._config

    def reload(self) -> SignerConfig:
        self._config = None
        return self.get_config()

    def _load_config(self) -> SignerConfig:
        env = os.getenv("DIAN_ENVIRONMENT", "habilitacion").lower()
        try:
            environment = SignerEnvironment(env)
        except ValueError:
            raise ValueError(f"Unknown DIAN_ENVIRONMENT: {env}")

        return SignerConfig(
            environment=environment,
            cache_ttl_seconds=int(os.getenv("DIAN_CERT_CACHE_TTL", "3600")),
            validate_before_signing=_env_flag("DIAN_VALIDATE_BEFORE_SIGNING", "true"),
            allow_unsigned=_env_flag("DIAN_ALLOW_UNSIGNED", "false"),
            audit_enabled=_env_flag("DIAN_AUDIT_ENABLED", "true"),
        )


def get_signer_config() -> SignerConfig:
    """Read configuration from the current environment"""
    return SignerConfigManager().get_config()
