import os
from dataclasses import dataclass
from datetime import timedelta
from typing import Mapping, Optional

from dotenv import load_dotenv

from services.errors import ConfigurationError, ValidationError
from services.models import ContainerRef, parse_permissions, validate_policy_id
from services.sas_service import VALID_PROTOCOLS

load_dotenv()

# Storage Configuration
# Name of the env var holding the connection string (Azure Functions convention)
SAS_CONNECTION_SETTING = os.getenv("SAS_CONNECTION_SETTING", "AzureWebJobsStorage")
FALLBACK_CONNECTION_SETTING = "AZURE_STORAGE_CONNECTION_STRING"

# Defaults for the issued policy
DEFAULT_CONTAINER_NAME = "mlblobcontainer2137"
DEFAULT_POLICY_ID = "mlsaspolicy2137"
DEFAULT_POLICY_TTL_MINUTES = 60
DEFAULT_POLICY_PERMISSIONS = "rwldac"
DEFAULT_PROTOCOL = "https"
DEFAULT_REQUEST_TIMEOUT = 30

# Logging Configuration
LOG_FORMAT = os.getenv("LOG_FORMAT", "%(asctime)s - %(levelname)s - [%(name)s] - %(message)s")
LOG_FILE = os.getenv("LOG_FILE", "logs/sas_issuer.log")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")


@dataclass(frozen=True)
class IssuerConfig:
    """Settings for one issuance request."""

    connection_string: Optional[str]
    account_url: Optional[str] = None
    container_name: str = DEFAULT_CONTAINER_NAME
    policy_id: str = DEFAULT_POLICY_ID
    policy_ttl_minutes: int = DEFAULT_POLICY_TTL_MINUTES
    permissions: str = DEFAULT_POLICY_PERMISSIONS
    protocol: str = DEFAULT_PROTOCOL
    request_timeout: int = DEFAULT_REQUEST_TIMEOUT

    @property
    def policy_ttl(self) -> timedelta:
        return timedelta(minutes=self.policy_ttl_minutes)


def _positive_int(environ: Mapping[str, str], name: str, default: int) -> int:
    raw = environ.get(name)
    if raw is None or raw == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}")
    if value <= 0:
        raise ConfigurationError(f"{name} must be positive, got {value}")
    return value


def load_issuer_config(environ: Optional[Mapping[str, str]] = None) -> IssuerConfig:
    """
    Read the issuer settings from the environment.

    Args:
        environ: Mapping to read from; defaults to os.environ

    Returns:
        IssuerConfig with every field resolved

    Raises:
        ConfigurationError: If no storage credential is configured or a value is malformed
    """
    if environ is None:
        environ = os.environ

    setting = environ.get("SAS_CONNECTION_SETTING", SAS_CONNECTION_SETTING)
    connection_string = environ.get(setting) or environ.get(FALLBACK_CONNECTION_SETTING)
    account_url = environ.get("SAS_ACCOUNT_URL")
    if not connection_string and not account_url:
        raise ConfigurationError(
            f"Missing storage connection string: set {setting} or {FALLBACK_CONNECTION_SETTING}"
        )

    protocol = environ.get("SAS_PROTOCOL", DEFAULT_PROTOCOL)
    if protocol not in VALID_PROTOCOLS:
        raise ConfigurationError(f"SAS_PROTOCOL must be 'https' or 'https,http', got {protocol!r}")

    container_name = environ.get("SAS_CONTAINER_NAME", DEFAULT_CONTAINER_NAME)
    policy_id = environ.get("SAS_POLICY_ID", DEFAULT_POLICY_ID)
    permissions = environ.get("SAS_POLICY_PERMISSIONS", DEFAULT_POLICY_PERMISSIONS)
    try:
        ContainerRef(container_name)
        validate_policy_id(policy_id)
        parse_permissions(permissions)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid issuer setting: {e}") from e

    return IssuerConfig(
        connection_string=connection_string,
        account_url=account_url,
        container_name=container_name,
        policy_id=policy_id,
        policy_ttl_minutes=_positive_int(environ, "SAS_POLICY_TTL_MINUTES", DEFAULT_POLICY_TTL_MINUTES),
        permissions=permissions,
        protocol=protocol,
        request_timeout=_positive_int(environ, "SAS_REQUEST_TIMEOUT", DEFAULT_REQUEST_TIMEOUT),
    )
