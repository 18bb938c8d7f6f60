"""AWS session construction for the three supported credential modes.

Credentials are chosen explicitly from the config and never read inside
the controller:

- ``AMBIENT``: the default boto3 credential chain, pinned to a region.
- ``STATIC_KEYS``: an explicit access key pair (plus optional session token).
- ``ASSUMED_ROLE``: STS AssumeRole credentials, fetched lazily on first use
  and refreshed before they expire.
"""

import logging
import uuid
from enum import Enum
from typing import Any, Dict, Optional

import boto3
from botocore.credentials import CredentialProvider, DeferredRefreshableCredentials
from botocore.session import get_session

from athenaquery.config import AthenaConfig
from athenaquery.errors import ConfigurationError

logger = logging.getLogger(__name__)

ROLE_SESSION_PREFIX = "athenaquery"
ROLE_SESSION_DURATION_SECONDS = 3600


class CredentialMode(str, Enum):
    """How AWS credentials are obtained."""

    AMBIENT = "ambient"
    STATIC_KEYS = "static_keys"
    ASSUMED_ROLE = "assumed_role"


def resolve_credential_mode(config: AthenaConfig) -> CredentialMode:
    """Pick exactly one credential mode for a config."""
    if config.role and config.has_static_keys:
        raise ConfigurationError(
            "Athena config is contradictory: set either role or static access keys, not both."
        )
    if config.role:
        return CredentialMode.ASSUMED_ROLE
    if config.has_static_keys:
        if not config.region:
            raise ConfigurationError("Athena static credentials require a region.")
        return CredentialMode.STATIC_KEYS
    if config.region:
        return CredentialMode.AMBIENT
    raise ConfigurationError(
        "Athena config is insufficient: set region or role (AWS_REGION / ATHENA_ROLE_ARN)."
    )


def new_session(region: Optional[str] = None) -> boto3.Session:
    """Return a session on the default credential chain."""
    return boto3.Session(region_name=region)


def new_session_with_region(region: str) -> boto3.Session:
    """Return a default-chain session pinned to ``region``."""
    logger.info("New AWS session region=%s", region)
    return new_session(region)


def new_session_with_keys(
    region: str,
    access_key_id: str,
    secret_access_key: str,
    session_token: Optional[str] = None,
) -> boto3.Session:
    """Return a session using a static access key pair."""
    logger.info(
        "New AWS session with static keys region=%s access_key=%s",
        region,
        _redact(access_key_id),
    )
    return boto3.Session(
        aws_access_key_id=access_key_id,
        aws_secret_access_key=secret_access_key,
        aws_session_token=session_token,
        region_name=region,
    )


def new_session_with_role(role: str, region: Optional[str] = None) -> boto3.Session:
    """Return a session whose credentials come from assuming ``role``.

    The STS call is deferred until the first signed request.
    """
    logger.info("New AWS session with role=%s region=%s", role, region)
    base_session = new_session(region)
    session_name = f"{ROLE_SESSION_PREFIX}-{uuid.uuid4().hex[:12]}"

    def _refresh() -> Dict[str, Any]:
        sts = base_session.client("sts")
        response = sts.assume_role(
            RoleArn=role,
            RoleSessionName=session_name,
            DurationSeconds=ROLE_SESSION_DURATION_SECONDS,
        )
        credentials = response["Credentials"]
        return {
            "access_key": credentials["AccessKeyId"],
            "secret_key": credentials["SecretAccessKey"],
            "token": credentials["SessionToken"],
            "expiry_time": credentials["Expiration"].isoformat(),
        }

    botocore_session = get_session()
    resolver = botocore_session.get_component("credential_provider")
    resolver.insert_before("env", _AssumeRoleProvider(_refresh))
    if region:
        botocore_session.set_config_variable("region", region)
    return boto3.Session(botocore_session=botocore_session)


class _AssumeRoleProvider(CredentialProvider):
    """Resolves to deferred STS credentials ahead of the default chain."""

    METHOD = "sts-assume-role"
    CANONICAL_NAME = "athenaquery-assume-role"

    def __init__(self, refresh_using) -> None:
        super().__init__()
        self._refresh_using = refresh_using

    def load(self) -> DeferredRefreshableCredentials:
        return DeferredRefreshableCredentials(
            refresh_using=self._refresh_using, method=self.METHOD
        )


def build_session(config: AthenaConfig) -> boto3.Session:
    """Build the session for the config's credential mode."""
    mode = resolve_credential_mode(config)
    if mode == CredentialMode.ASSUMED_ROLE:
        return new_session_with_role(config.role, config.region)
    if mode == CredentialMode.STATIC_KEYS:
        return new_session_with_keys(
            config.region,
            config.access_key_id,
            config.secret_access_key,
            config.session_token,
        )
    return new_session_with_region(config.region)


def _redact(value: Optional[str]) -> str:
    if not value:
        return ""
    return f"{value[:4]}****"
