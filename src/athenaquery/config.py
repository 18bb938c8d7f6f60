from dataclasses import dataclass
from typing import Mapping, Optional

from athenaquery.errors import ConfigurationError
from athenaquery.util.env import get_env_bool, get_env_float, get_env_int, get_env_str

DEFAULT_POLL_INTERVAL_SECONDS = 3.0
DEFAULT_TIMEOUT_SECONDS = 300.0


@dataclass(frozen=True)
class AthenaConfig:
    """Connection, credential and polling settings for Athena."""

    region: Optional[str] = None
    role: Optional[str] = None
    output_location: Optional[str] = None
    workgroup: Optional[str] = None
    access_key_id: Optional[str] = None
    secret_access_key: Optional[str] = None
    session_token: Optional[str] = None
    poll_interval_seconds: float = DEFAULT_POLL_INTERVAL_SECONDS
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS
    lookup_retries: int = 0
    skip_header: bool = False
    max_rows: Optional[int] = None

    @property
    def has_static_keys(self) -> bool:
        return bool(self.access_key_id and self.secret_access_key)

    def validate(self) -> "AthenaConfig":
        """Raise ConfigurationError for missing or contradictory settings."""
        if not self.region and not self.role:
            raise ConfigurationError(
                "Athena config is insufficient: set region or role (AWS_REGION / ATHENA_ROLE_ARN)."
            )
        if bool(self.access_key_id) != bool(self.secret_access_key):
            raise ConfigurationError(
                "Athena static credentials need both access_key_id and secret_access_key."
            )
        if self.poll_interval_seconds <= 0:
            raise ConfigurationError(
                f"poll_interval_seconds must be positive, got {self.poll_interval_seconds}."
            )
        if self.timeout_seconds < 0:
            raise ConfigurationError(
                f"timeout_seconds must not be negative, got {self.timeout_seconds}."
            )
        if self.lookup_retries < 0:
            raise ConfigurationError(
                f"lookup_retries must not be negative, got {self.lookup_retries}."
            )
        if self.max_rows is not None and self.max_rows <= 0:
            raise ConfigurationError(f"max_rows must be positive, got {self.max_rows}.")
        return self

    @classmethod
    def from_env(cls) -> "AthenaConfig":
        """Load Athena config from environment variables."""
        try:
            return cls(
                region=get_env_str("AWS_REGION"),
                role=get_env_str("ATHENA_ROLE_ARN"),
                output_location=get_env_str("ATHENA_OUTPUT_LOCATION"),
                workgroup=get_env_str("ATHENA_WORKGROUP"),
                access_key_id=get_env_str("ATHENA_ACCESS_KEY_ID"),
                secret_access_key=get_env_str("ATHENA_SECRET_ACCESS_KEY"),
                session_token=get_env_str("ATHENA_SESSION_TOKEN"),
                poll_interval_seconds=get_env_float(
                    "ATHENA_POLL_INTERVAL_SECONDS", DEFAULT_POLL_INTERVAL_SECONDS
                ),
                timeout_seconds=get_env_float("ATHENA_TIMEOUT_SECONDS", DEFAULT_TIMEOUT_SECONDS),
                lookup_retries=get_env_int("ATHENA_LOOKUP_RETRIES", 0),
                skip_header=get_env_bool("ATHENA_SKIP_HEADER", False),
                max_rows=get_env_int("ATHENA_MAX_ROWS"),
            )
        except ValueError as exc:
            raise ConfigurationError(str(exc)) from exc

    @classmethod
    def from_mapping(cls, conf: Optional[Mapping[str, str]]) -> "AthenaConfig":
        """Build a config from a flat string mapping.

        Recognized keys: ``region``, ``role``, ``output_location``,
        ``workgroup``, ``access_id``, ``secret_key``, ``session_token``,
        ``maxInterval``, ``maxTimeout``, ``lookup_retries``, ``skip_header``
        and ``max_rows``.

        ``poll_frequency`` is accepted as an alias for ``maxInterval``: one
        interval drives both the timeout budget and the wait between polls.
        """
        if not conf:
            raise ConfigurationError("Athena config mapping is empty.")

        interval = conf.get("maxInterval") or conf.get("poll_frequency")
        timeout = conf.get("maxTimeout")
        return cls(
            region=conf.get("region") or None,
            role=conf.get("role") or None,
            output_location=conf.get("output_location") or None,
            workgroup=conf.get("workgroup") or None,
            access_key_id=conf.get("access_id") or None,
            secret_access_key=conf.get("secret_key") or None,
            session_token=conf.get("session_token") or None,
            poll_interval_seconds=_number(
                "maxInterval", interval, DEFAULT_POLL_INTERVAL_SECONDS
            ),
            timeout_seconds=_number("maxTimeout", timeout, DEFAULT_TIMEOUT_SECONDS),
            lookup_retries=_number("lookup_retries", conf.get("lookup_retries"), 0, int),
            skip_header=_flag("skip_header", conf.get("skip_header")),
            max_rows=_number("max_rows", conf.get("max_rows"), None, int),
        )


def _number(key: str, raw: Optional[str], default, convert=float):
    if raw is None or str(raw).strip() == "":
        return default
    try:
        return convert(raw)
    except ValueError:
        raise ConfigurationError(f"Athena config '{key}' must be a number, got '{raw}'.")


def _flag(key: str, raw: Optional[str]) -> bool:
    if raw is None:
        return False
    lowered = str(raw).strip().lower()
    if lowered in ("true", "1", "yes", "on"):
        return True
    if lowered in ("false", "0", "no", "off", ""):
        return False
    raise ConfigurationError(f"Athena config '{key}' must be a boolean, got '{raw}'.")
