"""Configuration and logging setup for the BusinessObjects REST client."""

import json
import logging
import os
import pathlib

import pydantic
import structlog

from . import biprws
from .flatten import CollisionPolicy
from .metrics import RequestMetrics

CONFIG_ENV_VAR = "SAPBO_CLIENT_CONFIG_PATH"
logger = structlog.get_logger(__name__)


class ClientConfig(pydantic.BaseModel):
    """Configuration for the BusinessObjects REST client."""

    base_url: str = pydantic.Field(
        description="Server URL without the /biprws suffix",
        min_length=1,
    )
    timeout: float = pydantic.Field(
        biprws.DEFAULT_TIMEOUT,
        description="Request timeout in seconds",
        gt=0,
    )
    username: str | None = pydantic.Field(None, description="Logon user name")
    password: pydantic.SecretStr | None = pydantic.Field(
        None,
        description="Logon password",
    )
    auth_type: biprws.AuthType = pydantic.Field(
        biprws.DEFAULT_AUTH_TYPE,
        description="Authentication type used at logon",
    )
    collision: CollisionPolicy = pydantic.Field(
        CollisionPolicy.OVERWRITE,
        description="How to handle flattened column name collisions",
    )
    log_level: str = pydantic.Field("INFO", description="Logging level")


def configure_logging(log_level_name: str) -> None:
    """Configure structlog for logfmt output."""
    log_level = getattr(logging, log_level_name.upper(), logging.INFO)
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.EventRenamer("msg"),
            structlog.processors.format_exc_info,
            structlog.processors.LogfmtRenderer(
                key_order=("timestamp", "level", "msg"),
            ),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def load_config(config_path: str) -> ClientConfig:
    """Load configuration from JSON file."""
    path = pathlib.Path(config_path)
    if not path.exists():
        msg = f"Configuration file not found: {config_path}"
        raise FileNotFoundError(msg)

    with path.open("r") as f:
        data = json.load(f)

    return ClientConfig(**data)


def create_client(
    config: ClientConfig,
    metrics: RequestMetrics | None = None,
) -> biprws.SapBoRestClient:
    """Construct a REST client from validated config."""
    client = biprws.SapBoRestClient(
        base_url=config.base_url,
        timeout=config.timeout,
        metrics=metrics,
        collision=config.collision,
    )
    logger.info("Created REST client", base_url=config.base_url)
    return client


def log_on_from_config(
    client: biprws.SapBoRestClient,
    config: ClientConfig,
) -> biprws.Session:
    """Log on with the credentials stored in the config.

    Raises:
        ValueError: If the config has no username or password.
    """
    if not config.username or config.password is None:
        msg = "username and password must be configured to log on"
        raise ValueError(msg)
    return client.log_on(
        username=config.username,
        password=config.password.get_secret_value(),
        auth_type=config.auth_type,
    )


def create_client_from_env(
    config_path: str | None = None,
) -> tuple[biprws.SapBoRestClient, ClientConfig]:
    """Create a client using a config path or the environment default."""
    resolved_path = config_path or os.environ.get(CONFIG_ENV_VAR, "sapbo.json")
    config = load_config(resolved_path)
    configure_logging(config.log_level)
    return create_client(config), config
