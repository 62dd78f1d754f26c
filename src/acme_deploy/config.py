"""
Runtime settings for acme-deploy, read from the environment.

Credentials are resolved by boto3's default chain and are not handled here.
"""
import os
from dataclasses import dataclass
from typing import Mapping, Optional

REGION_ENV_KEYS = ("AWS_REGION", "AWS_DEFAULT_REGION", "AWS_SSO_REGION")
ENDPOINT_ENV_KEY = "AWS_ENDPOINT_URL"
POLL_INTERVAL_ENV_KEY = "ACME_DEPLOY_POLL_INTERVAL"
MAX_DEPTH_ENV_KEY = "ACME_DEPLOY_MAX_NESTING_DEPTH"

DEFAULT_REGION = "us-east-1"


@dataclass(frozen=True)
class DeployerConfig:
    region: str = DEFAULT_REGION
    endpoint_url: Optional[str] = None
    poll_interval: float = 2.0
    max_nesting_depth: int = 32

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "DeployerConfig":
        env = os.environ if environ is None else environ
        region = next((env[k] for k in REGION_ENV_KEYS if env.get(k)), DEFAULT_REGION)
        try:
            poll_interval = float(env.get(POLL_INTERVAL_ENV_KEY) or cls.poll_interval)
            max_depth = int(env.get(MAX_DEPTH_ENV_KEY) or cls.max_nesting_depth)
        except ValueError as e:
            raise ValueError(f"Invalid acme-deploy setting in environment: {e}") from e
        if poll_interval < 0:
            raise ValueError(f"{POLL_INTERVAL_ENV_KEY} must not be negative")
        return cls(
            region=region,
            endpoint_url=env.get(ENDPOINT_ENV_KEY) or None,
            poll_interval=poll_interval,
            max_nesting_depth=max_depth,
        )
