"""AWS session setup and the optional YAML defaults file."""

from __future__ import annotations

import logging
import os
from typing import Any

import boto3
import yaml
from botocore.exceptions import ProfileNotFound

from cribl_storage_tool.bucket_file import ACCOUNT_ID_PATTERN
from cribl_storage_tool.errors import ConfigError

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_FILE = "storage_tool.yaml"
IAM_CONFIG_KEYS = ("role", "account", "external_id", "workspace", "workergroup", "action", "buckets")


def create_session(profile: str | None = None, region: str | None = None) -> boto3.Session:
    """Build a boto3 session from an optional profile and region."""
    session_kwargs: dict[str, str] = {}
    if profile:
        logger.debug("Using AWS profile %s", profile)
        session_kwargs["profile_name"] = profile
    else:
        logger.debug("Using default AWS profile")
    if region:
        session_kwargs["region_name"] = region
    else:
        logger.debug("Region not specified, using AWS profile or environment")

    try:
        session = boto3.Session(**session_kwargs)
    except ProfileNotFound as e:
        raise ConfigError(f"AWS profile not found: {profile}") from e

    if region:
        logger.info("AWS config loaded with region %s", session.region_name)
    else:
        logger.info("Using region %s from AWS profile or environment", session.region_name)
    return session


def load_config(path: str = DEFAULT_CONFIG_FILE) -> dict[str, Any]:
    """
    Load command defaults from a YAML file.

    The file is optional; a missing file yields an empty config. Expected
    layout:

        profile: my-profile
        region: us-east-1
        iam:
          account: "111122223333"
          workspace: main
          buckets: [logs-bucket]
    """
    if not os.path.exists(path):
        logger.debug("No config file at %s", path)
        return {}

    try:
        with open(path, "r") as fh:
            data = yaml.safe_load(fh) or {}
    except (OSError, yaml.YAMLError) as e:
        raise ConfigError(f"Could not load config file {path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigError(f"Config file {path} must contain a mapping")
    iam_section = data.get("iam") or {}
    if not isinstance(iam_section, dict):
        raise ConfigError(f"Config file {path}: 'iam' must be a mapping")

    # Unquoted IDs are read as numbers, and leading zeros are lost or read as octal.
    for key in ("account", "external_id"):
        value = iam_section.get(key)
        if value is not None and not isinstance(value, str):
            raise ConfigError(f"Config file {path}: iam.{key} must be a quoted string")
    account = iam_section.get("account")
    if account and not ACCOUNT_ID_PATTERN.match(account):
        raise ConfigError(f"Config file {path}: iam.account must be a 12-digit account ID")

    unknown = sorted(set(iam_section) - set(IAM_CONFIG_KEYS))
    if unknown:
        logger.warning("Ignoring unknown iam keys in %s: %s", path, ", ".join(unknown))

    logger.debug("Loaded config from %s", path)
    return {
        "profile": data.get("profile"),
        "region": data.get("region"),
        "iam": {key: iam_section.get(key) for key in IAM_CONFIG_KEYS if key in iam_section},
    }
