"""List S3 buckets and narrow the listing by substring, regex or an explicit list."""

from __future__ import annotations

import json
import logging
import re
from typing import Any

from botocore.exceptions import (
    BotoCoreError,
    ClientError,
    NoCredentialsError,
    PartialCredentialsError,
)
from rich import box
from rich.table import Table

from cribl_storage_tool.errors import InvalidInputError, StorageToolError

logger = logging.getLogger(__name__)

OUTPUT_FORMATS = ("text", "json", "names")


def list_buckets(s3_client: Any) -> list[str]:
    """Return bucket names in the order the backend returns them."""
    try:
        response = s3_client.list_buckets()
    except ClientError as e:
        raise StorageToolError(
            f"ListBuckets failed: {e.response['Error'].get('Message') or e}"
        ) from e
    except (NoCredentialsError, PartialCredentialsError):
        raise
    except BotoCoreError as e:
        raise StorageToolError(f"ListBuckets failed: {e}") from e
    names = [bucket["Name"] for bucket in response.get("Buckets", [])]
    logger.debug("ListBuckets returned %d buckets", len(names))
    return names


def check_single_narrowing(*modes: Any) -> None:
    if len([mode for mode in modes if mode]) > 1:
        raise InvalidInputError(
            "--filter, --regex and --bucket-file cannot be used together. Please use only one."
        )


def select_buckets(
    s3_client: Any,
    substring: str | None = None,
    pattern: str | None = None,
    bucket_names: list[str] | None = None,
) -> list[str]:
    """
    Return the buckets to display.

    Only one of ``substring``, ``pattern`` and ``bucket_names`` may be given.
    An explicit ``bucket_names`` list is returned as is, without listing.
    """
    check_single_narrowing(substring, pattern, bucket_names is not None)

    if bucket_names is not None:
        return list(bucket_names)

    compiled = None
    if pattern:
        try:
            compiled = re.compile(pattern)
        except re.error as e:
            raise InvalidInputError(f"Invalid regex pattern '{pattern}': {e}") from e

    names = list_buckets(s3_client)
    if substring:
        names = [name for name in names if substring in name]
    if compiled is not None:
        names = [name for name in names if compiled.search(name)]
    return names


def buckets_to_json(names: list[str]) -> str:
    return json.dumps([{"name": name} for name in names], indent=2)


def buckets_table(names: list[str]) -> Table:
    table = Table(title="S3 Buckets", box=box.ROUNDED)
    table.add_column("#", style="blue", justify="right")
    table.add_column("Bucket", style="green")
    for index, name in enumerate(names, start=1):
        table.add_row(str(index), name)
    return table


def render_buckets(names: list[str], output_format: str) -> str | Table:
    """Render bucket names as JSON, bare names, or a table for anything else."""
    if output_format == "json":
        return buckets_to_json(names)
    if output_format == "names":
        return "\n".join(names)
    return buckets_table(names)
