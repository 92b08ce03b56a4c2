"""Bucket name files and worker role ARNs."""

from __future__ import annotations

import json
import re
from typing import Any, Callable, NamedTuple

from cribl_storage_tool.errors import InvalidInputError

ACCOUNT_ID_PATTERN = re.compile(r"^\d{12}$")
WORKER_ARN_PATTERN = re.compile(r"^arn:aws:iam::(?P<account>[^:]*):role/(?P<name>[^/]+)$")

_NOT_JSON = object()


class WorkerArn(NamedTuple):
    account_id: str
    workspace: str
    worker_group: str


def _load_json(text: str) -> Any:
    try:
        return json.loads(text)
    except ValueError:
        return _NOT_JSON


def _parse_string_array(text: str) -> list[str] | None:
    data = _load_json(text)
    if not isinstance(data, list) or not all(isinstance(item, str) for item in data):
        return None
    return [item.strip() for item in data if item.strip()]


def _parse_object_array(text: str) -> list[str] | None:
    data = _load_json(text)
    if not isinstance(data, list):
        return None
    names: list[str] = []
    for item in data:
        if not isinstance(item, dict) or not isinstance(item.get("name"), str):
            return None
        if item["name"].strip():
            names.append(item["name"].strip())
    return names


def _parse_plain_text(text: str) -> list[str] | None:
    # Bucket names never start with a bracket: this is JSON of the wrong shape.
    if text.lstrip().startswith(("[", "{")):
        return None
    return [line.strip() for line in text.splitlines() if line.strip()]


BUCKET_FILE_PARSERS: tuple[Callable[[str], list[str] | None], ...] = (
    _parse_string_array,
    _parse_object_array,
    _parse_plain_text,
)


def parse_bucket_names(text: str) -> list[str]:
    """
    Parse bucket names from a bucket file's contents.

    Accepts a JSON array of strings, a JSON array of {"name": ...} objects, or
    plain text with one name per line, tried in that order.
    """
    for parser in BUCKET_FILE_PARSERS:
        names = parser(text)
        if names is None:
            continue
        if not names:
            raise InvalidInputError("Bucket file contains no bucket names")
        return names
    raise InvalidInputError(
        "Bucket file must be a JSON array of names, a JSON array of "
        "{\"name\": ...} objects, or one name per line"
    )


def load_bucket_file(path: str) -> list[str]:
    try:
        with open(path, "r") as fh:
            text = fh.read()
    except OSError as e:
        raise InvalidInputError(f"Could not read bucket file {path}: {e}") from e
    try:
        return parse_bucket_names(text)
    except InvalidInputError as e:
        raise InvalidInputError(f"{path}: {e}") from e


def split_bucket_args(values: list[str] | None) -> list[str]:
    """Flatten repeated and comma-separated --bucket values."""
    names: list[str] = []
    for value in values or []:
        names.extend(part.strip() for part in value.split(",") if part.strip())
    return names


def parse_worker_arn(arn: str) -> WorkerArn:
    """
    Split arn:aws:iam::ACCOUNT:role/WORKSPACE-WORKERGROUP into its parts.

    The role name is split at its first hyphen, so worker groups may contain
    hyphens but workspaces may not.
    """
    match = WORKER_ARN_PATTERN.match(arn.strip())
    if not match:
        raise InvalidInputError(
            f"Invalid worker ARN '{arn}': expected arn:aws:iam::ACCOUNT:role/WORKSPACE-WORKERGROUP"
        )
    account_id = match.group("account")
    if not ACCOUNT_ID_PATTERN.match(account_id):
        raise InvalidInputError(f"Invalid worker ARN '{arn}': account ID must be 12 digits")

    workspace, sep, worker_group = match.group("name").partition("-")
    if not sep or not workspace or not worker_group:
        raise InvalidInputError(
            f"Invalid worker ARN '{arn}': role name must be WORKSPACE-WORKERGROUP"
        )
    return WorkerArn(account_id, workspace, worker_group)
