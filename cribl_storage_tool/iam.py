"""
IAM role setup for cross-account S3 access.

Converges a role to a desired state: its trust policy lets one principal in
the trusted account assume it, and the inline policy CrossAccountAccessPolicy
grants read/write access to a list of buckets. Both documents are rebuilt
from the request and written as a full replace on every run, so running the
same request again converges a partially applied role.
"""

from __future__ import annotations

import contextlib
import json
import logging
from dataclasses import dataclass, field, replace
from typing import Any, Iterator, Protocol

from botocore.exceptions import (
    BotoCoreError,
    ClientError,
    NoCredentialsError,
    PartialCredentialsError,
)

from cribl_storage_tool.errors import InvalidInputError, RoleStoreError

logger = logging.getLogger(__name__)

POLICY_VERSION = "2012-10-17"
SEARCH_ACTION = "search"
DEFAULT_ROLE_NAME = "CrossAccountAccessRole"
DEFAULT_WORKSPACE = "main"
DEFAULT_WORKER_GROUP = "default"
INLINE_POLICY_NAME = "CrossAccountAccessPolicy"
ROLE_DESCRIPTION = "Role for cross-account access to S3"

TRUST_ACTIONS = ["sts:AssumeRole", "sts:TagSession", "sts:SetSourceIdentity"]
S3_ACTIONS = [
    "s3:ListBucket",
    "s3:GetObject",
    "s3:PutObject",
    "s3:GetBucketLocation",
]


@dataclass
class RoleSetupRequest:
    role_name: str
    trusted_account_id: str
    bucket_names: list[str] = field(default_factory=list)
    external_id: str = ""
    workspace: str = DEFAULT_WORKSPACE
    worker_group: str = DEFAULT_WORKER_GROUP
    action: str = SEARCH_ACTION


@dataclass
class RoleSetupResult:
    role_name: str
    created: bool
    principal: str
    trust_policy: dict[str, Any]
    inline_policy: dict[str, Any]


class RoleStore(Protocol):
    """The IAM operations the reconciler needs."""

    def get_role(self, role_name: str) -> dict[str, Any] | None: ...

    def create_role(self, role_name: str, trust_policy: str, description: str) -> None: ...

    def update_trust_policy(self, role_name: str, trust_policy: str) -> None: ...

    def put_inline_policy(self, role_name: str, policy_name: str, policy: str) -> None: ...


def _error_message(error: ClientError) -> str:
    return error.response.get("Error", {}).get("Message") or str(error)


@contextlib.contextmanager
def _iam_call(role_name: str, operation: str) -> Iterator[None]:
    """Wrap IAM and transport failures with the role and operation."""
    try:
        yield
    except (NoCredentialsError, PartialCredentialsError):
        raise
    except ClientError as e:
        raise RoleStoreError(role_name, operation, _error_message(e)) from e
    except BotoCoreError as e:
        raise RoleStoreError(role_name, operation, str(e)) from e


class IamRoleStore:
    """Role store backed by a boto3 IAM client."""

    def __init__(self, iam_client: Any) -> None:
        self.client = iam_client

    def get_role(self, role_name: str) -> dict[str, Any] | None:
        """Return the role description, or None if the role does not exist."""
        with _iam_call(role_name, "GetRole"):
            try:
                response = self.client.get_role(RoleName=role_name)
            except ClientError as e:
                if e.response["Error"]["Code"] == "NoSuchEntity":
                    return None
                raise
        return response["Role"]

    def create_role(self, role_name: str, trust_policy: str, description: str) -> None:
        with _iam_call(role_name, "CreateRole"):
            self.client.create_role(
                RoleName=role_name,
                AssumeRolePolicyDocument=trust_policy,
                Description=description,
            )

    def update_trust_policy(self, role_name: str, trust_policy: str) -> None:
        with _iam_call(role_name, "UpdateAssumeRolePolicy"):
            self.client.update_assume_role_policy(
                RoleName=role_name,
                PolicyDocument=trust_policy,
            )

    def put_inline_policy(self, role_name: str, policy_name: str, policy: str) -> None:
        with _iam_call(role_name, "PutRolePolicy"):
            self.client.put_role_policy(
                RoleName=role_name,
                PolicyName=policy_name,
                PolicyDocument=policy,
            )


def build_principal_arn(
    action: str, account_id: str, workspace: str, worker_group: str
) -> str:
    """
    Return the ARN of the role allowed to assume the target role.

    Search workloads run under a per-workspace execution role; every other
    action runs under the worker group role, named after workspace and group.
    """
    if action == SEARCH_ACTION:
        return f"arn:aws:iam::{account_id}:role/search-exec-{workspace}"
    return f"arn:aws:iam::{account_id}:role/{workspace}-{worker_group}"


def build_trust_policy(principal: str, external_id: str = "") -> dict[str, Any]:
    statement: dict[str, Any] = {
        "Effect": "Allow",
        "Principal": {"AWS": principal},
        "Action": list(TRUST_ACTIONS),
    }
    if external_id:
        statement["Condition"] = {"StringEquals": {"sts:ExternalId": external_id}}
    return {"Version": POLICY_VERSION, "Statement": [statement]}


def build_inline_policy(bucket_names: list[str]) -> dict[str, Any]:
    """Grant S3 access to every bucket and its objects, in the given order."""
    resources: list[str] = []
    for bucket in bucket_names:
        resources.append(f"arn:aws:s3:::{bucket}")
        resources.append(f"arn:aws:s3:::{bucket}/*")
    return {
        "Version": POLICY_VERSION,
        "Statement": [
            {
                "Effect": "Allow",
                "Action": list(S3_ACTIONS),
                "Resource": resources,
            }
        ],
    }


def validate_request(request: RoleSetupRequest) -> RoleSetupRequest:
    """Check required fields and return a copy with defaults filled in."""
    if not request.role_name:
        raise InvalidInputError("Role name cannot be empty")
    if not request.trusted_account_id:
        raise InvalidInputError("Trusted account ID cannot be empty")
    if not request.bucket_names:
        raise InvalidInputError("At least one bucket name must be provided")

    return replace(
        request,
        bucket_names=list(request.bucket_names),
        external_id=request.external_id or "",
        workspace=request.workspace or DEFAULT_WORKSPACE,
        worker_group=request.worker_group or DEFAULT_WORKER_GROUP,
        action=request.action or SEARCH_ACTION,
    )


def ensure_role(store: RoleStore, role_name: str, trust_policy: dict[str, Any]) -> bool:
    """Create the role or overwrite its trust policy. Returns True if created."""
    document = json.dumps(trust_policy)
    if store.get_role(role_name) is None:
        store.create_role(role_name, document, ROLE_DESCRIPTION)
        logger.info("Created IAM role '%s' with trust relationship", role_name)
        return True

    store.update_trust_policy(role_name, document)
    logger.info("Updated trust relationship for IAM role '%s'", role_name)
    return False


def attach_s3_policy(store: RoleStore, role_name: str, inline_policy: dict[str, Any]) -> None:
    store.put_inline_policy(role_name, INLINE_POLICY_NAME, json.dumps(inline_policy))
    logger.info("Attached policy '%s' to IAM role '%s'", INLINE_POLICY_NAME, role_name)


def reconcile(store: RoleStore, request: RoleSetupRequest) -> RoleSetupResult:
    """
    Converge the role described by ``request`` to its desired state.

    Nothing is rolled back on failure: if attaching the inline policy fails,
    a newly created role is left in place with only its trust policy set.
    """
    request = validate_request(request)

    principal = build_principal_arn(
        request.action,
        request.trusted_account_id,
        request.workspace,
        request.worker_group,
    )
    trust_policy = build_trust_policy(principal, request.external_id)
    inline_policy = build_inline_policy(request.bucket_names)
    logger.debug("Trust policy for %s: %s", request.role_name, json.dumps(trust_policy))
    logger.debug("Inline policy for %s: %s", request.role_name, json.dumps(inline_policy))

    created = ensure_role(store, request.role_name, trust_policy)
    attach_s3_policy(store, request.role_name, inline_policy)

    return RoleSetupResult(
        role_name=request.role_name,
        created=created,
        principal=principal,
        trust_policy=trust_policy,
        inline_policy=inline_policy,
    )
