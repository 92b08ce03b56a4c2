from __future__ import annotations

import json
from typing import Any

import pytest
from botocore.exceptions import ClientError


def client_error(code: str, operation: str, message: str = "boom") -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": message}}, operation)


class FakeIamClient:
    """In-memory stand-in for the boto3 IAM client calls the tool makes."""

    def __init__(self) -> None:
        self.roles: dict[str, dict[str, Any]] = {}
        self.calls: list[str] = []
        self.failures: dict[str, ClientError] = {}

    def _call(self, operation: str) -> None:
        self.calls.append(operation)
        if operation in self.failures:
            raise self.failures[operation]

    def get_role(self, RoleName: str) -> dict[str, Any]:
        self._call("GetRole")
        if RoleName not in self.roles:
            raise client_error("NoSuchEntity", "GetRole", f"Role {RoleName} not found")
        role = self.roles[RoleName]
        return {"Role": {"RoleName": RoleName, "AssumeRolePolicyDocument": role["trust"]}}

    def create_role(self, RoleName: str, AssumeRolePolicyDocument: str, Description: str) -> dict:
        self._call("CreateRole")
        self.roles[RoleName] = {
            "trust": json.loads(AssumeRolePolicyDocument),
            "description": Description,
            "policies": {},
        }
        return {"Role": {"RoleName": RoleName}}

    def update_assume_role_policy(self, RoleName: str, PolicyDocument: str) -> dict:
        self._call("UpdateAssumeRolePolicy")
        self.roles[RoleName]["trust"] = json.loads(PolicyDocument)
        return {}

    def put_role_policy(self, RoleName: str, PolicyName: str, PolicyDocument: str) -> dict:
        self._call("PutRolePolicy")
        self.roles[RoleName]["policies"][PolicyName] = json.loads(PolicyDocument)
        return {}


class FakeS3Client:
    def __init__(self, names: list[str] | None = None, error: ClientError | None = None) -> None:
        self.names = names or []
        self.error = error
        self.calls = 0

    def list_buckets(self) -> dict[str, Any]:
        self.calls += 1
        if self.error is not None:
            raise self.error
        return {"Buckets": [{"Name": name} for name in self.names]}


class FakeSession:
    def __init__(self, iam: FakeIamClient, s3: FakeS3Client) -> None:
        self.clients = {"iam": iam, "s3": s3}

    def client(self, service: str) -> Any:
        return self.clients[service]


@pytest.fixture
def iam_client() -> FakeIamClient:
    return FakeIamClient()


@pytest.fixture
def s3_client() -> FakeS3Client:
    return FakeS3Client(["logs-bucket", "metrics-bucket", "cribl-archive", "logs-archive"])


@pytest.fixture
def fake_session(monkeypatch, iam_client, s3_client):
    """Route the CLI's AWS session to the fake clients."""
    import cribl_storage_tool.cli as cli

    session = FakeSession(iam_client, s3_client)
    created: list[tuple] = []

    def create_session(profile=None, region=None):
        created.append((profile, region))
        return session

    monkeypatch.setattr(cli, "create_session", create_session)
    session.created = created
    return session
