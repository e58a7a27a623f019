"""
Shared fixtures: an in-memory stand-in for the Blob service and a controllable clock.
"""
import base64
from collections import OrderedDict
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import pytest
from azure.core.exceptions import ResourceExistsError
from azure.storage.blob import AccessPolicy

ACCOUNT_NAME = "devaccount"
ACCOUNT_KEY = base64.b64encode(b"sas-issuer-test-key-0123456789ab").decode("ascii")
CONNECTION_STRING = (
    f"DefaultEndpointsProtocol=https;AccountName={ACCOUNT_NAME};"
    f"AccountKey={ACCOUNT_KEY};EndpointSuffix=core.windows.net"
)
START = datetime(2026, 10, 19, 12, 0, 0, tzinfo=timezone.utc)


class FakeClock:
    """Returns ``now`` and advances by ``step`` on every call."""

    def __init__(self, now=START, step=timedelta(seconds=1)):
        self.now = now
        self.step = step

    def __call__(self):
        current = self.now
        self.now = self.now + self.step
        return current


def service_time(value):
    """Render a timestamp the way the Blob service returns it in a container ACL."""
    if value is None or isinstance(value, str):
        return value
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.0000000Z")


class FakeContainerClient:
    """
    Mimics the parts of ContainerClient the services use.

    Stored policies are kept in wire form: permission letters as a string,
    start and expiry as service timestamps or None.
    """

    def __init__(self, service, name):
        self.service = service
        self.container_name = name
        self.url = f"https://{service.account_name}.blob.core.windows.net/{name}"

    def create_container(self, timeout=None):
        self.service.calls.append(("create_container", self.container_name, timeout))
        if self.container_name in self.service.containers:
            raise ResourceExistsError("The specified container already exists.")
        self.service.containers[self.container_name] = OrderedDict()

    def set_container_access_policy(self, signed_identifiers, timeout=None):
        self.service.calls.append(("set_container_access_policy", self.container_name, timeout))
        # Set Container ACL replaces the whole set
        self.service.containers[self.container_name] = OrderedDict(
            (policy_id, SimpleNamespace(
                permission=str(policy.permission) if policy.permission is not None else None,
                start=service_time(policy.start),
                expiry=service_time(policy.expiry),
            ))
            for policy_id, policy in signed_identifiers.items()
        )
        self.service.version += 1
        return {
            "etag": f'"0x{self.service.version:08X}"',
            "last_modified": START + timedelta(minutes=self.service.version),
        }

    def get_container_access_policy(self, timeout=None):
        self.service.calls.append(("get_container_access_policy", self.container_name, timeout))
        stored = self.service.containers.get(self.container_name, OrderedDict())
        return {
            "public_access": None,
            "signed_identifiers": [
                SimpleNamespace(
                    id=policy_id,
                    access_policy=AccessPolicy(permission=policy.permission, start=policy.start, expiry=policy.expiry),
                )
                for policy_id, policy in stored.items()
            ],
        }


class FakeBlobServiceClient:
    """BlobServiceClient stand-in holding a shared key credential."""

    def __init__(self, account_key=ACCOUNT_KEY):
        self.account_name = ACCOUNT_NAME
        self.credential = SimpleNamespace(account_name=ACCOUNT_NAME, account_key=account_key)
        self.containers = {}
        self.calls = []
        self.version = 0

    def get_container_client(self, name):
        return FakeContainerClient(self, name)

    def seed_policy(self, container_name, policy_id, permission, start=None, expiry=None):
        """Store a policy as another tool would have written it, without recording a call."""
        self.containers.setdefault(container_name, OrderedDict())[policy_id] = SimpleNamespace(
            permission=permission, start=service_time(start), expiry=service_time(expiry)
        )


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def service_client():
    return FakeBlobServiceClient()
