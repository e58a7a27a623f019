"""
Stored Access Policy Service

Manages the stored access policies on a blob container. A container holds its
policies as one set: the Set Container ACL call replaces the whole set, so
every write here is a replace. ``upsert`` replaces the set with a single
policy, and any other policy stored on the container is removed. Tokens minted
against a removed or changed policy stop validating immediately.

Concurrent issuers writing to the same container race: the last write wins,
and a token signed against a policy that was overwritten in between no longer
validates.
"""

import logging
from collections import OrderedDict
from datetime import datetime, timedelta
from typing import Callable, Iterable, Mapping, Optional, Union

from azure.core.exceptions import AzureError
from azure.storage.blob import BlobServiceClient

from services.errors import ValidationError
from services.models import (
    MAX_STORED_POLICIES,
    ContainerRef,
    PermissionSet,
    PolicyMetadata,
    PolicyWindow,
    StoredAccessPolicy,
    parse_permissions,
    utc_now,
)

logger = logging.getLogger(__name__)

DEFAULT_POLICY_TTL = timedelta(hours=1)


class AccessPolicyManager:
    """
    Writes and reads stored access policies on a container.

    The default policy used by ``upsert_default`` starts now, lasts
    ``policy_ttl`` (one hour unless configured) and grants ``default_permissions``
    (full read/write/list/delete/add/create unless configured). A full grant
    gives every token minted under it complete container access for the
    window; narrow ``default_permissions`` where least privilege matters.
    """

    def __init__(
        self,
        service_client: BlobServiceClient,
        policy_ttl: timedelta = DEFAULT_POLICY_TTL,
        default_permissions: Union[str, Iterable[str], PermissionSet, None] = None,
        timeout: Optional[int] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        if policy_ttl <= timedelta(0):
            raise ValidationError("Policy TTL must be positive")
        self.service_client = service_client
        self.policy_ttl = policy_ttl
        self.default_permissions = (
            parse_permissions(default_permissions) if default_permissions is not None else PermissionSet.full()
        )
        self.timeout = timeout
        self.clock = clock

    def replace_policies(self, container: ContainerRef, policies: Mapping[str, StoredAccessPolicy]) -> dict:
        """
        Replace the container's entire stored policy set with ``policies``.

        Args:
            container: Target container
            policies: Ordered mapping of identifier -> policy; may be empty

        Returns:
            The service response with ``etag`` and ``last_modified``

        Raises:
            ValidationError: On more than five policies or mismatched identifiers
            azure.core.exceptions.AzureError: If the service rejects the request
        """
        if len(policies) > MAX_STORED_POLICIES:
            raise ValidationError(
                f"A container holds at most {MAX_STORED_POLICIES} stored access policies, got {len(policies)}"
            )
        for policy_id, policy in policies.items():
            if policy_id != policy.policy_id:
                raise ValidationError(
                    f"Policy keyed as {policy_id!r} carries identifier {policy.policy_id!r}"
                )

        signed_identifiers = OrderedDict(
            (policy_id, policy.to_access_policy()) for policy_id, policy in policies.items()
        )
        container_client = self.service_client.get_container_client(container.name)
        try:
            response = container_client.set_container_access_policy(
                signed_identifiers=signed_identifiers, timeout=self.timeout
            )
        except AzureError as e:
            logger.error(f"Failed to set access policy on container '{container.name}': {e}")
            raise

        logger.info(
            f"Replaced stored access policies on '{container.name}' with "
            f"[{', '.join(policies) or 'none'}]"
        )
        return response

    def upsert(
        self,
        container: ContainerRef,
        policy_id: str,
        window: PolicyWindow,
        permissions: Union[str, Iterable[str], PermissionSet],
    ) -> PolicyMetadata:
        """
        Write ``policy_id`` as the only stored policy on the container.

        This is destructive: whatever other policies the container held are
        dropped, along with the validity of every token referencing them.

        Args:
            container: Target container
            policy_id: Identifier of the policy, at most 64 characters
            window: Validity window; must end after both its start and now
            permissions: Non-empty permission set

        Returns:
            PolicyMetadata with the service-assigned last_modified timestamp
        """
        window.validate(self.clock())
        policy = StoredAccessPolicy(
            policy_id=policy_id,
            window=window,
            permissions=parse_permissions(permissions),
        )
        response = self.replace_policies(container, OrderedDict([(policy.policy_id, policy)]))
        return PolicyMetadata(
            policy_id=policy.policy_id,
            window=policy.window,
            permissions=policy.permissions,
            last_modified=response.get("last_modified"),
            etag=response.get("etag"),
        )

    def upsert_default(self, container: ContainerRef, policy_id: str) -> PolicyMetadata:
        """Upsert ``policy_id`` with a fresh window starting now and the default permissions."""
        window = PolicyWindow.starting_now(self.policy_ttl, now=self.clock())
        return self.upsert(container, policy_id, window, self.default_permissions)

    def get_policies(self, container: ContainerRef) -> "OrderedDict[str, StoredAccessPolicy]":
        """Read the container's stored policies, in service order."""
        container_client = self.service_client.get_container_client(container.name)
        try:
            acl = container_client.get_container_access_policy(timeout=self.timeout)
        except AzureError as e:
            logger.error(f"Failed to read access policy of container '{container.name}': {e}")
            raise

        policies = OrderedDict()
        for signed_identifier in acl.get("signed_identifiers") or []:
            policy = StoredAccessPolicy.from_signed_identifier(signed_identifier)
            policies[policy.policy_id] = policy
        return policies

    def get_policy(self, container: ContainerRef, policy_id: str) -> Optional[StoredAccessPolicy]:
        return self.get_policies(container).get(policy_id)
