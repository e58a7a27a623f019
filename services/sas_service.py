"""
SAS Token Service

Signs shared access signatures for a blob container with the account's shared
key. Two modes are supported:

- stored-policy: the token only references a stored access policy by id
  (``si``). Permissions and expiry are looked up by the service when the token
  is presented, so changing or removing the policy revokes every token that
  references it.
- ad-hoc: permissions and expiry are embedded in the signed parameters. Such a
  token stays valid until its expiry unless the account key is rotated.

Signing is local; no request is sent to the storage service.
"""

import logging
from datetime import datetime, timedelta
from typing import Callable, Iterable, Optional, Union

from azure.storage.blob import (
    AccountSasPermissions,
    BlobServiceClient,
    ResourceTypes,
    generate_account_sas,
    generate_container_sas,
)

from services.errors import ValidationError
from services.models import (
    AD_HOC_MODE,
    STORED_POLICY_MODE,
    AccessToken,
    ContainerRef,
    PermissionSet,
    as_utc,
    parse_permissions,
    utc_now,
    validate_policy_id,
)
from services.storage_client import get_account_key

logger = logging.getLogger(__name__)

DEFAULT_AD_HOC_TTL = timedelta(hours=1)
VALID_PROTOCOLS = ("https", "https,http")
# Blob and File services, as the account SAS of the Functions host covers both
ACCOUNT_SAS_SERVICES = "bf"


class TokenGenerator:
    """Generates container and account SAS tokens from a shared-key client."""

    def __init__(
        self,
        service_client: BlobServiceClient,
        protocol: str = "https",
        ad_hoc_ttl: timedelta = DEFAULT_AD_HOC_TTL,
        clock: Callable[[], datetime] = utc_now,
    ):
        if protocol not in VALID_PROTOCOLS:
            raise ValidationError(f"Unsupported SAS protocol {protocol!r}")
        self.service_client = service_client
        self.protocol = protocol
        self.ad_hoc_ttl = ad_hoc_ttl
        self.clock = clock

    def issue_container_sas(
        self,
        container: ContainerRef,
        policy_id: Optional[str] = None,
        *,
        permissions: Union[str, Iterable[str], PermissionSet, None] = None,
        expires_on: Optional[datetime] = None,
        starts_on: Optional[datetime] = None,
    ) -> AccessToken:
        """
        Sign a SAS for ``container``.

        Args:
            container: The container the token is scoped to
            policy_id: Stored access policy to reference; None for an ad-hoc token
            permissions: Ad-hoc permissions (default: full access)
            expires_on: Ad-hoc expiry (default: now + one hour)
            starts_on: Optional ad-hoc start time

        Returns:
            The signed AccessToken

        Raises:
            AuthorizationError: If the client does not hold a shared account key
            ValidationError: On inconsistent or invalid parameters
        """
        account_key = get_account_key(self.service_client)
        container_url = self.service_client.get_container_client(container.name).url

        if policy_id is not None:
            validate_policy_id(policy_id)
            if permissions is not None or expires_on is not None or starts_on is not None:
                raise ValidationError(
                    "Stored-policy tokens take permissions and validity from the policy; "
                    "do not pass them alongside policy_id"
                )
            query = generate_container_sas(
                account_name=self.service_client.account_name,
                container_name=container.name,
                account_key=account_key,
                policy_id=policy_id,
                protocol=self.protocol,
            )
            logger.info(f"Issued stored-policy SAS for container '{container.name}' (policy '{policy_id}')")
            return AccessToken(
                query=query,
                container_url=container_url,
                mode=STORED_POLICY_MODE,
                policy_id=policy_id,
            )

        now = self.clock()
        permission_set = parse_permissions(permissions) if permissions is not None else PermissionSet.full()
        expiry = as_utc(expires_on) if expires_on is not None else now + self.ad_hoc_ttl
        start = as_utc(starts_on) if starts_on is not None else None
        if expiry <= now:
            raise ValidationError(f"SAS expiry {expiry.isoformat()} is not in the future")
        if start is not None and expiry <= start:
            raise ValidationError(f"SAS expiry {expiry.isoformat()} is not after its start {start.isoformat()}")

        query = generate_container_sas(
            account_name=self.service_client.account_name,
            container_name=container.name,
            account_key=account_key,
            permission=permission_set.to_sas_permissions(),
            expiry=expiry,
            start=start,
            protocol=self.protocol,
        )
        logger.info(
            f"Issued ad-hoc SAS for container '{container.name}' "
            f"(permissions '{permission_set}', expires {expiry.isoformat()})"
        )
        return AccessToken(
            query=query,
            container_url=container_url,
            mode=AD_HOC_MODE,
            expires_on=expiry,
            permissions=permission_set,
        )

    def issue_account_sas(
        self,
        read: bool = True,
        write: bool = True,
        expires_on: Optional[datetime] = None,
    ) -> str:
        """
        Sign an account-level SAS for the Blob and File services, scoped to the
        service resource type.

        Returns:
            The SAS query string, without a leading '?'
        """
        account_key = get_account_key(self.service_client)
        if not (read or write):
            raise ValidationError("Account SAS needs at least one of read or write")
        now = self.clock()
        expiry = as_utc(expires_on) if expires_on is not None else now + self.ad_hoc_ttl
        if expiry <= now:
            raise ValidationError(f"SAS expiry {expiry.isoformat()} is not in the future")

        sas_token = generate_account_sas(
            account_name=self.service_client.account_name,
            account_key=account_key,
            resource_types=ResourceTypes(service=True),
            services=ACCOUNT_SAS_SERVICES,
            permission=AccountSasPermissions(read=read, write=write),
            expiry=expiry,
            protocol=self.protocol,
        )
        logger.info(f"Issued account SAS for {self.service_client.account_name} (expires {expiry.isoformat()})")
        return sas_token
