"""
SAS Token Issuer

Runs one issuance: ensure the container, write the stored access policy with a
fresh window, then sign a token that references it.
"""

import logging
from datetime import datetime
from typing import Callable, Optional

from azure.storage.blob import BlobServiceClient

from config import IssuerConfig, load_issuer_config
from issuer_logging import log_issuance
from services.container_service import ContainerProvisioner
from services.models import ContainerRef, IssuanceResult, utc_now
from services.policy_service import AccessPolicyManager
from services.sas_service import TokenGenerator
from services.storage_client import create_blob_service_client, get_account_key

logger = logging.getLogger(__name__)


class SasTokenIssuer:
    """
    Issues container SAS tokens backed by a stored access policy.

    Each call to ``issue`` overwrites the container's stored policies with the
    configured one (see AccessPolicyManager.upsert). Tokens from earlier calls
    keep working only while the policy id stays the same; the new window
    applies to them as well.
    """

    def __init__(
        self,
        config: IssuerConfig,
        service_client: Optional[BlobServiceClient] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.config = config
        self.container = ContainerRef(config.container_name)
        self.service_client = service_client or create_blob_service_client(
            connection_string=config.connection_string,
            account_url=config.account_url,
        )
        self.provisioner = ContainerProvisioner(self.service_client, timeout=config.request_timeout)
        self.policy_manager = AccessPolicyManager(
            self.service_client,
            policy_ttl=config.policy_ttl,
            default_permissions=config.permissions,
            timeout=config.request_timeout,
            clock=clock,
        )
        self.token_generator = TokenGenerator(self.service_client, protocol=config.protocol, clock=clock)

    @classmethod
    def from_environment(cls) -> "SasTokenIssuer":
        return cls(load_issuer_config())

    def issue(self) -> IssuanceResult:
        """
        Provision, upsert the policy and sign a stored-policy token.

        Returns:
            IssuanceResult with the token and the policy's last-modified time

        Raises:
            AuthorizationError: If the client cannot sign; raised before any storage call
            azure.core.exceptions.AzureError: On storage failures (not retried)
        """
        # Nothing is written to the container unless a token can be signed afterwards
        get_account_key(self.service_client)
        self.provisioner.ensure(self.container)
        metadata = self.policy_manager.upsert_default(self.container, self.config.policy_id)
        token = self.token_generator.issue_container_sas(self.container, metadata.policy_id)

        log_issuance(
            container_name=self.container.name,
            policy_id=metadata.policy_id,
            mode=token.mode,
            policy_last_modified=metadata.last_modified,
        )
        return IssuanceResult(
            token=token,
            policy_last_modified=metadata.last_modified,
            policy_id=metadata.policy_id,
            container_name=self.container.name,
        )
