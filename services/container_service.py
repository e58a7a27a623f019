"""
Container Provisioning Service

Makes sure the target blob container exists before a policy is written to it.
"""

import logging
from typing import Optional

from azure.core.exceptions import AzureError, ResourceExistsError
from azure.storage.blob import BlobServiceClient

from services.models import ContainerRef

logger = logging.getLogger(__name__)


class ContainerProvisioner:
    """
    Create-if-absent provisioning for a blob container.

    The backend is the source of truth for existence: a create request for a
    container that already exists is answered with ``ResourceExistsError``,
    which is treated as success. Concurrent callers therefore never fail
    because another request created the container first.
    """

    def __init__(self, service_client: BlobServiceClient, timeout: Optional[int] = None):
        self.service_client = service_client
        self.timeout = timeout

    def ensure(self, container: ContainerRef) -> bool:
        """
        Ensure the container exists.

        Args:
            container: The container to provision

        Returns:
            True if the container was created, False if it already existed

        Raises:
            azure.core.exceptions.AzureError: On network, auth or quota failures
        """
        container_client = self.service_client.get_container_client(container.name)
        try:
            container_client.create_container(timeout=self.timeout)
            logger.info(f"Container '{container.name}' created")
            return True
        except ResourceExistsError:
            logger.debug(f"Container '{container.name}' already exists")
            return False
        except AzureError as e:
            logger.error(f"Failed to create container '{container.name}': {e}")
            raise
