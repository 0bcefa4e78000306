"""GCP Secret Manager client wrapper, used as an alternate credential source."""
import logging
from typing import Optional

from google.cloud import secretmanager

logger = logging.getLogger(__name__)


class GCPSecretClient:
    """Wrapper around GCP Secret Manager client."""

    def __init__(self, client: Optional[secretmanager.SecretManagerServiceClient] = None):
        self._client = client

    @property
    def client(self) -> secretmanager.SecretManagerServiceClient:
        """Lazy-initialize client."""
        if self._client is None:
            self._client = secretmanager.SecretManagerServiceClient()
        return self._client

    def fetch_secret(self, secret_name: str, project_id: str) -> Optional[str]:
        """
        Fetch the latest version of a secret from GCP Secret Manager.

        Args:
            secret_name: Name of the secret
            project_id: GCP project ID

        Returns:
            Secret value with surrounding whitespace stripped, or None if the
            fetch fails
        """
        try:
            name = f"projects/{project_id}/secrets/{secret_name}/versions/latest"
            response = self.client.access_secret_version(request={"name": name})
            return response.payload.data.decode("UTF-8").strip()
        except Exception as e:
            logger.warning(f"GCP fetch failed for {secret_name}: {e}")
            return None
