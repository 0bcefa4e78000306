"""Nomad HTTP API client."""
import logging
from typing import Any, Dict, Optional

import requests

from .models import SubmissionFailed, SubmissionResult

logger = logging.getLogger(__name__)


class NomadClient:
    """Minimal client for the Nomad job and ACL endpoints."""

    def __init__(self, address: str, token: str, token_header: str = "X-Nomad-Token",
                 timeout: float = 30, session: Optional[requests.Session] = None):
        self.address = address.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        self._headers = {token_header: token}

    def _url(self, path: str) -> str:
        return f"{self.address}{path}"

    def submit_job(self, payload: bytes) -> SubmissionResult:
        """
        Register a job with ``POST /v1/jobs``.

        Args:
            payload: Job in Nomad's JSON submission format

        Returns:
            SubmissionResult with the evaluation ID, or ``eval_id=None`` when
            the response does not carry one

        Raises:
            SubmissionFailed: On any status other than 200 (body kept verbatim)
                or on a transport error
        """
        headers = dict(self._headers)
        headers["Content-Type"] = "application/json"
        try:
            response = self.session.post(
                self._url("/v1/jobs"), data=payload, headers=headers, timeout=self.timeout
            )
        except requests.exceptions.RequestException as e:
            raise SubmissionFailed(f"Failed to reach Nomad at {self.address}: {e}") from e

        if response.status_code != 200:
            raise SubmissionFailed(
                f"Failed to submit job. HTTP Code: {response.status_code}",
                status_code=response.status_code,
                body=response.text,
            )

        eval_id = None
        try:
            body = response.json()
        except ValueError:
            logger.warning("Job submission response was not JSON, evaluation ID unavailable")
        else:
            if isinstance(body, dict) and body.get("EvalID"):
                eval_id = str(body["EvalID"])

        return SubmissionResult(status_code=response.status_code, eval_id=eval_id)

    def job_status(self, job_name: str) -> Optional[str]:
        """
        Read a job's ``Status`` field with ``GET /v1/job/<name>``.

        Raises:
            SubmissionFailed: On a transport error or a non-200 response
        """
        try:
            response = self.session.get(
                self._url(f"/v1/job/{job_name}"), headers=self._headers, timeout=self.timeout
            )
        except requests.exceptions.RequestException as e:
            raise SubmissionFailed(f"Failed to read status of job '{job_name}': {e}") from e

        if response.status_code != 200:
            raise SubmissionFailed(
                f"Failed to read status of job '{job_name}'. HTTP Code: {response.status_code}",
                status_code=response.status_code,
                body=response.text,
            )

        try:
            body = response.json()
        except ValueError:
            return None
        return body.get("Status") if isinstance(body, dict) else None

    def create_acl_token(self, name: str, token_type: str = "management", global_: bool = True) -> str:
        """Create an ACL token with ``POST /v1/acl/token`` and return its SecretID."""
        token_spec: Dict[str, Any] = {"Name": name, "Type": token_type, "Global": global_}
        try:
            response = self.session.post(
                self._url("/v1/acl/token"), json=token_spec, headers=self._headers, timeout=self.timeout
            )
            response.raise_for_status()
            body = response.json()
        except ValueError as e:
            raise SubmissionFailed(f"Nomad returned a non-JSON response for ACL token '{name}': {e}") from e
        except requests.exceptions.RequestException as e:
            raise SubmissionFailed(f"Failed to create Nomad ACL token '{name}': {e}") from e

        secret_id = body.get("SecretID") if isinstance(body, dict) else None
        if not secret_id:
            raise SubmissionFailed(f"Nomad returned no SecretID for ACL token '{name}'")
        return secret_id
