"""Workflow for submitting the job to Nomad and observing its status."""
import logging
import os
import subprocess
import time
from typing import Any, Callable, Dict, Optional

from ...secrets.domains.models import CredentialUnavailable, NomadCredentials
from ..domains.job_converter import convert_job
from ..domains.models import (
    DeploymentOutcome,
    ExecutionMode,
    JobState,
    StatusObservation,
    SubmissionFailed,
    SubmissionResult,
)
from ..domains.nomad_client import NomadClient

logger = logging.getLogger(__name__)

RUNNING_STATUS = "running"
# Nomad job statuses are pending, running and dead; dead never becomes running on its own
TERMINAL_STATUSES = frozenset({"dead"})


def classify_status(status: Optional[str]) -> JobState:
    """Only the exact, case-sensitive string "running" counts as running."""
    if status == RUNNING_STATUS:
        return JobState.RUNNING
    return JobState.NOT_RUNNING


def _require_credentials(credentials: NomadCredentials) -> None:
    if not credentials.token or not credentials.address:
        missing = "token" if not credentials.token else "address"
        raise CredentialUnavailable(f"Nomad {missing} is empty, refusing to submit")


def await_running(client: NomadClient, job_name: str, poll_interval: float, max_attempts: int,
                  sleep: Optional[Callable[[float], None]] = None) -> StatusObservation:
    """
    Poll the job status until it is running, or give up.

    Each read is preceded by a ``poll_interval`` pause to let the scheduler act.

    Returns:
        StatusObservation with state RUNNING, NOT_RUNNING (job reached a
        terminal status) or TIMED_OUT (attempts exhausted)

    Raises:
        SubmissionFailed: If a status read fails
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")
    sleep = sleep or time.sleep

    status = None
    for attempt in range(1, max_attempts + 1):
        sleep(poll_interval)
        status = client.job_status(job_name)
        logger.info(f"Job '{job_name}' status (attempt {attempt}/{max_attempts}): {status}")

        if classify_status(status) is JobState.RUNNING:
            return StatusObservation(JobState.RUNNING, status, attempt)
        if status in TERMINAL_STATUSES:
            return StatusObservation(JobState.NOT_RUNNING, status, attempt)

    return StatusObservation(JobState.TIMED_OUT, status, max_attempts)


def deploy_automated(credentials: NomadCredentials, job_file: str, config: Dict[str, Any],
                     client: Optional[NomadClient] = None, runner=subprocess.run,
                     sleep: Optional[Callable[[float], None]] = None,
                     on_submitted: Optional[Callable[[SubmissionResult], None]] = None) -> DeploymentOutcome:
    """
    Submit the job through the Nomad HTTP API and wait for it to run.

    ``on_submitted`` is called with the accepted submission before any status
    read, so the evaluation ID can be reported even if a status read fails.

    Raises:
        CredentialUnavailable: If the token or address is empty
        SubmissionFailed: If conversion, submission or a status read fails;
            no status read happens after a failed submission
    """
    _require_credentials(credentials)
    nomad = config["nomad"]
    status_check = config["status_check"]

    payload = convert_job(job_file, nomad_binary=nomad["binary"], runner=runner)

    if client is None:
        client = NomadClient(
            credentials.address,
            credentials.token,
            token_header=nomad["token_header"],
            timeout=nomad["timeout"],
        )

    logger.info(f"Submitting job to Nomad at {client.address}...")
    submission = client.submit_job(payload)
    logger.info(f"Job submitted, evaluation ID: {submission.eval_id_display}")
    if on_submitted is not None:
        on_submitted(submission)

    observation = await_running(
        client,
        nomad["job_name"],
        poll_interval=status_check["poll_interval"],
        max_attempts=status_check["max_attempts"],
        sleep=sleep,
    )
    return DeploymentOutcome(ExecutionMode.AUTOMATED, submission, observation)


def deploy_local(credentials: NomadCredentials, job_file: str, config: Dict[str, Any],
                 runner=subprocess.run) -> DeploymentOutcome:
    """
    Submit the job with the local nomad CLI.

    Raises:
        CredentialUnavailable: If the token or address is empty
        SubmissionFailed: If the nomad CLI cannot be run or exits non-zero
    """
    _require_credentials(credentials)
    binary = config["nomad"]["binary"]

    env = dict(os.environ)
    env["NOMAD_TOKEN"] = credentials.token
    env["NOMAD_ADDR"] = credentials.address

    logger.info(f"Running locally, submitting {job_file} with the nomad CLI")
    try:
        result = runner([binary, "job", "run", job_file], env=env, check=False)
    except OSError as e:
        raise SubmissionFailed(f"Failed to run '{binary}': {e}") from e

    if result.returncode != 0:
        raise SubmissionFailed(
            f"'{binary} job run' exited with code {result.returncode}",
            status_code=None,
        )
    return DeploymentOutcome(ExecutionMode.LOCAL)


def deploy(credentials: NomadCredentials, job_file: str, mode: ExecutionMode, config: Dict[str, Any],
           client: Optional[NomadClient] = None, runner=subprocess.run,
           sleep: Optional[Callable[[float], None]] = None,
           on_submitted: Optional[Callable[[SubmissionResult], None]] = None) -> DeploymentOutcome:
    if mode is ExecutionMode.AUTOMATED:
        return deploy_automated(credentials, job_file, config, client=client, runner=runner, sleep=sleep,
                                on_submitted=on_submitted)
    return deploy_local(credentials, job_file, config, runner=runner)
