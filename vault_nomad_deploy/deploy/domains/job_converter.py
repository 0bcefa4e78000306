"""Convert HCL job files to Nomad's JSON submission format."""
import logging
import subprocess
from pathlib import Path

from .models import JobConversionError

logger = logging.getLogger(__name__)


def convert_job(job_file: str, nomad_binary: str = "nomad", runner=subprocess.run) -> bytes:
    """
    Produce the JSON submission payload for a job file.

    JSON files are passed through unchanged. Anything else is converted with
    ``nomad job run -output``, which parses the job without submitting it.

    Raises:
        JobConversionError: If the file is missing, the nomad binary cannot be
            run, or conversion exits non-zero
    """
    path = Path(job_file)
    if not path.is_file():
        raise JobConversionError(f"Job file not found: {path}")

    if path.suffix == ".json":
        logger.info(f"Using {path} as JSON job payload")
        return path.read_bytes()

    logger.info(f"Converting {path} to JSON...")
    try:
        result = runner(
            [nomad_binary, "job", "run", "-output", str(path)],
            capture_output=True,
            check=False,
        )
    except OSError as e:
        raise JobConversionError(f"Failed to run '{nomad_binary}': {e}") from e

    if result.returncode != 0:
        stderr = result.stderr.decode(errors="replace") if isinstance(result.stderr, bytes) else result.stderr
        raise JobConversionError(
            f"Failed to convert {path} (exit code {result.returncode})",
            body=stderr,
        )
    return result.stdout
