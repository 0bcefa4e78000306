"""End-to-end tests for the vault-deploy CLI with Vault and Nomad mocked."""
import json
import sys
from unittest import mock

import pytest
import requests

from vault_nomad_deploy.cli import main as cli
from vault_nomad_deploy.deploy.domains.models import ExecutionMode


def _response(status_code=200, body=None, text=""):
    response = mock.MagicMock()
    response.status_code = status_code
    response.json.return_value = body
    response.text = json.dumps(body) if body is not None else text
    return response


@pytest.fixture
def cli_env(temp_home, monkeypatch, hvac_client):
    """Vault reachable through a fake hvac client, no CI marker."""
    monkeypatch.setenv("VAULT_ADDR", "https://vault.example")
    monkeypatch.setenv("VAULT_TOKEN", "vault-token")
    monkeypatch.delenv("GITHUB_ACTIONS", raising=False)
    monkeypatch.delenv("NOMAD_TOKEN", raising=False)
    monkeypatch.delenv("NOMAD_ADDR", raising=False)
    monkeypatch.setattr("vault_nomad_deploy.secrets.domains.vault_client.hvac.Client",
                        lambda **kwargs: hvac_client)
    monkeypatch.setattr("vault_nomad_deploy.deploy.workflows.submission.time.sleep", lambda seconds: None)
    return temp_home


@pytest.fixture
def nomad_session(monkeypatch):
    session = mock.MagicMock(spec=requests.Session)
    monkeypatch.setattr("vault_nomad_deploy.deploy.domains.nomad_client.requests.Session", lambda: session)
    return session


@pytest.fixture
def job_file(tmp_path):
    path = tmp_path / "traefik.json"
    path.write_text(json.dumps({"Job": {"ID": "traefik"}}))
    return path


def run_cli(monkeypatch, *argv):
    monkeypatch.setattr(sys, "argv", ["vault-deploy", *argv])
    try:
        cli.main()
    except SystemExit as e:
        return e.code
    return 0


class TestDeployCommand:
    """The deploy command from credential lookup to status report."""

    def test_successful_deployment(self, cli_env, monkeypatch, vault_store, nomad_session, job_file, capsys):
        vault_store["traefik/nomad"] = {"token": "abc123", "addr": "https://orchestrator.example"}
        nomad_session.post.return_value = _response(200, {"EvalID": "eval-1"})
        nomad_session.get.return_value = _response(200, {"Status": "running"})

        code = run_cli(monkeypatch, "deploy", "--mode", "automated", "--job-file", str(job_file))

        out = capsys.readouterr().out
        assert code == 0
        assert "Evaluation ID: eval-1" in out
        assert "Job Status: running" in out
        assert "Deployment complete" in out
        assert "abc123" not in out
        assert nomad_session.post.call_args.kwargs["headers"]["X-Nomad-Token"] == "abc123"

    def test_empty_token_exits_before_submission(self, cli_env, monkeypatch, vault_store, nomad_session,
                                                 job_file, capsys):
        vault_store["traefik/nomad"] = {"token": "", "addr": "https://orchestrator.example"}

        code = run_cli(monkeypatch, "deploy", "--mode", "automated", "--job-file", str(job_file))

        assert code == 1
        nomad_session.post.assert_not_called()
        assert "Failed to retrieve Nomad credentials" in capsys.readouterr().err

    def test_rejected_submission_prints_body_and_exits(self, cli_env, monkeypatch, vault_store, nomad_session,
                                                       job_file, capsys):
        vault_store["traefik/nomad"] = {"token": "abc123", "addr": "https://orchestrator.example"}
        nomad_session.post.return_value = _response(403, text="Permission denied")

        code = run_cli(monkeypatch, "deploy", "--mode", "automated", "--job-file", str(job_file))

        err = capsys.readouterr().err
        assert code == 1
        assert "HTTP Code: 403" in err
        assert "Response: Permission denied" in err
        nomad_session.get.assert_not_called()

    def test_not_running_warns_but_succeeds_by_default(self, cli_env, monkeypatch, vault_store, nomad_session,
                                                       job_file, capsys):
        vault_store["traefik/nomad"] = {"token": "abc123", "addr": "https://orchestrator.example"}
        nomad_session.post.return_value = _response(200, {"EvalID": "eval-1"})
        nomad_session.get.return_value = _response(200, {"Status": "pending"})

        code = run_cli(monkeypatch, "deploy", "--mode", "automated", "--job-file", str(job_file),
                       "--max-attempts", "2")

        captured = capsys.readouterr()
        assert code == 0
        assert "Job Status: pending" in captured.out
        assert "not running after 2 status check(s)" in captured.err

    def test_not_running_fails_with_strict(self, cli_env, monkeypatch, vault_store, nomad_session,
                                           job_file, capsys):
        vault_store["traefik/nomad"] = {"token": "abc123", "addr": "https://orchestrator.example"}
        nomad_session.post.return_value = _response(200, {"EvalID": "eval-1"})
        nomad_session.get.return_value = _response(200, {"Status": "dead"})

        code = run_cli(monkeypatch, "deploy", "--mode", "automated", "--job-file", str(job_file), "--strict")

        assert code == 1
        assert "status: dead" in capsys.readouterr().err

    def test_env_fallback_when_vault_has_nothing(self, cli_env, monkeypatch, nomad_session, job_file, capsys):
        monkeypatch.setenv("NOMAD_TOKEN", "env-token")
        monkeypatch.setenv("NOMAD_ADDR", "https://nomad.env")
        nomad_session.post.return_value = _response(200, {})
        nomad_session.get.return_value = _response(200, {"Status": "running"})

        code = run_cli(monkeypatch, "deploy", "--mode", "automated", "--job-file", str(job_file),
                       "--credential-source", "vault", "--credential-source", "env")

        out = capsys.readouterr().out
        assert code == 0
        assert "Retrieved Nomad credentials from env" in out
        assert "Evaluation ID: unavailable" in out

    def test_github_actions_selects_automated_mode(self, cli_env, monkeypatch, vault_store, nomad_session,
                                                   job_file):
        monkeypatch.setenv("GITHUB_ACTIONS", "true")
        vault_store["traefik/nomad"] = {"token": "abc123", "addr": "https://orchestrator.example"}
        nomad_session.post.return_value = _response(200, {"EvalID": "eval-1"})
        nomad_session.get.return_value = _response(200, {"Status": "running"})

        assert run_cli(monkeypatch, "deploy", "--job-file", str(job_file)) == 0
        nomad_session.post.assert_called_once()

    def test_invalid_max_attempts_is_usage_error(self, cli_env, monkeypatch):
        assert run_cli(monkeypatch, "deploy", "--max-attempts", "0") == 2

    def test_status_read_failure_still_shows_evaluation_id(self, cli_env, monkeypatch, vault_store,
                                                           nomad_session, job_file, capsys):
        vault_store["traefik/nomad"] = {"token": "abc123", "addr": "https://orchestrator.example"}
        nomad_session.post.return_value = _response(200, {"EvalID": "eval-1"})
        nomad_session.get.side_effect = requests.exceptions.ConnectionError("reset")

        code = run_cli(monkeypatch, "deploy", "--mode", "automated", "--job-file", str(job_file))

        captured = capsys.readouterr()
        assert code == 1
        assert "Job submitted successfully" in captured.out
        assert "Evaluation ID: eval-1" in captured.out
        assert "Failed to read status" in captured.err

    def test_credential_lookup_announced_once(self, cli_env, monkeypatch, vault_store, nomad_session,
                                              job_file, capsys, caplog):
        caplog.set_level(logging.INFO)
        vault_store["traefik/nomad"] = {"token": "abc123", "addr": "https://orchestrator.example"}
        nomad_session.post.return_value = _response(200, {"EvalID": "eval-1"})
        nomad_session.get.return_value = _response(200, {"Status": "running"})

        code = run_cli(monkeypatch, "-v", "deploy", "--mode", "automated", "--job-file", str(job_file))

        assert code == 0
        assert capsys.readouterr().out.count("Retrieving deployment credentials") == 1
        assert "Retrieving deployment credentials" not in caplog.text


class TestOtherCommands:

    def test_detect_execution_mode(self):
        assert cli.detect_execution_mode({"GITHUB_ACTIONS": "true"}) is ExecutionMode.AUTOMATED
        assert cli.detect_execution_mode({}) is ExecutionMode.LOCAL

    def test_no_command_is_usage_error(self, cli_env, monkeypatch):
        assert run_cli(monkeypatch) == 2

    def test_version(self, cli_env, monkeypatch, capsys):
        assert run_cli(monkeypatch, "version") == 0
        assert "vault-nomad-deploy" in capsys.readouterr().out

    def test_secrets_get_quiet(self, cli_env, monkeypatch, vault_store, capsys):
        vault_store["traefik/dashboard"] = {"username": "admin"}

        assert run_cli(monkeypatch, "secrets", "get", "traefik/dashboard", "username", "-q") == 0
        assert capsys.readouterr().out == "admin\n"

    def test_secrets_get_missing_field(self, cli_env, monkeypatch, vault_store, capsys):
        vault_store["traefik/dashboard"] = {"username": "admin"}

        assert run_cli(monkeypatch, "secrets", "get", "traefik/dashboard", "password") == 1
        assert "'password'" in capsys.readouterr().err

    def test_secrets_get_invalid_path(self, cli_env, monkeypatch):
        assert run_cli(monkeypatch, "secrets", "get", "/traefik//nomad", "token") == 2

    def test_secrets_get_without_vault_token(self, cli_env, monkeypatch, capsys):
        monkeypatch.delenv("VAULT_TOKEN")

        assert run_cli(monkeypatch, "secrets", "get", "traefik/nomad", "token") == 1
        assert "VAULT_TOKEN" in capsys.readouterr().err

    def test_setup_reports_generated_dashboard_password(self, cli_env, monkeypatch, vault_store, capsys):
        assert run_cli(monkeypatch, "setup") == 0

        out = capsys.readouterr().out
        assert f"Password: {vault_store['traefik/dashboard']['password']}" in out
        assert "Created: traefik/vault" in out

    def test_setup_with_sealed_vault(self, cli_env, monkeypatch, hvac_client, capsys):
        hvac_client.sys.is_sealed.return_value = True

        assert run_cli(monkeypatch, "setup") == 1
        assert "sealed" in capsys.readouterr().err

    def test_secrets_dashboard_masks_password(self, cli_env, monkeypatch, vault_store, capsys):
        vault_store["traefik/dashboard"] = {"username": "admin", "password": "pw-123", "auth": "admin:$$2y$$hash"}

        assert run_cli(monkeypatch, "secrets", "dashboard") == 0

        out = capsys.readouterr().out
        assert "Username: admin" in out
        assert "Basic auth: admin:$$2y$$hash" in out
        assert "pw-123" not in out

    def test_secrets_dashboard_show_password(self, cli_env, monkeypatch, vault_store, capsys):
        vault_store["traefik/dashboard"] = {"username": "admin", "password": "pw-123", "auth": "admin:$$2y$$hash"}

        assert run_cli(monkeypatch, "secrets", "dashboard", "--show-password") == 0
        assert "Password: pw-123" in capsys.readouterr().out

    def test_secrets_dashboard_missing_field(self, cli_env, monkeypatch, vault_store, capsys):
        vault_store["traefik/dashboard"] = {"username": "admin", "password": "pw-123"}

        assert run_cli(monkeypatch, "secrets", "dashboard") == 1
        assert "'auth'" in capsys.readouterr().err
