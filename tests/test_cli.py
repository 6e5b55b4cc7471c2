from __future__ import annotations

import pytest
from typer.testing import CliRunner

import client_repo_cli as cli
from client_repo_cli.errors import ProvisionError, UserAborted, WorkflowFailedError
from client_repo_cli.gh import WorkflowRun
from client_repo_cli.provision import ProvisionResult

runner = CliRunner()


class FakeProvisioner:
    instances: list["FakeProvisioner"] = []
    raises: Exception | None = None

    def __init__(self, target, config, options, tracker, confirm, notify, choose_editor=None):
        self.target = target
        self.choose_editor = choose_editor
        self.config = config
        self.options = options
        FakeProvisioner.instances.append(self)

    def run(self) -> ProvisionResult:
        if FakeProvisioner.raises is not None:
            raise FakeProvisioner.raises
        return ProvisionResult(
            target=self.target,
            created=True,
            run=WorkflowRun(id=5, status="completed", conclusion="success", url="https://github.com/run/5"),
            stage_sha="abcdef1234567",
        )


@pytest.fixture()
def provisioner(monkeypatch: pytest.MonkeyPatch):
    FakeProvisioner.instances = []
    FakeProvisioner.raises = None
    monkeypatch.setattr(cli, "ensure_prerequisites", lambda assume_yes: None)
    monkeypatch.setattr(cli, "Provisioner", FakeProvisioner)
    return FakeProvisioner


def test_slug_command():
    result = runner.invoke(cli.app, ["slug", "acme-hvac.co.uk"])
    assert result.exit_code == 0
    assert "acme-hvac" in result.output
    assert "ciwebgroup/client-acme-hvac" in result.output


def test_slug_command_org_override():
    result = runner.invoke(cli.app, ["slug", "acme.com", "--org", "other"])
    assert "other/client-acme" in result.output


def test_slug_command_warns_on_unknown_suffix():
    result = runner.invoke(cli.app, ["slug", "acme.xyz"])
    assert result.exit_code == 0
    assert "no recognized suffix" in result.output


def test_slug_command_rejects_bare_suffix():
    result = runner.invoke(cli.app, ["slug", ".com"])
    assert result.exit_code == 1


def test_create_runs_provisioner(provisioner):
    result = runner.invoke(cli.app, ["create", "--domain", "acme.com", "--yes", "--editor", "none", "--org", "acme-org"])

    assert result.exit_code == 0, result.output
    assert "Repository ready" in result.output
    made = provisioner.instances[0]
    assert made.target.full_repo == "acme-org/client-acme"
    assert made.options.clone and made.options.wait
    assert made.choose_editor() is None


def test_create_passes_skip_flags(provisioner):
    result = runner.invoke(cli.app, ["create", "-d", "acme.com", "-y", "--no-clone", "--no-wait", "--editor", "none"])

    assert result.exit_code == 0, result.output
    options = provisioner.instances[0].options
    assert not options.clone
    assert not options.wait


def test_create_without_domain_non_interactive(provisioner):
    result = runner.invoke(cli.app, ["create", "--yes"])
    assert result.exit_code == 1
    assert "Production domain is required" in result.output
    assert provisioner.instances == []


def test_create_needs_confirmation_when_not_interactive(provisioner):
    result = runner.invoke(cli.app, ["create", "--domain", "acme.com"])
    assert result.exit_code == 0
    assert "Aborted." in result.output
    assert provisioner.instances == []


def test_create_rejects_unknown_editor(provisioner):
    result = runner.invoke(cli.app, ["create", "--domain", "acme.com", "--yes", "--editor", "vim"])
    assert result.exit_code == 1
    assert "Invalid editor" in result.output


def test_create_user_abort_exits_zero_with_recovery(provisioner):
    provisioner.raises = UserAborted("Stopped waiting for run 5", recovery=["gh run watch 5"])
    result = runner.invoke(cli.app, ["create", "--domain", "acme.com", "--yes", "--editor", "none"])

    assert result.exit_code == 0
    assert "Stopped waiting" in result.output
    assert "gh run watch 5" in result.output


def test_create_failure_exits_one(provisioner):
    provisioner.raises = WorkflowFailedError("Run 5 finished with conclusion 'failure'", recovery=["gh run rerun 5"])
    result = runner.invoke(cli.app, ["create", "--domain", "acme.com", "--yes", "--editor", "none"])

    assert result.exit_code == 1
    assert "gh run rerun 5" in result.output


def test_create_prerequisite_failure(monkeypatch, provisioner):
    def missing(assume_yes):
        raise ProvisionError("gh is required", recovery=["Install gh manually"])

    monkeypatch.setattr(cli, "ensure_prerequisites", missing)
    result = runner.invoke(cli.app, ["create", "--domain", "acme.com", "--yes"])

    assert result.exit_code == 1
    assert "gh is required" in result.output
    assert provisioner.instances == []


def test_check_command(monkeypatch):
    monkeypatch.setattr(cli, "check_tool", lambda tool: tool in {"git", "gh"})
    monkeypatch.setattr(cli.gh, "version", lambda tool: f"{tool} 1.0")
    monkeypatch.setattr(cli.gh, "auth_ok", lambda: True)

    result = runner.invoke(cli.app, ["check"])

    assert result.exit_code == 0
    assert "Ready to create client repositories" in result.output
