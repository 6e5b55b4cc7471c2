"""Fixed values for client repository provisioning.

Every value can be overridden from the environment, and the CLI options take
precedence over both.
"""

import os
from dataclasses import dataclass, replace
from typing import Optional

DEFAULT_ORG = "ciwebgroup"
DEFAULT_TEMPLATE = "ciwebgroup/client-site-template"
DEFAULT_INIT_WORKFLOW = "init.yml"
DEFAULT_STAGE_BRANCH = "stage"
DEFAULT_SOURCE_BRANCH = "main"
DOMAIN_VARIABLE = "PROD_DOMAIN"
REPO_PREFIX = "client-"

ENV_ORG = "CLIENT_REPO_ORG"
ENV_TEMPLATE = "CLIENT_REPO_TEMPLATE"
ENV_INIT_WORKFLOW = "CLIENT_REPO_INIT_WORKFLOW"
ENV_STAGE_BRANCH = "CLIENT_REPO_STAGE_BRANCH"

GIT_INSTALL_URL = "https://git-scm.com/downloads"
GH_INSTALL_URL = "https://cli.github.com/manual/installation"
HOMEBREW_INSTALL_URL = "https://raw.githubusercontent.com/Homebrew/install/HEAD/install.sh"
GH_APT_KEYRING_URL = "https://cli.github.com/packages/githubcli-archive-keyring.gpg"
GH_APT_KEYRING_PATH = "/usr/share/keyrings/githubcli-archive-keyring.gpg"
GH_APT_SOURCE_PATH = "/etc/apt/sources.list.d/github-cli.list"
GH_RPM_REPO_URL = "https://cli.github.com/packages/rpm/gh-cli.repo"


@dataclass(frozen=True)
class PollSettings:
    attempts: int
    interval: float


@dataclass(frozen=True)
class ProvisionConfig:
    org: str = DEFAULT_ORG
    template: str = DEFAULT_TEMPLATE
    init_workflow: str = DEFAULT_INIT_WORKFLOW
    stage_branch: str = DEFAULT_STAGE_BRANCH
    source_branch: str = DEFAULT_SOURCE_BRANCH
    domain_variable: str = DOMAIN_VARIABLE
    populate_poll: PollSettings = PollSettings(attempts=12, interval=5)
    workflow_poll: PollSettings = PollSettings(attempts=12, interval=5)
    discovery_poll: PollSettings = PollSettings(attempts=12, interval=5)
    run_poll: PollSettings = PollSettings(attempts=180, interval=10)
    # Consecutive polls a run may sit queued with no runner before it is reported.
    stuck_polls: int = 18

    @classmethod
    def from_env(cls, environ: Optional[dict] = None) -> "ProvisionConfig":
        env = os.environ if environ is None else environ
        return cls(
            org=(env.get(ENV_ORG) or DEFAULT_ORG).strip(),
            template=(env.get(ENV_TEMPLATE) or DEFAULT_TEMPLATE).strip(),
            init_workflow=(env.get(ENV_INIT_WORKFLOW) or DEFAULT_INIT_WORKFLOW).strip(),
            stage_branch=(env.get(ENV_STAGE_BRANCH) or DEFAULT_STAGE_BRANCH).strip(),
        )

    def with_overrides(self, **overrides) -> "ProvisionConfig":
        """Return a copy with every non-empty override applied."""
        values = {k: v for k, v in overrides.items() if v}
        return replace(self, **values)


def github_token(cli_token: Optional[str] = None) -> Optional[str]:
    """Return sanitized GitHub token (cli arg takes precedence) or None."""
    return ((cli_token or os.getenv("GH_TOKEN") or os.getenv("GITHUB_TOKEN") or "").strip()) or None
