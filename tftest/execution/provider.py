"""Render the per-job Terraform provider pointing every service at the mock."""

from __future__ import annotations

import os
from typing import Sequence

from tftest.config.services import DEFAULT_SERVICES
from tftest.execution.readiness import endpoint_url

_HEADER = """\
terraform {
\tbackend "local" {
\t\tpath = "terraform.tfstate"
\t}
}

provider "aws" {
\ts3_force_path_style         = true
\tskip_credentials_validation = true
\tskip_metadata_api_check     = true
\tskip_requesting_account_id  = true
\tendpoints {
"""

_FOOTER = """\
\t}
}
"""


def render_provider(services: Sequence[str], port: int) -> str:
    """Return provider.tf contents for ``services`` on ``port``.

    An empty ``services`` selects the built-in service list.
    """
    url = endpoint_url(port)
    lines = [f'\t\t{service} = "{url}"\n' for service in (services or DEFAULT_SERVICES)]
    return _HEADER + "".join(lines) + _FOOTER


def write_provider(path: str, services: Sequence[str], port: int) -> None:
    """Write the rendered provider to ``path`` with owner-only permissions.

    Raises:
        OSError: If the file cannot be written.
    """
    content = render_provider(services, port)
    fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
    with os.fdopen(fd, "w") as f:
        f.write(content)
