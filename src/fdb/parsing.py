"""Parsers for kbcli and kubectl output, and connection string rendering."""

from __future__ import annotations

import base64
import binascii
from urllib.parse import urlparse

from fdb.models import ConnectionInfo

RUNNING_STATUS = "Running"
_STATUS_COLUMN = 4


class MissingConnectionFieldError(ValueError):
    def __init__(self, fields: list[str]) -> None:
        super().__init__(f"missing connection details: {', '.join(fields)}")
        self.fields = fields


def parse_server_host(server_url: str) -> str | None:
    """Host part of a kubeconfig server URL, e.g. ``https://10.0.0.5:6443`` -> ``10.0.0.5``."""
    url = server_url.strip()
    if not url.startswith(("https://", "http://")):
        return None
    host = urlparse(url).hostname
    return host or None


def parse_node_port(output: str) -> int | None:
    """First nonzero port number in kubectl jsonpath output."""
    for token in output.split():
        if not token.isdigit():
            continue
        port = int(token)
        if 0 < port <= 65535:
            return port
    return None


def parse_cluster_status(output: str) -> str | None:
    """STATUS column of the first data row of ``kbcli cluster list``."""
    lines = [line for line in output.splitlines() if line.strip()]
    if len(lines) < 2:
        return None
    columns = lines[1].split()
    if len(columns) <= _STATUS_COLUMN:
        return None
    return columns[_STATUS_COLUMN]


def decode_secret_value(encoded: str) -> str | None:
    """Decode a base64 secret value as printed by ``kubectl get secret -o jsonpath``."""
    text = encoded.strip()
    if not text:
        return None
    try:
        return base64.b64decode(text, validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError):
        return None


def render_connection_string(info: ConnectionInfo) -> str:
    missing = info.missing_fields()
    if missing:
        raise MissingConnectionFieldError(missing)
    return info.kind.profile.template.format(
        user=info.user or "",
        password=info.password or "",
        host=_uri_host(info.host or ""),
        port=info.port,
    )


def _uri_host(host: str) -> str:
    # IPv6 literals need brackets inside a URI authority.
    if ":" in host and not host.startswith("["):
        return f"[{host}]"
    return host
