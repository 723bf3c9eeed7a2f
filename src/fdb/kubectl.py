"""Thin wrapper around kubectl for the lookups fdb needs."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from pathlib import Path
from typing import Any, Optional

import yaml

from fdb.parsing import decode_secret_value, parse_node_port, parse_server_host
from fdb.runner import ProcessRunner

LOGGER = logging.getLogger("fdb.kubectl")

NODE_PORT_ATTEMPTS = 3
NODE_PORT_RETRY_SECONDS = 0.5
SERVICE_SETTLE_SECONDS = 0.8


class KubectlError(RuntimeError):
    pass


class KubectlClient:
    def __init__(
        self,
        kubectl: Path,
        runner: ProcessRunner,
        *,
        namespace: str = "default",
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.kubectl = kubectl
        self.runner = runner
        self.namespace = namespace
        self._sleep = sleep

    def server_host(self) -> str:
        """Host of the current context's API server."""
        url = self._run_kubectl(
            [
                "config",
                "view",
                "--minify",
                "-o",
                "jsonpath={.clusters[0].cluster.server}",
            ]
        )
        host = parse_server_host(url)
        if host is None:
            raise KubectlError(f"could not parse server URL: {url!r}")
        return host

    def service_exists(self, name: str) -> bool:
        result = self.runner.run(
            self.kubectl,
            ["get", "svc", name, "-n", self.namespace, "-o", "name"],
        )
        return result.ok and "service/" in result.stdout

    def apply_manifest(self, manifest: dict[str, Any]) -> str:
        document = yaml.safe_dump(manifest, sort_keys=False)
        return self._run_kubectl(["apply", "-f", "-"], input_data=document)

    def ensure_service(self, manifest: dict[str, Any]) -> bool:
        """Create the service unless it already exists. Returns True when it was created."""
        name = str(manifest["metadata"]["name"])
        if self.service_exists(name):
            LOGGER.debug("service already present name=%s", name)
            return False
        self.apply_manifest(manifest)
        LOGGER.info("service created name=%s namespace=%s", name, self.namespace)
        self._sleep(SERVICE_SETTLE_SECONDS)
        return True

    def node_port(self, service_name: str, port: int) -> int:
        jsonpaths = (
            f"{{.spec.ports[?(@.port=={port})].nodePort}}",
            "{.spec.ports[*].nodePort}",
            "{.spec.ports[0].nodePort}",
        )
        for attempt in range(NODE_PORT_ATTEMPTS):
            if attempt > 0:
                self._sleep(NODE_PORT_RETRY_SECONDS)
            for jsonpath in jsonpaths:
                result = self.runner.run(
                    self.kubectl,
                    ["get", "svc", service_name, "-n", self.namespace, "-o", f"jsonpath={jsonpath}"],
                )
                if not result.ok:
                    continue
                node_port = parse_node_port(result.stdout)
                if node_port is not None:
                    return node_port
        raise KubectlError(
            f"nodePort not assigned for service {service_name}. "
            f"Run: kubectl get svc {service_name} -n {self.namespace} -o yaml"
        )

    def secret_value(self, secret_name: str, key: str = "password") -> Optional[str]:
        encoded = self._run_kubectl(
            [
                "get",
                "secret",
                secret_name,
                "-n",
                self.namespace,
                "-o",
                f"jsonpath={{.data.{key}}}",
            ]
        )
        return decode_secret_value(encoded)

    def delete_service(self, name: str) -> str:
        return self._run_kubectl(
            ["delete", "svc", name, "-n", self.namespace, "--ignore-not-found=true"]
        )

    def _run_kubectl(self, args: list[str], input_data: Optional[str] = None) -> str:
        result = self.runner.run(self.kubectl, args, input_data=input_data)
        if not result.ok:
            raise KubectlError(result.stderr.strip() or "kubectl command failed")
        return result.stdout.strip()
