"""Create, delete and list database clusters through kbcli."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from typing import Optional

from fdb.kbcli import (
    build_create_args,
    build_delete_args,
    build_external_service,
    build_list_args,
)
from fdb.kubectl import KubectlClient, KubectlError
from fdb.models import (
    ClusterSpec,
    ConnectionInfo,
    ConnectionReport,
    DatabaseKind,
    ToolPaths,
    external_service_name,
)
from fdb.parsing import RUNNING_STATUS, parse_cluster_status
from fdb.runner import ProcessRunner

LOGGER = logging.getLogger("fdb.cluster")


class ClusterService:
    def __init__(
        self,
        tools: ToolPaths,
        runner: ProcessRunner,
        *,
        namespace: str = "default",
        wait_timeout_seconds: float = 300.0,
        poll_interval_seconds: float = 3.0,
        kubectl: Optional[KubectlClient] = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.tools = tools
        self.runner = runner
        self.namespace = namespace
        self.wait_timeout_seconds = wait_timeout_seconds
        self.poll_interval_seconds = poll_interval_seconds
        self.kubectl = (
            kubectl
            if kubectl is not None
            else KubectlClient(tools.kubectl, runner, namespace=namespace, sleep=sleep)
        )
        self._sleep = sleep
        self._clock = clock

    def create(self, spec: ClusterSpec) -> None:
        LOGGER.info(
            "creating cluster name=%s kind=%s replicas=%s storage=%s cpu=%s memory=%s",
            spec.name,
            spec.kind.value,
            spec.replicas,
            spec.storage,
            spec.cpu,
            spec.memory,
        )
        self.runner.check(self.tools.kbcli, build_create_args(spec))

    def status(self, name: str) -> Optional[str]:
        result = self.runner.run(self.tools.kbcli, build_list_args(name))
        if not result.ok:
            LOGGER.debug("status lookup failed name=%s stderr=%s", name, result.stderr.strip())
            return None
        return parse_cluster_status(result.stdout)

    def wait_until_running(self, name: str) -> bool:
        """Poll until kbcli reports Running. False when the deadline passes first."""
        deadline = self._clock() + self.wait_timeout_seconds
        while True:
            current = self.status(name)
            if current == RUNNING_STATUS:
                LOGGER.info("cluster running name=%s", name)
                return True
            if self._clock() >= deadline:
                LOGGER.warning(
                    "cluster not running before deadline name=%s status=%s timeout_seconds=%s",
                    name,
                    current,
                    self.wait_timeout_seconds,
                )
                return False
            LOGGER.debug("waiting for cluster name=%s status=%s", name, current)
            self._sleep(self.poll_interval_seconds)

    def connection_report(self, spec: ClusterSpec) -> ConnectionReport:
        """Collect whatever connection details can be found; gaps become warnings."""
        profile = spec.kind.profile
        warnings: list[str] = []

        password: Optional[str] = None
        if profile.has_password:
            secret_name = profile.secret_name(spec.name)
            try:
                password = self.kubectl.secret_value(secret_name)
            except KubectlError as exc:
                warnings.append(f"could not read password from secret {secret_name}: {exc}")
            else:
                if password is None:
                    warnings.append(f"secret {secret_name} has no usable password")

        host: Optional[str] = None
        try:
            host = self.kubectl.server_host()
        except KubectlError as exc:
            warnings.append(f"could not get server host from kubeconfig: {exc}")

        port: Optional[int] = None
        manifest = build_external_service(spec.name, spec.kind, namespace=self.namespace)
        try:
            self.kubectl.ensure_service(manifest)
            port = self.kubectl.node_port(spec.external_service_name, profile.port)
        except KubectlError as exc:
            warnings.append(f"could not expose NodePort: {exc}")

        for warning in warnings:
            LOGGER.warning("incomplete connection details name=%s detail=%s", spec.name, warning)

        info = ConnectionInfo(
            kind=spec.kind,
            host=host,
            port=port,
            user=profile.user,
            password=password,
        )
        return ConnectionReport(info=info, warnings=tuple(warnings))

    def delete(self, name: str, *, auto_approve: bool) -> list[str]:
        """Delete the cluster and any external services fdb created for it.

        Returns warnings for external services that could not be removed.
        """
        # Without --auto-approve kbcli asks for the name again; the CLI has
        # already confirmed, so answer on its behalf.
        input_data = None if auto_approve else f"{name}\n"
        self.runner.check(
            self.tools.kbcli,
            build_delete_args(name, auto_approve=auto_approve),
            input_data=input_data,
        )
        LOGGER.info("cluster deleted name=%s", name)

        warnings: list[str] = []
        for kind in DatabaseKind:
            service_name = external_service_name(name, kind)
            try:
                self.kubectl.delete_service(service_name)
            except KubectlError as exc:
                message = f"could not delete service {service_name}: {exc}"
                LOGGER.warning("external service cleanup failed name=%s detail=%s", name, message)
                warnings.append(message)
        return warnings

    def list_clusters(self) -> str:
        result = self.runner.check(self.tools.kbcli, build_list_args())
        return result.stdout
