"""Argument lists for kbcli and the manifests that accompany them.

Everything here is pure: no process is started and nothing is read from
disk. The kubeconfig flag is added later by :class:`fdb.runner.ProcessRunner`.
"""

from __future__ import annotations

from typing import Any

from fdb.models import ClusterSpec, DatabaseKind, external_service_name

AUTO_APPROVE_FLAG = "--auto-approve"


def build_create_args(spec: ClusterSpec) -> list[str]:
    return [
        "cluster",
        "create",
        spec.kind.value,
        spec.name,
        "--replicas",
        str(spec.replicas),
        "--storage",
        spec.storage,
        "--cpu",
        spec.cpu,
        "--memory",
        spec.memory,
    ]


def build_delete_args(name: str, *, auto_approve: bool) -> list[str]:
    args = ["cluster", "delete", name]
    if auto_approve:
        args.append(AUTO_APPROVE_FLAG)
    return args


def build_list_args(name: str | None = None) -> list[str]:
    args = ["cluster", "list"]
    if name is not None:
        args.append(name)
    return args


def build_external_service(
    cluster_name: str,
    kind: DatabaseKind,
    *,
    namespace: str = "default",
) -> dict[str, Any]:
    """NodePort Service routed to the cluster's primary pod.

    The operator reverts edits to the services it owns, so a separate
    service is created instead of patching its own.
    """
    port = kind.profile.port
    return {
        "apiVersion": "v1",
        "kind": "Service",
        "metadata": {
            "name": external_service_name(cluster_name, kind),
            "namespace": namespace,
            "labels": {
                "app.kubernetes.io/managed-by": "fdb",
                "app.kubernetes.io/instance": cluster_name,
            },
        },
        "spec": {
            "type": "NodePort",
            "selector": {
                "app.kubernetes.io/instance": cluster_name,
                "apps.kubeblocks.io/component-name": kind.value,
                "kubeblocks.io/role": "primary",
            },
            "ports": [
                {
                    "name": kind.value,
                    "port": port,
                    "targetPort": port,
                    "protocol": "TCP",
                }
            ],
        },
    }
