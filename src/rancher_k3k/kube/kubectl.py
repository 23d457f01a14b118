# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/rancher_k3k/kube/kubectl.py
from __future__ import annotations

import json
import logging
import subprocess
from pathlib import Path
from typing import Any, Iterable, List, Optional

import yaml

log = logging.getLogger("rancher_k3k")


class KubectlError(RuntimeError):
    pass


class KubectlRunner:
    """
    Thin wrapper around the local `kubectl` binary.

    - apply / get / patch / delete against one cluster
    - a runner for the virtual cluster is derived with `for_kubeconfig`
    - testable by mocking subprocess.run
    """

    def __init__(
        self,
        *,
        context: str | None = None,
        kubeconfig: str | Path | None = None,
        insecure_skip_tls_verify: bool = False,
    ):
        self.context = context
        self.kubeconfig = str(kubeconfig) if kubeconfig else None
        self.insecure_skip_tls_verify = insecure_skip_tls_verify

    # ------------------------- internal helpers -------------------------

    def _base(self) -> list[str]:
        cmd = ["kubectl"]
        if self.kubeconfig:
            cmd.append(f"--kubeconfig={self.kubeconfig}")
        if self.context:
            cmd += ["--context", self.context]
        if self.insecure_skip_tls_verify:
            cmd.append("--insecure-skip-tls-verify")
        return cmd

    def _run(self, args: List[str], *, stdin: str | None = None) -> subprocess.CompletedProcess:
        argv = self._base() + args
        log.debug("[kubectl] $ %s", " ".join(argv))
        return subprocess.run(
            argv,
            input=stdin,
            capture_output=True,
            text=True,
            check=False,
        )

    @staticmethod
    def _target(kind: str, name: str | None, namespace: str | None, all_namespaces: bool = False) -> list[str]:
        args = [kind]
        if name:
            args.append(name)
        if all_namespaces:
            args.append("-A")
        elif namespace:
            args += ["-n", namespace]
        return args

    def describe(self) -> str:
        """The kubectl prefix an operator would type to reach this cluster."""
        return " ".join(self._base())

    def for_kubeconfig(self, kubeconfig: str | Path, *, insecure: bool = True) -> "KubectlRunner":
        return KubectlRunner(kubeconfig=kubeconfig, insecure_skip_tls_verify=insecure)

    # ------------------------- adapter methods -------------------------

    def apply(self, content: str) -> None:
        """kubectl apply -f - ; identical content is a no-op on the server."""
        cp = self._run(["apply", "-f", "-"], stdin=content)
        if cp.returncode != 0:
            raise KubectlError(f"kubectl apply failed: {(cp.stderr or cp.stdout).strip()}")
        log.debug("[kubectl] apply: %s", cp.stdout.strip())

    def apply_objects(self, objects: Iterable[dict]) -> None:
        objects = [o for o in objects if o]
        if not objects:
            return
        self.apply(yaml.safe_dump_all(objects, sort_keys=False))

    def get_field(
        self,
        kind: str,
        name: str,
        jsonpath: str,
        *,
        namespace: str | None = None,
    ) -> Optional[str]:
        """
        Current value at `jsonpath`, or None when the resource does not exist.
        """
        cp = self._run(["get"] + self._target(kind, name, namespace) + ["-o", f"jsonpath={jsonpath}"])
        if cp.returncode != 0:
            if "NotFound" in (cp.stderr or "") or "not found" in (cp.stderr or ""):
                return None
            raise KubectlError(f"kubectl get {kind}/{name} failed: {cp.stderr.strip()}")
        return cp.stdout.strip()

    def get_json(self, kind: str, name: str, *, namespace: str | None = None) -> Optional[dict]:
        cp = self._run(["get"] + self._target(kind, name, namespace) + ["-o", "json"])
        if cp.returncode != 0:
            if "NotFound" in (cp.stderr or ""):
                return None
            raise KubectlError(f"kubectl get {kind}/{name} failed: {cp.stderr.strip()}")
        try:
            return json.loads(cp.stdout)
        except json.JSONDecodeError as e:
            raise KubectlError(f"failed to parse kubectl output as JSON: {e}") from e

    def get_yaml(
        self,
        kind: str,
        name: str | None = None,
        *,
        namespace: str | None = None,
        all_namespaces: bool = False,
    ) -> str:
        cp = self._run(["get"] + self._target(kind, name, namespace, all_namespaces) + ["-o", "yaml"])
        if cp.returncode != 0:
            raise KubectlError(f"kubectl get {kind} {name or ''} failed: {cp.stderr.strip()}")
        return cp.stdout

    def exists(self, kind: str, name: str, *, namespace: str | None = None) -> bool:
        cp = self._run(["get"] + self._target(kind, name, namespace) + ["-o", "name"])
        return cp.returncode == 0

    def patch(self, kind: str, name: str, patch: dict, *, namespace: str | None = None) -> None:
        args = ["patch"] + self._target(kind, name, namespace) + ["--type", "merge", "-p", json.dumps(patch)]
        cp = self._run(args)
        if cp.returncode != 0:
            raise KubectlError(f"kubectl patch {kind}/{name} failed: {cp.stderr.strip()}")

    def delete(self, kind: str, name: str, *, namespace: str | None = None) -> bool:
        """Returns False when there was nothing to delete."""
        cp = self._run(["delete"] + self._target(kind, name, namespace) + ["--ignore-not-found"])
        if cp.returncode != 0:
            raise KubectlError(f"kubectl delete {kind}/{name} failed: {cp.stderr.strip()}")
        return bool(cp.stdout.strip())

    def reachable(self) -> bool:
        cp = self._run(["get", "nodes", "-o", "name", "--request-timeout=10s"])
        return cp.returncode == 0

    def first_node_ip(self) -> Optional[str]:
        value = self.get_field(
            "nodes", "",
            '{.items[0].status.addresses[?(@.type=="InternalIP")].address}',
        )
        return value or None

    def deployment_available(self, name: str, namespace: str) -> Optional[str]:
        return self.get_field(
            "deployment", name,
            '{.status.conditions[?(@.type=="Available")].status}',
            namespace=namespace,
        )

    def first_ingress_host(self, namespace: str) -> Optional[str]:
        try:
            value = self.get_field("ingress", "", "{.items[0].spec.rules[0].host}", namespace=namespace)
        except KubectlError:
            return None
        return value or None
