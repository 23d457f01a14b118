import copy
import re
from typing import Callable, Dict, List, Optional, Tuple

import pytest
import yaml

from rancher_k3k.kube.kubectl import KubectlError

KIND_ALIASES = {
    "svc": "service",
    "services": "service",
    "secrets": "secret",
    "ingresses": "ingress",
    "deployments": "deployment",
    "deploy": "deployment",
    "clusters.k3k.io": "cluster",
    "helmcharts": "helmchart",
    "addons": "addon",
    "namespaces": "namespace",
    "clusterissuers": "clusterissuer",
    "certificates": "certificate",
    "backups.resources.cattle.io": "backup",
    "restores.resources.cattle.io": "restore",
    "customresourcedefinition": "crd",
}

_INDEX = re.compile(r"^([^\[]+)\[(\d+)\]$")


def _kind(kind: str) -> str:
    kind = kind.lower()
    return KIND_ALIASES.get(kind, kind)


def _walk(obj, jsonpath: str):
    """Tiny jsonpath: {.a.b[0].c} with escaped dots (kubeconfig\\.yaml)."""
    path = jsonpath.strip("{}").lstrip(".")
    parts = [p.replace("\0", ".") for p in path.replace("\\.", "\0").split(".")]
    node = obj
    for part in parts:
        m = _INDEX.match(part)
        key, idx = (m.group(1), int(m.group(2))) if m else (part, None)
        if not isinstance(node, dict) or key not in node:
            return ""
        node = node[key]
        if idx is not None:
            if not isinstance(node, list) or len(node) <= idx:
                return ""
            node = node[idx]
    if isinstance(node, bool):
        return "true" if node else "false"
    return "" if node is None else str(node)


def _merge(dst: dict, patch: dict) -> None:
    for k, v in patch.items():
        if isinstance(v, dict) and isinstance(dst.get(k), dict):
            _merge(dst[k], v)
        else:
            dst[k] = v


class FakeKube:
    """
    In-memory stand-in for KubectlRunner.

    - objects keyed by (kind, namespace, name)
    - `fields` overrides jsonpath reads the evaluator cannot do (filters)
    - `on_apply` hooks emulate controllers reacting to applied documents
    """

    def __init__(self, prefix: str = "kubectl"):
        self.prefix = prefix
        self.objects: Dict[Tuple[str, Optional[str], str], dict] = {}
        self.fields: Dict[Tuple[str, str, Optional[str], str], str] = {}
        self.available: Dict[Tuple[str, str], str] = {}
        self.applied: List[dict] = []
        self.patches: List[Tuple[str, str, dict]] = []
        self.deleted: List[Tuple[str, str]] = []
        self.on_apply: List[Callable[[dict], None]] = []
        self.fail_get: Dict[str, str] = {}
        self.node_ip: Optional[str] = "10.0.0.5"
        self.is_reachable = True
        self.kubeconfig_view: Optional["FakeKube"] = None

    # helpers for tests
    def put(self, obj: dict) -> None:
        meta = obj.get("metadata") or {}
        self.objects[(_kind(obj["kind"]), meta.get("namespace"), meta["name"])] = copy.deepcopy(obj)

    def find(self, kind: str, name: str, namespace: Optional[str] = None) -> Optional[dict]:
        return self.objects.get((_kind(kind), namespace, name))

    def kinds_applied(self) -> List[str]:
        return [d["kind"] for d in self.applied]

    # IKube
    def describe(self) -> str:
        return self.prefix

    def for_kubeconfig(self, path) -> "FakeKube":
        return self.kubeconfig_view or self

    def apply(self, content: str) -> None:
        for doc in yaml.safe_load_all(content):
            if not doc:
                continue
            self.put(doc)
            self.applied.append(doc)
            for hook in self.on_apply:
                hook(doc)

    def apply_objects(self, objects) -> None:
        objects = [o for o in objects if o]
        if objects:
            self.apply(yaml.safe_dump_all(objects, sort_keys=False))

    def get_json(self, kind, name, *, namespace=None):
        obj = self.find(kind, name, namespace)
        return copy.deepcopy(obj) if obj is not None else None

    def get_field(self, kind, name, jsonpath, *, namespace=None):
        key = (_kind(kind), name, namespace, jsonpath)
        if key in self.fields:
            return self.fields[key]
        obj = self.find(kind, name, namespace)
        if obj is None:
            return None
        return _walk(obj, jsonpath)

    def get_yaml(self, kind, name=None, *, namespace=None, all_namespaces=False):
        k = _kind(kind)
        if k in self.fail_get:
            raise KubectlError(self.fail_get[k])
        if name:
            obj = self.find(kind, name, namespace)
            if obj is None:
                raise KubectlError(f'{kind} "{name}" not found')
            return yaml.safe_dump(obj)
        items = [
            o for (ok, ons, _), o in sorted(self.objects.items(), key=lambda kv: str(kv[0]))
            if ok == k and (all_namespaces or ons == namespace)
        ]
        return yaml.safe_dump({"apiVersion": "v1", "kind": "List", "items": items})

    def exists(self, kind, name, *, namespace=None):
        return self.find(kind, name, namespace) is not None

    def patch(self, kind, name, patch, *, namespace=None):
        obj = self.objects.get((_kind(kind), namespace, name))
        if obj is None:
            raise KubectlError(f'{kind} "{name}" not found')
        _merge(obj, patch)
        self.patches.append((_kind(kind), name, patch))

    def delete(self, kind, name, *, namespace=None):
        removed = self.objects.pop((_kind(kind), namespace, name), None)
        self.deleted.append((_kind(kind), name))
        return removed is not None

    def reachable(self):
        return self.is_reachable

    def deployment_available(self, name, namespace):
        return self.available.get((name, namespace))

    def first_node_ip(self):
        return self.node_ip

    def first_ingress_host(self, namespace):
        return None


class FakeHelm:
    def __init__(self):
        self.releases: Dict[Tuple[str, str], str] = {}
        self.calls: List[tuple] = []
        self.on_install: List[Callable[[str, str, str], None]] = []

    def add_repo(self, name, url, flags=()):
        self.calls.append(("repo-add", name, url, tuple(flags)))

    def update_repos(self, name=None):
        self.calls.append(("repo-update", name))

    def deployed_chart_version(self, release, namespace):
        return self.releases.get((release, namespace))

    def upgrade_install(self, release, chart, namespace, *, version=None, flags=(), create_namespace=True):
        self.calls.append(("upgrade-install", release, chart, namespace, version, tuple(flags)))
        self.releases[(release, namespace)] = version.lstrip("v") if version else ""
        for hook in self.on_install:
            hook(release, namespace, version)

    def uninstall(self, release, namespace):
        self.calls.append(("uninstall", release, namespace))
        self.releases.pop((release, namespace), None)


class Capture:
    def __init__(self):
        self.events = []

    def notify(self, ev):
        self.events.append(ev)

    def kinds(self):
        return [e.__class__.__name__ for e in self.events]


@pytest.fixture
def host():
    return FakeKube()


@pytest.fixture
def virtual():
    return FakeKube("kubectl --kubeconfig=/tmp/k3k.yaml --insecure-skip-tls-verify")


@pytest.fixture
def helm():
    return FakeHelm()


@pytest.fixture
def sleeps():
    calls: List[float] = []
    return calls


@pytest.fixture
def capture():
    return Capture()
