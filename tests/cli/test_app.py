import pytest
import yaml
from typer.testing import CliRunner

from rancher_k3k.cli import app as cli
from rancher_k3k.deploy.vcluster import ADDON_NAME, ADDON_NS

runner = CliRunner()
BATCH = {"RANCHER_K3K_NONINTERACTIVE": "1"}


def _config(tmp_path, **extra):
    data = {"hostname": "rancher.lab", "bootstrap_password": "supersecret123", **extra}
    f = tmp_path / "deploy.yaml"
    f.write_text(yaml.safe_dump(data))
    return f


def test_render_k3k_prints_every_manifest(tmp_path):
    result = runner.invoke(cli.app, ["--config", str(_config(tmp_path)), "render"])

    assert result.exit_code == 0, result.output
    for name in ("rancher-cluster.yaml", "01-cert-manager.yaml", "02-rancher.yaml", "host-ingress.yaml"):
        assert f"# --- {name}" in result.output
    assert "__" not in result.output.replace("# --- ", "")
    assert 'hostname: "rancher.lab"' in result.output


def test_render_vcluster(tmp_path):
    result = runner.invoke(cli.app, ["--config", str(_config(tmp_path, method="vcluster")), "render"])
    assert result.exit_code == 0, result.output
    assert "# --- rancher-vcluster.yaml" in result.output
    assert "kind: Addon" in result.output


def test_render_environment_overrides(tmp_path):
    result = runner.invoke(
        cli.app,
        ["--config", str(_config(tmp_path)), "render"],
        env={"RANCHER_VERSION": "v2.14.0"},
    )
    assert result.exit_code == 0, result.output
    assert 'version: "v2.14.0"' in result.output


def test_invalid_config_exits_nonzero(tmp_path):
    result = runner.invoke(cli.app, ["--config", str(_config(tmp_path, pvc_size="huge")), "render"])
    assert result.exit_code == 1
    assert "invalid configuration" in result.output


def test_restore_missing_directory_fails(tmp_path):
    result = runner.invoke(cli.app, ["restore", "--from", str(tmp_path / "nope")])
    assert result.exit_code == 1
    assert "backup directory not found" in result.output


@pytest.fixture
def clusters(monkeypatch, tmp_path, host, virtual, helm):
    """Point the CLI at the in-memory host, virtual cluster and helm."""
    host.kubeconfig_view = virtual
    monkeypatch.setattr(cli, "KubectlRunner", lambda context=None: host)
    monkeypatch.setattr(cli, "HelmCliRunner", lambda kube_context=None: helm)
    monkeypatch.setattr(cli, "LOG_DIR", tmp_path / "logs")
    return host, virtual, helm


def _k3k_config(tmp_path):
    return _config(tmp_path, target={"kubeconfig_path": str(tmp_path / "k3k.yaml")})


def test_deploy_vcluster_non_interactive(tmp_path, clusters):
    host, _, _ = clusters
    real_patch = host.patch

    def patch(kind, name, body, *, namespace=None):
        real_patch(kind, name, body, namespace=namespace)
        host.find("addon", ADDON_NAME, ADDON_NS)["status"] = {"status": "AddonDeploySuccessful"}

    host.patch = patch
    result = runner.invoke(
        cli.app, ["--config", str(_config(tmp_path, method="vcluster")), "deploy"], env=BATCH
    )

    assert result.exit_code == 0, result.output
    assert "COMPLETE=1 SKIPPED=0 FAILED=0" in result.output
    assert "Rancher deployed successfully!" in result.output
    assert "https://rancher.lab" in result.output
    assert (tmp_path / "logs").is_dir()


def test_deploy_failed_step_exits_one_with_hint(tmp_path, clusters):
    host, _, helm = clusters

    def k3k_ready(release, namespace, version):
        host.available[("k3k", "k3k-system")] = "True"

    def cluster_failed(doc):
        if doc["kind"] == "Cluster":
            host.find("cluster", "rancher", "k3k-rancher")["status"] = {"phase": "Failed"}

    helm.on_install.append(k3k_ready)
    host.on_apply.append(cluster_failed)

    result = runner.invoke(cli.app, ["--config", str(_k3k_config(tmp_path)), "deploy"], env=BATCH)

    assert result.exit_code == 1
    assert "step:          virtual-cluster" in result.output
    assert "last observed: Failed" in result.output
    assert "inspect with:  kubectl get clusters.k3k.io rancher -n k3k-rancher -o yaml" in result.output


def test_deploy_unreachable_host(tmp_path, clusters):
    host, _, _ = clusters
    host.is_reachable = False
    result = runner.invoke(cli.app, ["--config", str(_k3k_config(tmp_path)), "deploy"], env=BATCH)

    assert result.exit_code == 1
    assert "cannot connect to the host cluster" in result.output
    assert "inspect with:  kubectl cluster-info" in result.output


def test_backup_preflight_failure_exits_one(tmp_path, clusters):
    result = runner.invoke(
        cli.app, ["--config", str(_k3k_config(tmp_path)), "backup", str(tmp_path / "bk")]
    )

    assert result.exit_code == 1
    assert "run deploy first" in result.output
    assert "inspect with:  kubectl get clusters.k3k.io rancher -n k3k-rancher -o yaml" in result.output
    assert not (tmp_path / "bk").exists()


def test_restore_preflight_failure_exits_one(tmp_path, clusters):
    backup_dir = tmp_path / "bk"
    backup_dir.mkdir()
    (backup_dir / "host-ingress.yaml").write_text("kind: Ingress\n")

    result = runner.invoke(
        cli.app,
        ["--config", str(_k3k_config(tmp_path)), "restore", "--from", str(backup_dir)],
        env=BATCH,
    )

    assert result.exit_code == 1
    assert "Contents: host-ingress.yaml" in result.output
    assert "run deploy first" in result.output
    assert "inspect with:  kubectl get clusters.k3k.io rancher -n k3k-rancher -o yaml" in result.output
