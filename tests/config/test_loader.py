import textwrap
from pathlib import Path

import pytest
from pydantic import ValidationError

from rancher_k3k.config.loader import (
    build_deploy_config,
    build_settings,
    get_path,
    is_non_interactive,
    load_raw,
    set_path,
)
from rancher_k3k.config.models import CredentialBundle


def test_load_config_minimal_ok(tmp_path: Path):
    f = tmp_path / "deploy.yaml"
    f.write_text(textwrap.dedent("""
        hostname: rancher.lab
        bootstrap_password: supersecret123
        target:
          namespace: rancher-prod
    """))
    cfg = build_deploy_config(load_raw(f, env={}))

    assert cfg.hostname == "rancher.lab"
    assert cfg.method == "k3k"
    assert cfg.pvc_size == "10Gi"
    assert cfg.target.namespace == "rancher-prod"
    assert cfg.target.cluster_name == "rancher"
    assert cfg.target.kubeconfig_secret == "k3k-rancher-kubeconfig"


def test_environment_overrides_file(tmp_path: Path):
    f = tmp_path / "deploy.yaml"
    f.write_text("hostname: from-file.lab\npvc_size: 20Gi\n")
    raw = load_raw(f, env={"RANCHER_HOSTNAME": "from-env.lab", "PVC_SIZE": "", "K3K_NAMESPACE": "ns2"})

    assert raw["hostname"] == "from-env.lab"
    # empty values count as unset
    assert raw["pvc_size"] == "20Gi"
    assert raw["target"] == {"namespace": "ns2"}


def test_file_expands_environment_variables(tmp_path: Path, monkeypatch):
    monkeypatch.setenv("SECRET_PW", "from-the-env")
    f = tmp_path / "deploy.yaml"
    f.write_text("credentials:\n  username: robot\n  password: ${SECRET_PW}\n")
    assert get_path(load_raw(f, env={}), "credentials.password") == "from-the-env"


def test_non_mapping_file_is_rejected(tmp_path: Path):
    f = tmp_path / "deploy.yaml"
    f.write_text("- a\n- b\n")
    with pytest.raises(ValueError, match="mapping"):
        load_raw(f, env={})


def test_partial_chart_source_keeps_default_repo():
    cfg = build_deploy_config({
        "hostname": "rancher.lab",
        "bootstrap_password": "supersecret123",
        "rancher": {"version": "v2.14.0"},
    })
    assert cfg.rancher.version == "v2.14.0"
    assert cfg.rancher.repo == "https://releases.rancher.com/server-charts/latest"


def test_short_password_rejected():
    with pytest.raises(ValidationError):
        build_deploy_config({"hostname": "rancher.lab", "bootstrap_password": "short"})


@pytest.mark.parametrize("size", ["10G", "0Gi", "ten", "10gi"])
def test_bad_pvc_size_rejected(size):
    with pytest.raises(ValidationError):
        build_deploy_config({"hostname": "h", "bootstrap_password": "supersecret123", "pvc_size": size})


def test_credentials_must_come_in_pairs():
    with pytest.raises(ValidationError, match="together"):
        CredentialBundle(username="robot")


def test_missing_ca_file_rejected(tmp_path: Path):
    with pytest.raises(ValidationError, match="not found"):
        CredentialBundle(ca_path=tmp_path / "missing.pem")


def test_settings_ignore_deploy_only_keys():
    settings = build_settings({"hostname": "h", "bootstrap_password": "x", "backup": {"s3_bucket": "b"}})
    assert settings.backup.s3_bucket == "b"
    assert not hasattr(settings, "hostname")


def test_set_and_get_path():
    data = {}
    set_path(data, "a.b.c", 1)
    assert data == {"a": {"b": {"c": 1}}}
    assert get_path(data, "a.b.c") == 1
    assert get_path(data, "a.x") is None


def test_is_non_interactive():
    assert is_non_interactive({"RANCHER_K3K_NONINTERACTIVE": "1"})
    assert is_non_interactive({"RANCHER_K3K_NONINTERACTIVE": "true"})
    assert not is_non_interactive({})
