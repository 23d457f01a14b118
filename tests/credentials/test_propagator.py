import pytest
from pydantic import ValidationError

from rancher_k3k.config.models import CredentialBundle
from rancher_k3k.credentials.propagator import (
    ALL_TARGETS,
    AUTH_SECRET_TOKEN,
    REGISTRY_TOKEN,
    REPO_CA_TOKEN,
    TargetKind,
    ca_flags,
    merged_context,
    propagate,
)
from rancher_k3k.render.template import Delete, Replace


@pytest.fixture
def ca_file(tmp_path):
    p = tmp_path / "ca.pem"
    p.write_text("-----BEGIN CERTIFICATE-----\nMIIB\n-----END CERTIFICATE-----\n")
    return p


def test_cli_flags_order(ca_file):
    bundle = CredentialBundle(username="u", password="p", ca_path=ca_file)
    frag = propagate(bundle, {TargetKind.CLI_AUTH_FLAGS})[TargetKind.CLI_AUTH_FLAGS]
    assert list(frag.flags) == ["--username", "u", "--password", "p", "--ca-file", str(ca_file)]


def test_ca_only_flags(ca_file):
    bundle = CredentialBundle(ca_path=ca_file)
    frag = propagate(bundle, {TargetKind.CLI_AUTH_FLAGS})[TargetKind.CLI_AUTH_FLAGS]
    assert list(frag.flags) == ["--ca-file", str(ca_file)]
    assert ca_flags(bundle) == ["--ca-file", str(ca_file)]
    assert ca_flags(CredentialBundle()) == []


def test_propagate_is_pure(ca_file):
    bundle = CredentialBundle(username="u", password="p", ca_path=ca_file, registry="reg.lab:5000")
    assert propagate(bundle) == propagate(bundle)
    assert set(propagate(bundle)) == set(ALL_TARGETS)


def test_no_auth_means_no_auth_keys():
    frags = propagate(CredentialBundle())
    assert frags[TargetKind.CLI_AUTH_FLAGS].flags == ()
    ctx = merged_context(frags)
    assert ctx[AUTH_SECRET_TOKEN] == Delete()
    assert ctx[REPO_CA_TOKEN] == Delete()
    assert ctx[REGISTRY_TOKEN] == Delete()
    for resolution in ctx.values():
        assert not isinstance(resolution, Replace)


def test_secret_and_configmap_references(ca_file):
    bundle = CredentialBundle(username="u", password="p", ca_path=ca_file)
    ctx = merged_context(propagate(bundle, {TargetKind.SECRET_REFERENCE, TargetKind.CONFIGMAP_REFERENCE}))
    assert ctx[AUTH_SECRET_TOKEN] == Replace("authSecret:\n  name: helm-repo-auth")
    assert ctx[REPO_CA_TOKEN] == Replace("repoCAConfigMap:\n  name: helm-repo-ca")
    assert REGISTRY_TOKEN not in ctx


def test_registry_setting(ca_file):
    only_registry = propagate(CredentialBundle(registry="reg.lab:5000"), {TargetKind.REGISTRY_SETTING})
    assert only_registry[TargetKind.REGISTRY_SETTING].context[REGISTRY_TOKEN] == Replace(
        'systemDefaultRegistry: "reg.lab:5000"'
    )
    both = propagate(CredentialBundle(registry="reg.lab", ca_path=ca_file), {TargetKind.REGISTRY_SETTING})
    assert both[TargetKind.REGISTRY_SETTING].context[REGISTRY_TOKEN] == Replace(
        'systemDefaultRegistry: "reg.lab"\nprivateCA: "true"'
    )


def test_half_credentials_rejected():
    with pytest.raises(ValidationError):
        CredentialBundle(username="u")
    with pytest.raises(ValidationError):
        CredentialBundle(password="p")


def test_missing_ca_rejected(tmp_path):
    with pytest.raises(ValidationError):
        CredentialBundle(ca_path=tmp_path / "nope.pem")
