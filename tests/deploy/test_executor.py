import pytest

from rancher_k3k.deploy.executor import await_condition, run_steps
from rancher_k3k.deploy.poller import PollSpec, ResourceRef
from rancher_k3k.deploy.steps import Check, DeploymentStep, StepState, Wait
from rancher_k3k.errors import ActionError, PostconditionFailed, PostconditionTimeout
from rancher_k3k.observers.dispatcher import EventBus


def _wait(accessor, **kw):
    kw.setdefault("max_attempts", 3)
    kw.setdefault("delay", 0)
    spec = PollSpec(target=ResourceRef("deployment", "app", "ns"), description="app ready", **kw)
    return Wait(spec, accessor)


def _step(state, name, version="1", waits=None, log=None):
    """A step that records `name` at `version` in a dict standing in for the cluster."""

    def check():
        if name not in state:
            return Check.ABSENT
        return Check.SATISFIED if state[name] == version else Check.OUTDATED

    def action(check):
        if log is not None:
            log.append((name, check))
        state[name] = version

    return DeploymentStep(
        name=name,
        description=f"{name} {version}",
        precondition=check,
        action=action,
        waits=waits if waits is not None else [_wait(lambda: "True" if name in state else None)],
    )


def test_second_run_skips_everything(capture, sleeps):
    cluster = {}
    steps = [_step(cluster, "a"), _step(cluster, "b"), _step(cluster, "c")]

    first = run_steps(steps, bus=EventBus([capture]), sleep=sleeps.append)
    assert first.ok
    assert [o.state for o in first.outcomes] == [StepState.COMPLETE] * 3

    second = run_steps(steps, bus=EventBus([capture]), sleep=sleeps.append)
    assert second.ok
    assert [o.state for o in second.outcomes] == [StepState.SKIPPED] * 3
    assert second.summary() == "COMPLETE=0 SKIPPED=3 FAILED=0"
    assert "StepSkipped" in capture.kinds()


def test_changed_parameters_upgrade_in_place(sleeps):
    cluster = {"a": "1", "b": "1"}
    log = []
    steps = [_step(cluster, "a", "1", log=log), _step(cluster, "b", "2", log=log)]
    report = run_steps(steps, sleep=sleeps.append)
    assert report.ok
    assert log == [("b", Check.OUTDATED)]
    assert cluster["b"] == "2"
    assert [o.check for o in report.outcomes] == [Check.SATISFIED, Check.OUTDATED]


def test_action_error_halts_sequence(capture, sleeps):
    cluster = {}

    def boom(check):
        raise RuntimeError("helm failed (rc=1)")

    bad = DeploymentStep("bad", "fails", lambda: Check.ABSENT, boom)
    steps = [_step(cluster, "a"), bad, _step(cluster, "c")]
    report = run_steps(steps, bus=EventBus([capture]), sleep=sleeps.append)

    assert not report.ok
    assert [o.name for o in report.outcomes] == ["a", "bad"]
    assert report.failed.name == "bad"
    assert isinstance(report.error, ActionError)
    assert report.error.step == "bad"
    assert "c" not in cluster
    # completed steps are left in place
    assert cluster == {"a": "1"}
    failed = [e for e in capture.events if e.__class__.__name__ == "StepFailed"]
    assert failed[0].name == "bad"


def test_postcondition_timeout_is_distinct_from_action_error(sleeps):
    step = _step({}, "slow", waits=[_wait(lambda: "Pending")])
    report = run_steps([step], sleep=sleeps.append)
    assert isinstance(report.error, PostconditionTimeout)
    assert report.failed.last_observed == "Pending"
    assert report.error.hint == "kubectl get deployment app -n ns -o yaml"


def test_observed_failure(sleeps):
    step = _step({}, "broken", waits=[_wait(lambda: "AddonDeployFailed", failure_patterns=("Failed",))])
    report = run_steps([step], sleep=sleeps.append)
    assert isinstance(report.error, PostconditionFailed)
    assert report.error.last_observed == "AddonDeployFailed"


def test_precondition_error_fails_the_step(sleeps):
    def check():
        raise RuntimeError("connection refused")

    step = DeploymentStep("lookup", "lookup", check, lambda c: None, hint="kubectl get nodes")
    report = run_steps([step], sleep=sleeps.append)
    assert isinstance(report.error, ActionError)
    assert "precondition" in str(report.error)
    assert report.error.hint == "kubectl get nodes"


def test_await_condition_raises_on_timeout(sleeps):
    with pytest.raises(PostconditionTimeout) as ei:
        await_condition("restore", _wait(lambda: None, max_attempts=2), bus=EventBus(), sleep=sleeps.append)
    assert ei.value.step == "restore"
    assert len(sleeps) == 1


def test_action_error_carries_step_hint(sleeps):
    def boom(check):
        raise RuntimeError("helm failed (rc=1)")

    step = DeploymentStep("k3k", "k3k chart", lambda: Check.ABSENT, boom, hint="helm status k3k -n k3k-system")
    report = run_steps([step], sleep=sleeps.append)
    assert report.error.hint == "helm status k3k -n k3k-system"


def test_action_error_hint_falls_back_to_first_wait(sleeps):
    def boom(check):
        raise RuntimeError("apply rejected")

    step = DeploymentStep("app", "app", lambda: Check.ABSENT, boom, waits=[_wait(lambda: "True")])
    report = run_steps([step], sleep=sleeps.append)
    assert isinstance(report.error, ActionError)
    assert report.error.hint == "kubectl get deployment app -n ns -o yaml"
