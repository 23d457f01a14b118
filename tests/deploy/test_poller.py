import pytest

from rancher_k3k.deploy.poller import PollSpec, PollStatus, ResourceRef, wait_for


def _spec(**kw):
    kw.setdefault("max_attempts", 3)
    kw.setdefault("delay", 1)
    return PollSpec(target=ResourceRef("deployment", "rancher", "cattle-system"), description="rancher", **kw)


class Seq:
    """Accessor replaying a list of observations (exceptions are raised)."""

    def __init__(self, *values):
        self.values = list(values)
        self.calls = 0

    def __call__(self):
        value = self.values[min(self.calls, len(self.values) - 1)]
        self.calls += 1
        if isinstance(value, Exception):
            raise value
        return value


def test_timeout_after_exactly_max_attempts(sleeps):
    acc = Seq("Pending")
    result = wait_for(_spec(max_attempts=3, delay=1), acc, sleep=sleeps.append)
    assert result.status is PollStatus.TIMEOUT
    assert acc.calls == 3
    assert result.attempts == 3
    assert result.last_observed == "Pending"
    # no sleep after the last attempt
    assert sleeps == [1, 1]


def test_success_stops_polling(sleeps):
    acc = Seq("False", "True", "True", "True")
    result = wait_for(_spec(max_attempts=10), acc, sleep=sleeps.append)
    assert result.ok
    assert acc.calls == 2
    assert result.attempts == 2
    assert len(sleeps) == 1


def test_success_on_last_attempt(sleeps):
    acc = Seq("False", "False", "True")
    result = wait_for(_spec(max_attempts=3), acc, sleep=sleeps.append)
    assert result.status is PollStatus.SUCCESS
    assert acc.calls == 3


def test_failure_pattern_returns_immediately(sleeps):
    acc = Seq("in progress", "error: bucket not found", "True")
    spec = _spec(max_attempts=10, success=("True",), failure_patterns=("error", "Error"))
    result = wait_for(spec, acc, sleep=sleeps.append)
    assert result.status is PollStatus.OBSERVED_FAILURE
    assert result.message == "error: bucket not found"
    assert acc.calls == 2


def test_accessor_errors_and_not_found_are_retried(sleeps):
    acc = Seq(RuntimeError("NotFound"), None, "Ready")
    result = wait_for(_spec(max_attempts=5, success=("Ready",)), acc, sleep=sleeps.append)
    assert result.ok
    assert result.errors == ["NotFound"]
    assert acc.calls == 3


def test_errors_count_against_the_budget(sleeps):
    acc = Seq(RuntimeError("connection refused"))
    result = wait_for(_spec(max_attempts=4), acc, sleep=sleeps.append)
    assert result.status is PollStatus.TIMEOUT
    assert acc.calls == 4
    assert result.last_observed is None
    assert len(result.errors) == 4


def test_invalid_specs():
    with pytest.raises(ValueError):
        _spec(max_attempts=0)
    with pytest.raises(ValueError):
        _spec(delay=-1)


def test_resource_ref_inspect_command():
    ref = ResourceRef("clusters.k3k.io", "rancher", "k3k-rancher", kubectl="kubectl --context harv")
    assert ref.inspect_command() == "kubectl --context harv get clusters.k3k.io rancher -n k3k-rancher -o yaml"
    assert str(ref) == "clusters.k3k.io/rancher in k3k-rancher"
