import asyncio

import pytest

from ereader_service.jobs import OperationState, PendingOperation


class TestSettlement:
    def test_starts_pending(self):
        op = PendingOperation()
        assert op.state is OperationState.PENDING
        assert not op.done()
        assert op.settled_at is None

    def test_success_is_final(self):
        op = PendingOperation()
        assert op.settle_success("a") is True
        assert op.settle_failure(RuntimeError("late")) is False
        assert op.settle_success("b") is False
        assert op.state is OperationState.SUCCEEDED
        assert op.result() == "a"
        assert op.error is None

    def test_failure_is_final(self):
        op = PendingOperation()
        err = RuntimeError("boom")
        assert op.settle_failure(err) is True
        assert op.settle_success("late") is False
        assert op.state is OperationState.FAILED
        assert op.error is err
        with pytest.raises(RuntimeError, match="boom"):
            op.result()

    def test_result_while_pending_raises(self):
        with pytest.raises(asyncio.InvalidStateError):
            PendingOperation().result()

    def test_callbacks_run_once(self):
        op = PendingOperation()
        seen = []
        op.add_done_callback(lambda o: seen.append(o.state))
        op.settle_success(1)
        op.settle_success(2)
        op.add_done_callback(lambda o: seen.append("late"))
        assert seen == [OperationState.SUCCEEDED, "late"]


class TestThen:
    def test_transforms_success(self):
        op = PendingOperation()
        derived = op.then(lambda out: f"/link?{out}")
        assert not derived.done()
        op.settle_success("x")
        assert derived.result() == "/link?x"

    def test_propagates_failure(self):
        op = PendingOperation()
        derived = op.then(lambda out: "never")
        err = ValueError("bad")
        op.settle_failure(err)
        assert derived.error is err

    def test_transform_error_fails_derived(self):
        op = PendingOperation()
        derived = op.then(lambda out: 1 / 0)
        op.settle_success("x")
        assert isinstance(derived.error, ZeroDivisionError)


@pytest.mark.asyncio
async def test_wait_resolves_after_settlement():
    op = PendingOperation()
    loop = asyncio.get_running_loop()
    loop.call_later(0.05, op.settle_success, "done")
    assert await asyncio.wait_for(op.wait(), timeout=2) == "done"


@pytest.mark.asyncio
async def test_wait_raises_failure_and_join_does_not():
    op = PendingOperation()
    asyncio.get_running_loop().call_soon(op.settle_failure, RuntimeError("nope"))
    await asyncio.wait_for(op.join(), timeout=2)
    with pytest.raises(RuntimeError, match="nope"):
        await op.wait()
