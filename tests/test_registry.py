import threading

from ereader_service.jobs import NOT_FOUND, JobRegistry, PendingOperation


def test_register_returns_unique_ids_and_lookup_returns_same_operation():
    registry = JobRegistry()
    ops = [PendingOperation(name=str(i)) for i in range(200)]
    ids = [registry.register(op) for op in ops]

    assert len(set(ids)) == len(ops)
    assert len(registry) == len(ops)
    for job_id, op in zip(ids, ops):
        assert registry.lookup(job_id) is op


def test_unknown_id_returns_not_found_sentinel():
    registry = JobRegistry()
    registry.register(PendingOperation())

    result = registry.lookup("does-not-exist")
    assert result is NOT_FOUND
    assert not result
    assert "does-not-exist" not in registry


def test_concurrent_registration():
    registry = JobRegistry()
    ids: list[str] = []
    lock = threading.Lock()

    def worker():
        local = [registry.register(PendingOperation()) for _ in range(100)]
        with lock:
            ids.extend(local)

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(ids) == 800
    assert len(set(ids)) == 800
    assert len(registry) == 800


def test_entries_kept_without_ttl():
    registry = JobRegistry()
    op = PendingOperation()
    job_id = registry.register(op)
    op.settle_success("ok")

    assert registry.prune(now=op.settled_at + 10_000) == 0
    assert registry.lookup(job_id) is op


def test_ttl_prunes_only_expired_settled_entries():
    registry = JobRegistry(ttl_sec=60)
    settled = PendingOperation()
    pending = PendingOperation()
    settled_id = registry.register(settled)
    pending_id = registry.register(pending)
    settled.settle_success("ok")

    assert registry.prune(now=settled.settled_at + 30) == 0
    assert registry.prune(now=settled.settled_at + 61) == 1
    assert registry.lookup(settled_id) is NOT_FOUND
    assert registry.lookup(pending_id) is pending
