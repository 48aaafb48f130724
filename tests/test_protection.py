import threading

from ts3warden.protection import ProtectionRegistry

HOUR = 3600.0


def test_grant_refreshes_instead_of_stacking(registry, clock) -> None:
    registry.grant(7, 3 * HOUR)
    clock.advance(HOUR)
    registry.grant(7, 3 * HOUR)

    assert registry.expires_at(7) == clock.now + 3 * HOUR
    assert len(registry) == 1

    clock.advance(3 * HOUR - 1)
    assert registry.is_protected(7)
    clock.advance(1)
    assert not registry.is_protected(7)


def test_protected_until_exact_expiry(registry, clock) -> None:
    start = clock.now
    registry.grant(1, 600)

    assert registry.is_protected(1, now=start)
    assert registry.is_protected(1, now=start + 599.999)
    assert not registry.is_protected(1, now=start + 600)
    assert not registry.is_protected(1, now=start + 601)


def test_is_protected_never_removes_entries(registry, clock) -> None:
    registry.grant(1, 10)
    clock.advance(20)

    assert not registry.is_protected(1)
    assert registry.expires_at(1) is not None


def test_sweep_removes_expired_entries_only(registry, clock) -> None:
    registry.grant(1, 10)
    registry.grant(2, 20)
    registry.grant(3, 30)

    removed = registry.sweep(clock.now + 20)

    assert sorted(removed) == [1, 2]
    assert registry.snapshot() == {3: clock.now + 30}


def test_sweep_uses_clock_by_default(registry, clock) -> None:
    registry.grant(1, 5)
    assert registry.sweep() == []
    clock.advance(5)
    assert registry.sweep() == [1]
    assert len(registry) == 0


def test_unknown_client_is_not_protected(registry) -> None:
    assert not registry.is_protected(12345)


def test_release(registry) -> None:
    registry.grant(4, HOUR)
    assert registry.release(4)
    assert not registry.is_protected(4)
    assert not registry.release(4)


def test_format_lists_sorted_ids(registry) -> None:
    assert registry.format() == "[  ]"
    registry.grant(9, HOUR)
    registry.grant(2, HOUR)
    assert registry.format() == "[ 2, 9 ]"


def test_concurrent_grant_and_sweep() -> None:
    registry = ProtectionRegistry()
    errors: list[BaseException] = []

    def granter(offset: int) -> None:
        try:
            for i in range(500):
                registry.grant(offset + i, HOUR)
                registry.is_protected(offset + i)
        except BaseException as e:  # pragma: no cover
            errors.append(e)

    def sweeper() -> None:
        try:
            for _ in range(500):
                registry.sweep()
        except BaseException as e:  # pragma: no cover
            errors.append(e)

    threads = [threading.Thread(target=granter, args=(n * 1000,)) for n in range(4)]
    threads.append(threading.Thread(target=sweeper))
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert errors == []
    assert len(registry) == 2000
