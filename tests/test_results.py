import threading

from results import Err, ErrorKind, Ok, Phase, StateHolder, invalid_input


def test_state_holder_success():
    holder = StateHolder("seed")
    assert holder.state.phase == Phase.IDLE

    state = holder.run(lambda: Ok({"products": 3}))

    assert state.phase == Phase.SUCCESS
    assert state.value == {"products": 3}
    assert holder.state is state


def test_state_holder_error_result():
    holder = StateHolder("seed")

    state = holder.run(lambda: invalid_input("Bad input"))

    assert state.phase == Phase.ERROR
    assert state.message == "Bad input"


def test_state_holder_records_exceptions():
    holder = StateHolder("seed")

    def boom():
        raise RuntimeError("store exploded")

    state = holder.run(boom)

    assert state.phase == Phase.ERROR
    assert state.message == "store exploded"


def test_state_holder_rejects_reentry_and_resets():
    holder = StateHolder("seed")
    seen = []

    def nested():
        seen.append(holder.state.phase)
        seen.append(holder.run(lambda: Ok(1)).phase)
        return Ok(2)

    holder.run(nested)
    assert seen == [Phase.LOADING, Phase.ERROR]
    assert holder.state.value == 2

    holder.reset()
    assert holder.state.phase == Phase.IDLE


def test_err_equality_and_flags():
    assert Err(ErrorKind.NOT_FOUND, "x") == Err(ErrorKind.NOT_FOUND, "x")
    assert Ok(1).ok and not Err(ErrorKind.REMOTE_FAILURE, "down").ok
    assert StateHolder("x").state.as_dict() == {"phase": "idle", "value": None, "message": ""}


def test_state_holder_runs_once_across_threads():
    holder = StateHolder("seed")
    started = threading.Event()
    release = threading.Event()
    calls = []

    def slow():
        calls.append(1)
        started.set()
        release.wait(timeout=5)
        return Ok("done")

    first = threading.Thread(target=holder.run, args=(slow,))
    first.start()
    assert started.wait(timeout=5)

    rivals = [threading.Thread(target=holder.run, args=(slow,)) for _ in range(8)]
    for t in rivals:
        t.start()
    for t in rivals:
        t.join(timeout=5)
    release.set()
    first.join(timeout=5)

    assert calls == [1]
    assert holder.state.phase == Phase.SUCCESS
    assert holder.state.value == "done"
