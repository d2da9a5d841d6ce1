from fc2rec.state import DownloadState, State


def test_state_transitions():
    state = State(max_errors=2)
    assert state.get_channel_state("a").state == DownloadState.UNSPECIFIED

    state.set_channel_state("a", DownloadState.DOWNLOADING, labels={"k": "v"}, extra={"metadata": {"x": 1}})
    current = state.get_channel_state("a")
    assert current.state == DownloadState.DOWNLOADING
    assert current.labels == {"k": "v"}
    assert current.extra == {"metadata": {"x": 1}}

    state.set_channel_state("a", DownloadState.FINISHED)
    current = state.get_channel_state("a")
    assert current.labels == {"k": "v"}
    assert current.extra == {}


def test_errors_are_bounded():
    state = State(max_errors=2)
    for msg in ["first", "second", "third"]:
        state.set_channel_error("a", RuntimeError(msg))
    assert [e.error for e in state.get_channel_state("a").errors] == ["second", "third"]


def test_remove_channel():
    state = State()
    state.set_channel_state("a", DownloadState.IDLE)
    state.set_channel_state("b", DownloadState.IDLE)
    state.remove_channel("a")
    assert state.channel_ids() == ["b"]
    assert list(state.snapshot()) == ["b"]
