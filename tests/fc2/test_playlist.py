import pytest

from fc2rec.fc2 import (
    EmptyPlaylistError,
    HLSInformation,
    Playlist,
    extract_and_merge_playlists,
    get_playlist_or_best,
    resolve_playlist,
    sort_playlists,
)


def sample_info() -> HLSInformation:
    return HLSInformation(playlists=[
        Playlist(mode=92, url="a"),
        Playlist(mode=32, url="c"),
        Playlist(mode=52, url="b"),
        Playlist(mode=91, url="a"),
    ])


def test_quality_selection():
    playlists = sort_playlists(extract_and_merge_playlists(sample_info()))
    assert get_playlist_or_best(playlists, 92) == Playlist(mode=92, url="a")
    assert get_playlist_or_best(playlists, 72) == Playlist(mode=52, url="b")
    assert get_playlist_or_best(playlists, 0) == Playlist(mode=52, url="b")


def test_resolve_playlist_reports_match():
    playlist, matched = resolve_playlist(92, sample_info())
    assert matched
    assert playlist.url == "a"

    playlist, matched = resolve_playlist(72, sample_info())
    assert not matched
    assert playlist.mode == 52


def test_sort_order():
    modes = [10, 91, 52, 90, 21, 50, 12, 92, 31]
    playlists = sort_playlists([Playlist(mode=m, url=str(m)) for m in modes])
    keys = [p.mode - 90 if p.mode >= 90 else p.mode for p in playlists]
    assert keys == sorted(keys, reverse=True)
    assert [p.mode for p in playlists][-3:] == [92, 91, 90]


def test_merge_keeps_source_order():
    info = HLSInformation(
        playlists=[Playlist(mode=50, url="n")],
        playlists_high_latency=[Playlist(mode=51, url="h")],
        playlists_middle_latency=[Playlist(mode=52, url="m")],
    )
    assert [p.url for p in extract_and_merge_playlists(info)] == ["n", "h", "m"]


def test_same_latency_fallback():
    playlists = sort_playlists([Playlist(mode=31, url="x"), Playlist(mode=11, url="y"), Playlist(mode=40, url="z")])
    # No 2Mbps on high latency, the best high latency variant wins.
    assert get_playlist_or_best(playlists, 41).url == "x"
    # Nothing on mid latency, the best overall wins.
    assert get_playlist_or_best(playlists, 52).url == "z"


def test_empty():
    with pytest.raises(EmptyPlaylistError):
        get_playlist_or_best([], 52)
