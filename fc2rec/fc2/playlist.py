from .errors import EmptyPlaylistError
from .objects import HLSInformation, Playlist
from .quality import Latency


def sort_key(playlist: Playlist) -> int:
    if playlist.mode >= 90:
        return playlist.mode - 90
    return playlist.mode


def extract_and_merge_playlists(info: HLSInformation) -> list[Playlist]:
    return [
        *info.playlists,
        *info.playlists_high_latency,
        *info.playlists_middle_latency,
    ]


def sort_playlists(playlists: list[Playlist]) -> list[Playlist]:
    """Order by quality within a latency band, best first, with sound-only variants last."""
    return sorted(playlists, key=sort_key, reverse=True)


def get_playlist_or_best(sorted_playlists: list[Playlist], expected_mode: int) -> Playlist:
    if len(sorted_playlists) == 0:
        raise EmptyPlaylistError()

    for playlist in sorted_playlists:
        if playlist.mode == expected_mode:
            return playlist

    expected_latency = Latency.from_mode(expected_mode)
    for playlist in sorted_playlists:
        if Latency.from_mode(playlist.mode) == expected_latency:
            return playlist

    return sorted_playlists[0]


def resolve_playlist(expected_mode: int, info: HLSInformation) -> tuple[Playlist, bool]:
    """Return the chosen playlist and whether it matches the expected mode."""
    playlists = sort_playlists(extract_and_merge_playlists(info))
    playlist = get_playlist_or_best(playlists, expected_mode)
    return playlist, playlist.mode == expected_mode
