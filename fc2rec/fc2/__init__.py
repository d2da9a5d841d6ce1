from .chat import download_chat, is_duplicate_comment
from .client import FC2Client, FC2Urls
from .errors import (
    ChannelNotFoundError,
    DeadlockError,
    DecodeError,
    EmptyPlaylistError,
    FC2Error,
    LiveStreamNotOnlineError,
    LoginFailedError,
    LoginRequiredError,
    MultipleConnectionError,
    PaidProgramError,
    QualityNotAvailableError,
    QualityNotExpectedError,
    RateLimitedError,
    ServerDisconnectionError,
    StreamEndedError,
    WebSocketError,
    WebSocketNotOpenError,
    WebSocketTransportError,
    disconnection_error,
)
from .objects import (
    ChannelData,
    Comment,
    ControlToken,
    GetMetaData,
    HLSInformation,
    Playlist,
    ProfileData,
    WSResponse,
)
from .output import format_output, prepare_file, release_files, remove_ext
from .params import OptionalParams, Params
from .playlist import extract_and_merge_playlists, get_playlist_or_best, resolve_playlist, sort_playlists
from .quality import Latency, Quality, to_mode
from .websocket import FC2WebSocket, WebSocketState
