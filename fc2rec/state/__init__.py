from .state import ChannelState, DownloadState, ErrorRecord, State, state
