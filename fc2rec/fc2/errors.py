class FC2Error(Exception):
    pass


class RateLimitedError(FC2Error):
    def __init__(self, url: str):
        super().__init__(f"Rate limited by {url}")
        self.url = url


class DecodeError(FC2Error):
    pass


class LiveStreamNotOnlineError(FC2Error):
    def __init__(self, channel_id: str):
        super().__init__(f"Live stream is not online: {channel_id}")
        self.channel_id = channel_id


class LoginFailedError(FC2Error):
    pass


class ChannelNotFoundError(FC2Error):
    pass


class WebSocketError(FC2Error):
    pass


class WebSocketTransportError(WebSocketError):
    pass


class WebSocketNotOpenError(WebSocketError):
    pass


class StreamEndedError(WebSocketError):
    def __init__(self):
        super().__init__("Stream ended")


class ServerDisconnectionError(WebSocketError):
    def __init__(self, code: int, message: str = "Server disconnected"):
        super().__init__(f"{message} (code={code})")
        self.code = code


class PaidProgramError(ServerDisconnectionError):
    def __init__(self, code: int = 4101):
        super().__init__(code, "Paid program")


class LoginRequiredError(ServerDisconnectionError):
    def __init__(self, code: int = 4507):
        super().__init__(code, "Login required")


class MultipleConnectionError(ServerDisconnectionError):
    def __init__(self, code: int = 4512):
        super().__init__(code, "Multiple connections")


class EmptyPlaylistError(FC2Error):
    def __init__(self):
        super().__init__("Server did not return a valid playlist")


class QualityNotAvailableError(FC2Error):
    def __init__(self, expected_mode: int, got_mode: int):
        super().__init__(f"Requested quality is not available: expected mode {expected_mode}, got {got_mode}")
        self.expected_mode = expected_mode
        self.got_mode = got_mode


class QualityNotExpectedError(FC2Error):
    """The best available playlist is returned but does not match the requested mode."""

    def __init__(self, playlist, expected_mode: int):
        super().__init__(f"Quality is not the expected one: expected mode {expected_mode}, got {playlist.mode}")
        self.playlist = playlist
        self.expected_mode = expected_mode


class DeadlockError(FC2Error):
    pass


def disconnection_error(code: int) -> ServerDisconnectionError:
    if code == 4101:
        return PaidProgramError(code)
    if code == 4507:
        return LoginRequiredError(code)
    if code == 4512:
        return MultipleConnectionError(code)
    return ServerDisconnectionError(code)
