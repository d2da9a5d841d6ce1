import traceback


class HttpError(Exception):
    def __init__(self, status: int, message: str):
        super().__init__(message)
        self.status = status
        self.message = message


class HttpRequestError(HttpError):
    def __init__(
        self,
        message: str,
        status: int,
        url: str | None = None,
        method: str | None = None,
        reason: str | None = None,
    ):
        super().__init__(status, message)
        self.url = url
        self.method = method
        self.reason = reason

    def __str__(self):
        return f"{self.message}: {self.method} {self.url} returned {self.status}"


def error_dict(ex: BaseException) -> dict:
    err = {
        "error": str(ex) or type(ex).__name__,
        "error_type": type(ex).__name__,
    }
    if isinstance(ex, HttpRequestError):
        err["status"] = ex.status
        if ex.url is not None:
            err["url"] = ex.url
    return err


def stacktrace(ex: BaseException) -> str:
    return "".join(traceback.format_exception(type(ex), ex, ex.__traceback__))
