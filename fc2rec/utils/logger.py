import json
import logging
import os
import sys
import traceback
from datetime import datetime


class Logger:
    def __init__(self, name: str = "fc2rec"):
        self.is_prod = os.getenv("PY_ENV") == "prod"
        self.__logger = logging.getLogger(name)
        self.__logger.propagate = False
        self.__logger.setLevel(logging.INFO)
        if not self.__logger.handlers:
            handler = logging.StreamHandler(sys.stderr)
            handler.setFormatter(logging.Formatter("%(message)s"))
            self.__logger.addHandler(handler)

    def set_level(self, level: int | str):
        if isinstance(level, str):
            level = logging.getLevelName(level.upper())
        self.__logger.setLevel(level)

    def debug(self, msg: str, attrs: dict | None = None):
        self.__log(logging.DEBUG, msg, attrs)

    def info(self, msg: str, attrs: dict | None = None):
        self.__log(logging.INFO, msg, attrs)

    def warn(self, msg: str, attrs: dict | None = None):
        self.__log(logging.WARNING, msg, attrs)

    def error(self, msg: str, attrs: dict | None = None):
        self.__log(logging.ERROR, msg, attrs)

    def __log(self, level: int, msg: str, attrs: dict | None):
        if not self.__logger.isEnabledFor(level):
            return
        self.__logger.log(level, self.__format(level, msg, attrs))

    def __format(self, level: int, msg: str, attrs: dict | None) -> str:
        now = datetime.now().astimezone()
        level_name = logging.getLevelName(level)
        if self.is_prod:
            record = {"time": now.isoformat(), "level": level_name.lower(), "message": msg}
            if attrs is not None:
                record["attrs"] = attrs
            return json.dumps(record, ensure_ascii=False, default=str)

        line = f"{now.strftime('%Y-%m-%d %H:%M:%S')} {level_name:<7} {msg}"
        if attrs:
            line += " " + json.dumps(attrs, ensure_ascii=False, default=str)
        return line


def get_error_info() -> tuple[str, dict]:
    ex_type, ex, tb = sys.exc_info()
    if ex is None:
        return "Unknown error", {}
    return str(ex) or type(ex).__name__, {
        "error_type": type(ex).__name__,
        "stacktrace": "".join(traceback.format_exception(ex_type, ex, tb)),
    }


log = Logger()
