import time
from email.utils import formatdate
from http.cookies import SimpleCookie

import aiohttp
from yarl import URL

from .logger import log

HTTP_ONLY_PREFIX = "#HttpOnly_"


def load_netscape_cookies(file_path: str, jar: aiohttp.CookieJar) -> int:
    """Add the cookies of a Netscape cookie file to the jar and return how many were added."""
    now = time.time()
    cnt = 0
    with open(file_path, "r", encoding="utf-8") as file:
        for line_num, raw in enumerate(file, start=1):
            line = raw.strip()
            if line.startswith(HTTP_ONLY_PREFIX):
                line = line[len(HTTP_ONLY_PREFIX):]
            if len(line) == 0 or line.startswith("#"):
                continue

            fields = line.split("\t")
            if len(fields) < 7:
                fields = line.split()
            if len(fields) < 7:
                log.warn("Skipped cookie line: not enough fields", {"line_num": line_num})
                continue

            domain, _, path, secure, expires_str, name = fields[:6]
            value = " ".join(fields[6:])
            try:
                expires = int(expires_str)
            except ValueError:
                expires = 0
            if expires != 0 and expires < now:
                log.warn("Skipped cookie line: expired", {"line_num": line_num, "name": name})
                continue

            cookie = SimpleCookie()
            cookie[name] = value
            morsel = cookie[name]
            morsel["domain"] = domain
            morsel["path"] = path
            if secure.upper() == "TRUE":
                morsel["secure"] = True
            if expires != 0:
                morsel["expires"] = formatdate(expires, usegmt=True)

            jar.update_cookies(cookie, response_url=URL.build(scheme="http", host=domain.lstrip(".")))
            cnt += 1
    return cnt
