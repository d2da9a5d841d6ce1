from .cookie import load_netscape_cookies
from .duration import parse_duration
from .errors import HttpError, HttpRequestError, error_dict, stacktrace
from .http_async import AsyncHttpClient, HttpResponse, ReturnType, USER_AGENT
from .logger import log, get_error_info
from .queues import flush_queue, is_almost_full
from .retry import retry_with_result
from .sanitize import sanitize_filename, is_reserved_name
from .task_group import run_until_first_done
