import os

from pydantic import BaseModel, constr


class Env(BaseModel):
    env: constr(min_length=1)
    log_level: constr(min_length=1)
    config_path: constr(min_length=1) | None
    listen_host: constr(min_length=1)
    listen_port: int


def get_env() -> Env:
    env = os.getenv("PY_ENV") or None
    if env is None:
        env = "dev"

    log_level = os.getenv("LOG_LEVEL") or None
    if log_level is None:
        log_level = "DEBUG" if env == "dev" else "INFO"

    return Env(
        env=env,
        log_level=log_level,
        config_path=os.getenv("FC2REC_CONFIG") or None,
        listen_host=os.getenv("FC2REC_LISTEN_HOST") or "0.0.0.0",
        listen_port=int(os.getenv("FC2REC_LISTEN_PORT") or "3000"),
    )
