from .env import Env, get_env
