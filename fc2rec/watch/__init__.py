from .config import WatchConfig, load_config, observe_config
from .reloader import ConfigReloader
from .supervisor import Supervisor, login_loop
