from .main_router import MainController
from .server import create_app, serve
