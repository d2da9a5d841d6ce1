from fastapi import APIRouter, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from ..state import State


class MainController:
    def __init__(self, state: State):
        self.state = state

        self.router = APIRouter()
        self.router.add_api_route("/", self.get_state, methods=["GET"])
        self.router.add_api_route("/metrics", self.metrics, methods=["GET"])
        self.router.add_api_route("/api/health", self.health, methods=["GET"])

    def health(self):
        return "ok"

    def get_state(self):
        channels = self.state.snapshot()
        return {"channels": {k: v.model_dump(mode="json") for k, v in channels.items()}}

    def metrics(self):
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
