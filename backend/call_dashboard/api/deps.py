from fastapi import Request
from starlette.requests import HTTPConnection

from ..db import SQLDB
from ..services.broadcaster import DashboardBroadcaster
from ..services.call_workflow import CallWorkflow
from ..services.voice_runtime import VoiceRuntimeClient


# Components are owned by the app (see main.create_app) and shared by reference
def get_db(request: Request) -> SQLDB:
    return request.app.state.db


def get_workflow(request: Request) -> CallWorkflow:
    return request.app.state.workflow


def get_voice_runtime(request: Request) -> VoiceRuntimeClient:
    return request.app.state.voice_runtime


def get_broadcaster(conn: HTTPConnection) -> DashboardBroadcaster:
    return conn.app.state.broadcaster
