"""Entry points for the game server Cloud Run functions.

Deploy each function from this source tree with its own --entry-point:
start_server, stop_server or add_friend.
"""
from flask import Request

import functions_framework

from game_server import handlers
from game_server.logs import log, setup_logging

# Structured logs to stdout in serverless (Cloud Run/Functions)
setup_logging()


@functions_framework.http
def start_server(request: Request):
    return handlers.handle_start(request)


@functions_framework.http
def stop_server(request: Request):
    return handlers.handle_stop(request)


@functions_framework.http
def add_friend(request: Request):
    return handlers.handle_add_friend(request)


log("functions.loaded", entry_points=["start_server", "stop_server", "add_friend"])
