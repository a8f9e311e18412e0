"""Calimbus Flask application.

Flask owns the process (CLI, dev server, production WSGI servers) while every
request is delegated to the explicit WSGI dispatcher in ``calimbus.server``.
"""

from __future__ import annotations

import os
import subprocess
import sys
from typing import Any, Dict

import click
from flask import Flask, request, stream_with_context

from calimbus import config
from calimbus.db import ensure_bootstrap, init_db
from calimbus.server import app as wsgi_app, configure_logging

METHODS = ["GET", "POST", "PUT", "DELETE", "PATCH"]

flask_app = Flask(__name__, static_folder=None, template_folder=None)
flask_app.config["SECRET_KEY"] = config.SECRET_KEY
flask_app.config["SESSION_COOKIE_SECURE"] = config.COOKIE_SECURE
flask_app.config["SESSION_COOKIE_HTTPONLY"] = True
flask_app.config["SESSION_COOKIE_SAMESITE"] = "Lax"


@flask_app.before_request
def setup_request():
    # Health probes stay independent of the database.
    if request.path in {"/healthz"}:
        return None
    ensure_bootstrap()
    return None


@flask_app.route("/", defaults={"path": ""}, methods=METHODS)
@flask_app.route("/<path:path>", methods=METHODS)
def catch_all(path):
    """Delegate to the WSGI dispatcher and translate its response."""
    response_data: Dict[str, Any] = {}

    def start_response(status, headers, exc_info=None):
        response_data["status"] = status
        response_data["headers"] = headers
        return lambda s: None

    response_body = wsgi_app(request.environ, start_response)
    headers = response_data.get("headers", [])
    content_type = next((v for k, v in headers if k.lower() == "content-type"), "")

    if content_type.startswith("text/event-stream"):
        response = flask_app.response_class(stream_with_context(response_body), mimetype="text/event-stream")
    else:
        body = b"".join(response_body if isinstance(response_body, list) else list(response_body))
        response = flask_app.make_response((body, int(response_data.get("status", "200 OK").split()[0])))

    response.status = response_data.get("status", "200 OK")
    for header_name, header_value in headers:
        if header_name.lower() == "set-cookie":
            response.headers.add(header_name, header_value)
        else:
            response.headers[header_name] = header_value
    return response


@flask_app.cli.command("init-db")
def init_db_command():
    """Create the database schema."""
    init_db()
    click.echo(f"Database initialized ({config.DB_BACKEND}).")


@flask_app.cli.command("run-tests")
def run_tests_command():
    """Run the pytest suite."""
    click.echo("Running tests...")
    subprocess.run([sys.executable, "-m", "pytest", "tests/"], cwd=str(config.BASE_DIR), check=False)


if __name__ == "__main__":
    configure_logging()
    flask_app.run(
        host=config.HOST,
        port=config.PORT,
        debug=os.environ.get("FLASK_DEBUG", "0") == "1",
        threaded=True,
    )
