#!/usr/bin/env python3
"""WSGI entry point for production deployment.

- Gunicorn: gunicorn wsgi:application
- Waitress: waitress-serve --port=3000 wsgi:application
"""

from calimbus.flask_app import flask_app
from calimbus.server import configure_logging

configure_logging()

# Standard WSGI application variable name
application = flask_app

if __name__ == "__main__":
    # For development only
    application.run()
