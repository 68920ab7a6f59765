#!/usr/bin/env python3
"""
TaskHive Backend - WSGI entry point (gunicorn -k eventlet -w 1 run:app)
"""
import logging
import os

from server import create_app
from socket_events import socketio

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO"),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = create_app()

if __name__ == '__main__':
    port = app.config.get("PORT", 8080)
    debug = os.getenv('FLASK_ENV', 'development') == 'development'
    socketio.run(app, host='0.0.0.0', port=port, debug=debug)
