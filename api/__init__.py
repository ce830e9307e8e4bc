"""REST API, WebSocket and MQTT integration for room control."""
from .rest import create_app, start_api_server

__all__ = ['create_app', 'start_api_server']
