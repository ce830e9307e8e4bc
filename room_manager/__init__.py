"""Room Manager - command line configuration for the room automation daemon."""
from .config import build_room_config, parse_arguments

__all__ = ['build_room_config', 'parse_arguments']
