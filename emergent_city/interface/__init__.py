"""Command parsing, the city's voice and the terminal front end."""

from .parser import ParsedCommand, Verb, VerbCategory, parse_command
from .voice import CityVoice

__all__ = [
    "ParsedCommand",
    "Verb",
    "VerbCategory",
    "parse_command",
    "CityVoice",
]
