"""Virtual survey panel: simulate a survey with AI-generated personas and analyze the answers."""

__version__ = "0.1.0"
