"""screencoach -- Vision-based screen coaching assistant.

This package periodically captures the user's screen, sends each frame
with a short natural-language goal to a vision-capable language model,
and surfaces a terse "micro-assist" telling the user what to do next.
A chat channel and a realtime voice session share the same pool of
provider credentials.
"""

__version__ = "0.1.0"
