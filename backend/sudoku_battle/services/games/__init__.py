"""Match domain services: state machine, scoring and timers.

Pure(ish) match mechanics imported by the coordinator and socket handlers,
keeping transport concerns separate from the game rules.
"""
