import os


def _flag(name, default):
    return os.environ.get(name, default).lower() in ('1', 'true', 'yes', 'on')


class Config:
    SECRET_KEY = os.environ.get('SECRET_KEY') or 'you-will-never-guess'
    PORT = int(os.environ.get('PORT', '3000'))
    CORS_ORIGINS = os.environ.get('CORS_ORIGINS', '*')
    # Countdown before a match (seconds)
    COUNTDOWN_FROM = int(os.environ.get('COUNTDOWN_FROM', '3'))
    COUNTDOWN_DELAY_SEC = float(os.environ.get('COUNTDOWN_DELAY_SEC', '0.5'))
    COUNTDOWN_TICK_SEC = float(os.environ.get('COUNTDOWN_TICK_SEC', '1.0'))
    # How long a disconnected player may take to rejoin before the match is aborted
    RECONNECT_GRACE_SEC = float(os.environ.get('RECONNECT_GRACE_SEC', '30'))
    RESUME_ON_REJOIN = _flag('RESUME_ON_REJOIN', 'true')
    # Sessions are dropped this long after creation, whatever their state
    SESSION_TTL_SEC = int(os.environ.get('SESSION_TTL_SEC', '7200'))
    SWEEP_INTERVAL_SEC = int(os.environ.get('SWEEP_INTERVAL_SEC', '600'))
    HINTS_PER_PLAYER = int(os.environ.get('HINTS_PER_PLAYER', '3'))
    CHAT_HISTORY_LIMIT = int(os.environ.get('CHAT_HISTORY_LIMIT', '50'))
    CHAT_MAX_LENGTH = int(os.environ.get('CHAT_MAX_LENGTH', '120'))
    # Upper bound on search nodes per solver call. 0 disables.
    SOLVER_NODE_BUDGET = int(os.environ.get('SOLVER_NODE_BUDGET', '200000'))
    GENERATION_ATTEMPTS = int(os.environ.get('GENERATION_ATTEMPTS', '5'))
