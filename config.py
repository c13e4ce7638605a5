import os

class Config:
    SECRET_KEY = os.environ.get('SECRET_KEY') or 'you-will-never-guess'
    SQLALCHEMY_DATABASE_URI = os.environ.get('DATABASE_URL') or 'sqlite:///livequiz.db'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    CORS_ORIGINS = [o for o in os.environ.get('CORS_ORIGINS', 'http://localhost:5173,http://127.0.0.1:5173').split(',') if o]
    # Default per-question limit when a question carries none (seconds)
    QUESTION_TIME_LIMIT_SEC = int(os.environ.get('QUESTION_TIME_LIMIT_SEC', '30'))
    # Countdown tick period (seconds)
    TIMER_TICK_SEC = float(os.environ.get('TIMER_TICK_SEC', '1'))
    # Results hold before auto-progress advances (seconds)
    RESULTS_DURATION_SEC = int(os.environ.get('RESULTS_DURATION_SEC', '6'))
    JOIN_CODE_LENGTH = int(os.environ.get('JOIN_CODE_LENGTH', '6'))
    # Minimum players before the host may start
    MIN_PLAYERS = int(os.environ.get('MIN_PLAYERS', '1'))
    # Grace period before a disconnected host's timers are stopped (seconds)
    HOST_DISCONNECT_GRACE_SEC = float(os.environ.get('HOST_DISCONNECT_GRACE_SEC', '2.0'))
