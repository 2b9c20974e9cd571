import os


def _flag(name, default=False):
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ('1', 'true', 'yes', 'on')


class Config:
    SECRET_KEY = os.environ.get('SECRET_KEY') or 'you-will-never-guess'
    # Initial session settings (admins may patch these at runtime)
    SERVICE_FEE = float(os.environ.get('SERVICE_FEE', '3'))
    WIN_PERCENTAGE = float(os.environ.get('WIN_PERCENTAGE', '80'))
    CALL_INTERVAL_SEC = float(os.environ.get('CALL_INTERVAL_SEC', '7'))
    GAME_TYPE = os.environ.get('GAME_TYPE', '75ball')
    MAX_NUMBERS = int(os.environ.get('MAX_NUMBERS', '75'))
    # Pot policy: count stakes of disconnected players toward the pool
    POOL_INCLUDES_DISCONNECTED = _flag('POOL_INCLUDES_DISCONNECTED', False)
    # 'strict' checks the pattern cells, 'lenient' only counts marks
    VERIFICATION_MODE = os.environ.get('VERIFICATION_MODE', 'strict')
    WINNERS_DISPLAY_LIMIT = int(os.environ.get('WINNERS_DISPLAY_LIMIT', '10'))
    DEFAULT_STAKE = float(os.environ.get('DEFAULT_STAKE', '25'))
    # Optional: require a password on setAdmin. Generate with `flask hash-admin-password`.
    ADMIN_PASSWORD_HASH = os.environ.get('ADMIN_PASSWORD_HASH')
    CORS_ORIGINS = [
        o.strip() for o in os.environ.get(
            'CORS_ORIGINS',
            'http://localhost:5173,http://127.0.0.1:5173,http://localhost:8080,http://127.0.0.1:8080',
        ).split(',') if o.strip()
    ]
