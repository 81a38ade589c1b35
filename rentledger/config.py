import os
# Define the base directory for the database file (the project root)
BASEDIR = os.path.abspath(os.path.join(os.path.dirname(__file__), '..'))
DB_PATH = os.path.join(BASEDIR, 'rentledger.db')


class LedgerConfig:
    # Schedule generation and status derivation
    DEFAULT_LATE_FEE_GRACE_DAYS = int(os.environ.get('DEFAULT_LATE_FEE_GRACE_DAYS', 5))
    MAX_GRACE_DAYS = int(os.environ.get('MAX_GRACE_DAYS', 28))
    DUE_SOON_DAYS = int(os.environ.get('DUE_SOON_DAYS', 3))
    PRORATE_PARTIAL_PERIODS = os.environ.get('PRORATE_PARTIAL_PERIODS', '0') == '1'
    # Reporting
    RENT_ROLL_LEASE_STATUSES = tuple(
        s.strip() for s in os.environ.get('RENT_ROLL_LEASE_STATUSES', 'active,pending,expired').split(',') if s.strip()
    )
    UPCOMING_DAYS_AHEAD = int(os.environ.get('UPCOMING_DAYS_AHEAD', 30))
    # Seconds the driver may wait on a locked or busy database before failing
    DB_TIMEOUT_SECONDS = int(os.environ.get('LEDGER_DB_TIMEOUT_SECONDS', 30))


def engine_options(uri, timeout):
    """Driver arguments that bound how long a single database call may block."""
    if uri.startswith('sqlite'):
        return {'connect_args': {'timeout': timeout}}
    if uri.startswith('postgresql'):
        return {'connect_args': {'connect_timeout': timeout,
                                 'options': f'-c statement_timeout={timeout * 1000}'}}
    return {}


class Config:
    """Base configuration class."""
    SQLALCHEMY_DATABASE_URI = os.environ.get('DATABASE_URL') or 'sqlite:///' + DB_PATH
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = engine_options(SQLALCHEMY_DATABASE_URI, LedgerConfig.DB_TIMEOUT_SECONDS)

    # Secret Key is required by Flask
    SECRET_KEY = os.environ.get('SECRET_KEY') or 'a-very-secret-and-hard-to-guess-string'
    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO').upper()


class TestingConfig(Config):
    """Configuration used specifically for running Pytest."""
    TESTING = True
    # Crucial: Use an in-memory SQLite database for fast, isolated testing
    SQLALCHEMY_DATABASE_URI = 'sqlite:///:memory:'
    SQLALCHEMY_ENGINE_OPTIONS = engine_options(SQLALCHEMY_DATABASE_URI, LedgerConfig.DB_TIMEOUT_SECONDS)
    SQLALCHEMY_ECHO = False
    LOG_LEVEL = 'WARNING'
