import logging

from flask import Flask
from flask_sqlalchemy import SQLAlchemy
from .config import Config, TestingConfig

# Initialize SQLAlchemy outside the create_app function
db = SQLAlchemy()


def _configure_logging(app):
    """One stdout handler on the root logger; level from LOG_LEVEL."""
    level = app.config.get('LOG_LEVEL', 'INFO')
    app.logger.setLevel(level)
    root = logging.getLogger()
    root.setLevel(level)

    # avoid duplicate handlers when the factory runs more than once
    if not any(isinstance(h, logging.StreamHandler) for h in root.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(
            fmt='{"ts":"%(asctime)s","level":"%(levelname)s","msg":"%(message)s","name":"%(name)s"}',
            datefmt="%Y-%m-%dT%H:%M:%S%z",
        ))
        root.addHandler(handler)


def create_app(config_class=Config, config_name=None):
    # map friendly names to classes
    if config_name:
        if config_name == 'testing':
            config_class = TestingConfig
        else:
            config_class = config_name   # allow import path string fallback

    app = Flask(__name__)
    app.config.from_object(config_class)
    _configure_logging(app)

    db.init_app(app)

    from .errors import register_error_handlers
    register_error_handlers(app)

    from .routes import register_blueprints
    register_blueprints(app)

    # Models must be imported before create_all so the metadata is populated
    from . import models

    with app.app_context():
        db.create_all()

    return app
