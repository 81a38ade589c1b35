import logging
from contextlib import contextmanager

from flask import jsonify
from sqlalchemy.exc import SQLAlchemyError

logger = logging.getLogger(__name__)


class LedgerError(Exception):
    """Base class for failures surfaced by the ledger services."""
    status_code = 500


class InvalidLeaseTerm(LedgerError):
    status_code = 400


class InvalidPaymentEvent(LedgerError, ValueError):
    status_code = 400


class InvalidPaymentAmount(InvalidPaymentEvent):
    pass


class PaymentNotFound(LedgerError):
    status_code = 404


class AggregationUnavailable(LedgerError):
    """A read batch failed; callers get no partially merged result."""
    status_code = 503


@contextmanager
def aggregation_guard(what):
    """Turns any persistence failure inside the block into AggregationUnavailable."""
    try:
        yield
    except SQLAlchemyError as exc:
        logger.error("%s failed: %s", what, exc, exc_info=True)
        raise AggregationUnavailable(f'{what} is temporarily unavailable') from exc


def register_error_handlers(app):
    @app.errorhandler(LedgerError)
    def ledger_error(e):
        return jsonify({'error': str(e) or type(e).__name__}), e.status_code

    @app.errorhandler(404)
    def not_found(e):
        return jsonify({'error': 'not_found'}), 404

    @app.errorhandler(405)
    def method_not_allowed(e):
        return jsonify({'error': 'method_not_allowed'}), 405
