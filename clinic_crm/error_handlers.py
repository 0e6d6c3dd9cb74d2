# clinic_crm/error_handlers.py
import logging

import psycopg2
from flask import jsonify, request
from sqlalchemy.exc import DisconnectionError, OperationalError, SQLAlchemyError
from werkzeug.exceptions import HTTPException

from clinic_crm.errors import CrmError

log = logging.getLogger("errors")


def _rollback_quietly():
    from clinic_crm.db import db
    try:
        db.session.rollback()
    except SQLAlchemyError as e:
        log.warning(f"[DB] Rollback after error failed: {e}")


def _service_unavailable(detail: str):
    _rollback_quietly()
    payload = {
        "error": "service_unavailable",
        "message": "Network connection error. Please check your internet connection.",
        "detail": detail,
        "status": 503,
        "path": request.path,
    }
    return jsonify(payload), 503


def register_error_handlers(app):
    @app.errorhandler(CrmError)
    def handle_crm_error(e: CrmError):
        if e.http_status >= 500:
            log.error("CRM %s %s -> %s (%s)", request.method, request.path, e.http_status, e.code)
        else:
            log.info("CRM %s %s -> %s (%s)", request.method, request.path, e.http_status, e.code)
        return jsonify(e.to_dict()), e.http_status

    @app.errorhandler(HTTPException)
    def handle_http(e: HTTPException):
        payload = {"error": e.name, "status": e.code, "path": request.path}
        log.warning("HTTP %s %s -> %s", request.method, request.path, e.code)
        return jsonify(payload), e.code

    @app.errorhandler(OperationalError)
    def handle_db_operational_error(e: OperationalError):
        """DB connectivity errors - 503 Service Unavailable"""
        log.error(f"[DB_DOWN] Database operational error during {request.method} {request.path}: {e}")
        return _service_unavailable("Database temporarily unavailable")

    @app.errorhandler(DisconnectionError)
    def handle_db_disconnection_error(e: DisconnectionError):
        log.error(f"[DB_DOWN] Database disconnection during {request.method} {request.path}: {e}")
        return _service_unavailable("Database connection lost")

    @app.errorhandler(Exception)
    def handle_exception(e: Exception):
        # psycopg2 errors can escape SQLAlchemy's wrapping
        if isinstance(e, psycopg2.OperationalError):
            log.error(f"[DB_DOWN] psycopg2 operational error during {request.method} {request.path}: {e}")
            return _service_unavailable("Database temporarily unavailable")

        log.exception("UNHANDLED %s %s", request.method, request.path)
        _rollback_quietly()
        payload = {
            "error": "internal",
            "message": "Something went wrong. Please refresh and try again.",
            "status": 500,
            "path": request.path,
        }
        return jsonify(payload), 500
