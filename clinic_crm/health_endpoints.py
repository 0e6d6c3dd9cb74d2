"""
Health endpoints
"""
import time
from datetime import datetime

from flask import Blueprint, jsonify
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from clinic_crm import __version__

APP_START_TIME = time.time()

health_bp = Blueprint('health', __name__)


@health_bp.route('/health', methods=['GET'])
def health():
    """Liveness + database check"""
    from clinic_crm.db import db

    try:
        db.session.execute(text('SELECT 1'))
        db_status = "healthy"
    except SQLAlchemyError as e:
        db.session.rollback()
        db_status = f"unhealthy: {str(e)[:50]}"

    ok = db_status == "healthy"
    return jsonify({
        "status": "ok" if ok else "degraded",
        "service": "clinic-crm",
        "version": __version__,
        "database": db_status,
        "uptime_seconds": int(time.time() - APP_START_TIME),
        "timestamp": datetime.utcnow().isoformat(),
    }), 200 if ok else 503
