"""
WSGI entry point

    gunicorn clinic_crm.wsgi:app
    python -m clinic_crm.wsgi        (Flask dev server)
"""
import os

from clinic_crm.app_factory import create_app

app = create_app()

if __name__ == '__main__':
    port = int(os.environ.get('PORT', '5000'))
    app.run(host='0.0.0.0', port=port, debug=app.config.get('DEBUG', False))
