#!/usr/bin/env python3
"""Run script for the AgeForge game server."""
import os
import signal

from ageforge.app import create_app
from ageforge.api.game import stop_all_clocks

if __name__ == '__main__':
    app = create_app(os.environ.get('FLASK_ENV', 'development'))

    # Initialize database
    with app.app_context():
        from ageforge.models import db
        db.create_all()
        print("Database initialized.")

    def shutdown(signum, frame):
        stop_all_clocks()
        raise SystemExit(0)

    signal.signal(signal.SIGTERM, shutdown)

    port = int(os.environ.get('PORT', 5001))
    print("Starting AgeForge game server...")
    print(f"API available at http://localhost:{port}/api/game")
    app.run(debug=app.config.get('DEBUG', False), host='0.0.0.0', port=port)
