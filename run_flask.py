#!/usr/bin/env python3
"""Flask Application Entry Point for the order board."""

import atexit
import logging
import os

from dotenv import load_dotenv

# Load environment variables
load_dotenv()

from app import close_app, create_app  # noqa: E402
from config.settings import get_settings  # noqa: E402

if __name__ == '__main__':
    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    port = int(os.getenv('PORT', 8000))
    debug = os.getenv('FLASK_DEBUG', 'False').lower() == 'true'

    app = create_app(settings=settings)
    atexit.register(close_app, app)

    print("Order Board Flask Server starting...")
    print(f"   Port: {port}")
    print(f"   Debug: {debug}")
    print(f"   Remote store: {'configured' if settings.remote_configured() else 'not configured (local only)'}")
    print("   API Endpoints:")
    print("      - GET    /api/board")
    print("      - GET    /api/orders")
    print("      - POST   /api/orders")
    print("      - DELETE /api/orders/<id>")
    print("      - POST   /api/orders/<id>/assign")
    print("      - POST   /api/orders/<id>/tasks/<task_id>/toggle")
    print("      - PATCH  /api/orders/<id>/details")
    print("      - GET    /api/stats")
    print("      - GET    /api/departments")
    print("      - GET    /health")
    print()

    # Reloader would start a second process with its own event loop
    app.run(
        host='0.0.0.0',
        port=port,
        debug=debug,
        use_reloader=False,
        threaded=True,
    )
