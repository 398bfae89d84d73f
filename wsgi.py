#!/usr/bin/env python3
"""
WSGI entry point for production deployment
"""
from petcare import create_app

# Create the Flask application
application = create_app()

if __name__ == "__main__":
    application.run(
        host=application.config['FLASK_HOST'],
        port=application.config['FLASK_PORT'],
        debug=application.config['FLASK_DEBUG'],
    )
