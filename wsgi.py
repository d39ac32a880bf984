"""ABOUTME: WSGI entry point for production deployment
ABOUTME: Creates the CommunityGuard Flask application for Gunicorn"""

from communityguard.entrypoints.flask_app import create_app

app = create_app()

if __name__ == "__main__":
    app.run()
