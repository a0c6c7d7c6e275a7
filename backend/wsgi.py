"""WSGI entry point: `gunicorn --chdir backend wsgi:app`."""
from app import create_app

app = create_app()
