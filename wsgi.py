"""WSGI entry point: ``gunicorn wsgi:app`` or ``flask --app wsgi run``."""

from second_brain import create_app

app = create_app()
