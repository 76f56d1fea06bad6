# backend/wsgi.py
from garage import create_app

app = create_app()
