# backend/wsgi.py
from dukkan import create_app

app = create_app()
