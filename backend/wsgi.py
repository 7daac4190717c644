# backend/wsgi.py
from moneypay import create_app

app = create_app()
