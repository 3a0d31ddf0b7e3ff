# backend/wsgi.py
from doorstep import create_app

app = create_app()
