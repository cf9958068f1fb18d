# backend/wsgi.py
from videgrenier import create_app

app = create_app()
