# backend/wsgi.py
from emrs import create_app

app = create_app()
