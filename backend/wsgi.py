# backend/wsgi.py
from coreaccess import create_app

app = create_app()
