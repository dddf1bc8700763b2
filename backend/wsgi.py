# backend/wsgi.py
from loandesk import create_app

app = create_app()
