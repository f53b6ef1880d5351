# Application entry point when running from the repository root
# (the app itself lives in the app package)

from app.main import app

# uvicorn main:app --host 0.0.0.0 --port 8000
