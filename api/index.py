"""
Vercel entry point for the Helpdesk Ticketing API
"""
import os

# Set environment variables for serverless
os.environ.setdefault("ENVIRONMENT", "production")
os.environ.setdefault("UPLOAD_FOLDER", "/tmp/uploads")
os.environ.setdefault("SLA_SWEEP_INTERVAL_SECONDS", "0")  # Disable background jobs in serverless
os.environ.setdefault("CLEANUP_INTERVAL_HOURS", "0")

from mangum import Mangum
from helpdesk.main import app

# Lambda handler for ASGI app
handler = Mangum(app, lifespan="auto")
