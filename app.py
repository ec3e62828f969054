"""
=============================================================================
INTERVIEW BEHAVIOR ANALYZER - APPLICATION ENTRY POINT (app.py)
=============================================================================

WHAT THIS FILE DOES (in plain language):
----------------------------------------
This is the "front door" of the server. When you run "python app.py", the
computer starts a web server that the interview front end talks to. The server:

  1. Starts and stops an analysis session for one interview.
  2. Receives face and hand landmarks for each video frame (computed in the
     browser by MediaPipe) and answers with eye contact, engagement,
     attention, stability and the behavioral expression.
  3. Averages those scores per interview question and sends them to the
     interview backend, and watches for phones via the object detector.

The actual request handlers live in routes.py; the analysis itself lives in
interview_session.py and the utils/ package.

HOW TO RUN:
-----------
  - From project root:  python app.py
  - By default the app is at:  http://localhost:5000

CONFIGURATION:
--------------
  - Settings (service URLs, token, ports, thresholds) come from the .env file
    and config.py.
  - Never put real tokens in the code; use environment variables.
=============================================================================
"""

# ---------------------------------------------------------------------------
# Step 1: Load environment variables from .env (before anything else)
# ---------------------------------------------------------------------------
# config.py reads its values at import time, so .env must be loaded first.
from pathlib import Path
from dotenv import load_dotenv

load_dotenv(Path(__file__).resolve().parent / ".env")

# ---------------------------------------------------------------------------
# Step 2: Import the web framework and our own modules
# ---------------------------------------------------------------------------
import logging

from flask import Flask
from flask_cors import CORS
from flask_compress import Compress

from routes import register_routes
import config

logging.basicConfig(
    level=getattr(logging, config.LOG_LEVEL, logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

# ---------------------------------------------------------------------------
# Step 3: Warn if the Persistence API or object detector is not configured
# ---------------------------------------------------------------------------
# Missing settings disable that collaborator; the server still starts.
config.warn_missing_config()


def create_app() -> Flask:
    """
    Create and configure the Flask application.

    What it does:
      - Enables CORS so the interview page can call the API from its own origin.
      - Enables compression for the larger state/debug responses.
      - Registers the session routes from routes.py.

    Returns:
        The configured Flask application.
    """
    app = Flask(__name__)

    # In production you would restrict this to the interview front end's domain.
    CORS(app, resources={r"/*": {"origins": "*"}})

    Compress(app)

    register_routes(app)

    return app


# ---------------------------------------------------------------------------
# Create the one global Flask application
# ---------------------------------------------------------------------------
app = create_app()


# ---------------------------------------------------------------------------
# Run the server when this file is executed directly (e.g. "python app.py")
# ---------------------------------------------------------------------------
if __name__ == "__main__":
    """
    - If FLASK_DEBUG is true: Flask's development server (auto-reload, debugger).
    - Otherwise: Waitress with 6 threads, so frame posts and state polling can
      be served concurrently.
    """
    if config.FLASK_DEBUG:
        app.run(
            host=config.FLASK_HOST,
            port=config.FLASK_PORT,
            debug=True
        )
    else:
        import waitress
        waitress.serve(app, host=config.FLASK_HOST, port=config.FLASK_PORT, threads=6)
