"""
ConvoScrub - ChatGPT export privacy review
Web API for importing a ChatGPT export, reviewing messages flagged as
sensitive, and exporting the curated conversations as plain text
"""

import os
import sys
import logging
import secrets
import threading
from datetime import datetime
from functools import wraps
from io import BytesIO

from dotenv import load_dotenv
from flask import Flask, jsonify, request, send_file, session

# Load environment variables from .env beside this file, then from the working directory
env_path = os.path.join(os.path.dirname(os.path.abspath(__file__)), '.env')
if os.path.exists(env_path):
    load_dotenv(env_path)
else:
    load_dotenv()

from errors import ConvoScrubError, ImportParseError, MissingCredentialError
from exporter import export_filename
from services.deep_scan import DeepScanner
from services.process_export import load_export
from store import ConversationStore

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s [%(levelname)s] %(message)s',
    handlers=[logging.StreamHandler(sys.stdout)]
)
logger = logging.getLogger(__name__)

# Determine environment
FLASK_ENV = os.environ.get('FLASK_ENV', 'development')
IS_PRODUCTION = FLASK_ENV == 'production'
MAX_UPLOAD_SIZE_MB = int(os.environ.get('MAX_UPLOAD_SIZE_MB', '500'))

app = Flask(__name__)

# Core configuration
app.config['MAX_CONTENT_LENGTH'] = MAX_UPLOAD_SIZE_MB * 1024 * 1024
app.config['SECRET_KEY'] = os.environ.get('SECRET_KEY', secrets.token_hex(32))

# Session security settings
app.config['SESSION_COOKIE_SECURE'] = IS_PRODUCTION  # HTTPS only in production
app.config['SESSION_COOKIE_HTTPONLY'] = True
app.config['SESSION_COOKIE_SAMESITE'] = 'Lax'

logger.info("Starting ConvoScrub - ChatGPT export privacy review")
logger.info(f"Environment: {FLASK_ENV}")
logger.info(f"MAX_CONTENT_LENGTH: {app.config['MAX_CONTENT_LENGTH']} bytes")
logger.info(f"OPENAI_API_KEY configured: {bool(os.environ.get('OPENAI_API_KEY'))}")

# Loaded conversations live in memory only, one store per browser session
stores = {}
stores_lock = threading.Lock()


@app.before_request
def ensure_session_id():
    if '_id' not in session:
        session['_id'] = secrets.token_hex(16)
        session.modified = True
        logger.debug(f"Created new session ID: {session['_id']}")


@app.after_request
def add_security_headers(response):
    """Add security headers to all responses"""
    response.headers['X-Content-Type-Options'] = 'nosniff'
    response.headers['X-Frame-Options'] = 'SAMEORIGIN'
    response.headers['Referrer-Policy'] = 'strict-origin-when-cross-origin'

    if IS_PRODUCTION:
        response.headers['Strict-Transport-Security'] = 'max-age=31536000; includeSubDomains'

    return response


@app.errorhandler(ConvoScrubError)
def handle_app_error(error):
    logger.warning(f"{type(error).__name__}: {error}")
    return jsonify({"error": str(error), "type": type(error).__name__}), error.status_code


@app.errorhandler(413)
def handle_too_large(error):
    return jsonify({"error": f"File too large (max {MAX_UPLOAD_SIZE_MB} MB)"}), 413


def get_store():
    with stores_lock:
        return stores.get(session.get('_id'))


def store_required(f):
    """Decorator that passes the session's store, or answers 400 when nothing is loaded"""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        store = get_store()
        if store is None:
            return jsonify({"error": "No data loaded"}), 400
        return f(store, *args, **kwargs)

    return decorated_function


def json_body():
    """Request JSON as a dict; anything else counts as an empty body"""
    payload = request.get_json(silent=True)
    return payload if isinstance(payload, dict) else {}


def is_confirmed():
    value = request.args.get('confirm')
    if value is None and request.is_json:
        value = json_body().get('confirm')
    return str(value).lower() in ('1', 'true', 'yes')


@app.route('/')
def index():
    store = get_store()
    return jsonify({
        "name": "convoscrub",
        "loaded": store is not None,
        "stats": store.compute_stats() if store else None,
    })


@app.route('/upload', methods=['POST'])
def upload():
    """Import a conversations.json or export ZIP and run local detection"""
    uploaded = request.files.get('file')
    if uploaded is None or not uploaded.filename:
        raise ImportParseError("No file provided")

    conversations = load_export(uploaded.stream, filename=uploaded.filename)

    store = ConversationStore(conversations)
    store.apply_local_detection()

    with stores_lock:
        stores[session['_id']] = store

    stats = store.compute_stats()
    logger.info(f"Upload complete: {len(store.conversations)} conversations, {stats['total']} messages")
    return jsonify({
        "success": True,
        "conversations": len(store.conversations),
        "stats": stats,
        "message": f"Successfully loaded {len(store.conversations)} conversations"
    })


@app.route('/conversations')
@store_required
def list_conversations(store):
    return jsonify(store.to_dict())


@app.route('/conversation/<conv_id>')
@store_required
def get_conversation(store, conv_id):
    return jsonify(store.get_conversation(conv_id).to_dict())


@app.route('/conversation/<conv_id>/toggle', methods=['POST'])
@store_required
def toggle_conversation(store, conv_id):
    conv = store.toggle_expand(conv_id)
    return jsonify({"id": conv.id, "isExpanded": conv.is_expanded})


@app.route('/conversation/<conv_id>', methods=['DELETE'])
@store_required
def delete_conversation(store, conv_id):
    store.delete_conversation(conv_id, confirmed=is_confirmed())
    return jsonify({"success": True, "stats": store.compute_stats()})


@app.route('/conversation/<conv_id>/message/<msg_id>/toggle-delete', methods=['POST'])
@store_required
def toggle_message_deletion(store, conv_id, msg_id):
    msg = store.toggle_message_deletion(conv_id, msg_id)
    return jsonify({"message": msg.to_dict(), "stats": store.compute_stats()})


@app.route('/sensitive')
@store_required
def sensitive_review(store):
    return jsonify({"messages": store.sensitive_messages()})


@app.route('/sensitive/delete-all', methods=['POST'])
@store_required
def delete_all_sensitive(store):
    marked = store.mark_all_sensitive_for_deletion(confirmed=is_confirmed())
    return jsonify({"marked": marked, "stats": store.compute_stats()})


@app.route('/deep-scan', methods=['POST'])
@store_required
def deep_scan(store):
    """Run the OpenAI classification over the loaded conversations"""
    api_key = json_body().get('apiKey')
    if api_key is not None and not isinstance(api_key, str):
        raise MissingCredentialError("apiKey must be a string")
    scanner = DeepScanner(api_key=api_key)

    summary = store.run_deep_scan(scanner)
    return jsonify({
        "success": True,
        "scan": summary,
        "stats": store.compute_stats(),
        "message": "AI analysis complete"
    })


@app.route('/stats')
@store_required
def stats(store):
    return jsonify(store.compute_stats())


@app.route('/export')
@store_required
def export_filtered(store):
    text = store.export_text()
    logger.info(f"Exporting {len(store.conversations)} conversations ({len(text)} chars)")
    return send_file(
        BytesIO(text.encode('utf-8')),
        mimetype='text/plain',
        as_attachment=True,
        download_name=export_filename()
    )


@app.route('/clear', methods=['POST'])
def clear_data():
    """Clear the current loaded data"""
    with stores_lock:
        stores.pop(session.get('_id'), None)
    logger.info("Data cleared")
    return jsonify({"success": True, "message": "Data cleared"})


# Environment validation for production
def validate_production_config():
    """Validate that all required config is set for production"""
    if not IS_PRODUCTION:
        return True

    errors = []
    if not os.environ.get('SECRET_KEY'):
        errors.append("SECRET_KEY must be set in production")

    if errors:
        logger.error("Production configuration errors:")
        for error in errors:
            logger.error(f"  - {error}")
        return False

    logger.info("✅ Production configuration validated")
    return True


# Health check endpoint
@app.route('/health')
def health_check():
    """Health check endpoint for monitoring"""
    with stores_lock:
        loaded_sessions = len(stores)
    status = {
        "status": "healthy",
        "timestamp": datetime.now().isoformat(),
        "environment": FLASK_ENV,
        "openai_configured": bool(os.environ.get('OPENAI_API_KEY')),
        "loaded_sessions": loaded_sessions,
    }

    if not validate_production_config():
        status["status"] = "degraded"
        status["warning"] = "Production configuration incomplete"

    return jsonify(status), 200


if __name__ == "__main__":
    # ONLY for local development
    app.run(host="0.0.0.0", port=int(os.environ.get('PORT', '8080')), debug=True)
