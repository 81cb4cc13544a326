from flask import Flask, request, jsonify, make_response
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
import os
import logging
from dotenv import load_dotenv
import sentry_sdk
from sentry_sdk.integrations.flask import FlaskIntegration
import redis

from utils.errors import ChatWidgetError
from utils.helpers import DateTimeHelpers, ResponseHelpers

# Load environment variables
load_dotenv()

# Environment variables
SENTRY_DSN = os.getenv("SENTRY_DSN")
SECRET_KEY = os.getenv("SECRET_KEY")
REDIS_URL = os.getenv("REDIS_URL")
CHAT_RATE_LIMIT = os.getenv("CHAT_RATE_LIMIT", "60 per minute")
APP_VERSION = "1.0.0"

# Sentry setup
if SENTRY_DSN:
    sentry_sdk.init(
        dsn=SENTRY_DSN,
        integrations=[FlaskIntegration()],
        traces_sample_rate=1.0,
        send_default_pii=False
    )

# Logging setup
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s"
)
logger = logging.getLogger(__name__)

# Flask app initialization
app = Flask(__name__)
app.config['SECRET_KEY'] = SECRET_KEY

# Rate limiter setup, shared across workers when Redis is configured
limiter = Limiter(
    app=app,
    key_func=get_remote_address,
    storage_uri=REDIS_URL or "memory://",
    default_limits=["1000 per hour"]
)

# CORS CONFIGURATION - the widget is embedded on arbitrary storefronts
CORS(app,
     origins="*",
     methods=['POST', 'GET', 'OPTIONS'],
     allow_headers=['Content-Type', 'Authorization', 'X-Requested-With', 'Accept', 'Origin'],
     supports_credentials=False,
     max_age=86400
)

# Import and register blueprints AFTER CORS setup
from routes.chat import chat_bp

limiter.limit(CHAT_RATE_LIMIT)(chat_bp)
app.register_blueprint(chat_bp, url_prefix='/api')

# Preflight handler
@app.before_request
def handle_preflight():
    if request.method == "OPTIONS":
        response = make_response()

        origin = request.headers.get('Origin')
        response.headers['Access-Control-Allow-Origin'] = origin or '*'
        response.headers['Access-Control-Allow-Methods'] = 'GET, POST, OPTIONS'
        response.headers['Access-Control-Allow-Headers'] = 'Content-Type, Authorization, X-Requested-With, Accept, Origin'
        response.headers['Access-Control-Max-Age'] = '86400'
        response.headers['Content-Type'] = 'application/json'

        return response, 200

# Health check endpoint
@app.route('/')
def health():
    return jsonify({
        "status": "healthy",
        "service": "Shopify Chat API",
        "version": APP_VERSION,
        "features": [
            "Shopify Store Connection",
            "Multi-Model Chat",
            "Daily Quota Rotation",
            "Rate Limiting"
        ],
        "cors_enabled": True,
        "endpoints": {
            "chat": "/api/chat",
            "usage": "/api/usage",
            "health": "/",
            "detailed_health": "/health/detailed"
        },
        "timestamp": DateTimeHelpers.get_current_timestamp()
    })

@app.route('/health/detailed', methods=['GET'])
def detailed_health():
    """Detailed health check showing service statuses"""
    health_status = {
        "status": "healthy",
        "timestamp": DateTimeHelpers.get_current_timestamp(),
        "version": APP_VERSION,
        "services": {
            "chat": "healthy",
            "inference_credential": "configured" if os.getenv("GITHUB_TOKEN") else "missing",
            "redis": "not_configured"
        },
        "environment": os.getenv('FLASK_ENV', 'production')
    }

    if not os.getenv("GITHUB_TOKEN"):
        health_status["status"] = "degraded"

    if REDIS_URL:
        try:
            redis.from_url(REDIS_URL).ping()
            health_status["services"]["redis"] = "healthy"
        except (redis.RedisError, ValueError) as e:
            logger.error(f"Redis health check failed: {str(e)}")
            health_status["services"]["redis"] = "unhealthy"
            health_status["status"] = "degraded"

    status_code = 200 if health_status["status"] == "healthy" else 503
    return jsonify(health_status), status_code

# Global error handlers
@app.errorhandler(ChatWidgetError)
def widget_error_handler(e):
    return jsonify(ResponseHelpers.error_response(
        e.message,
        error_code=e.error_code,
        details=e.details
    )), e.status_code

@app.errorhandler(429)
def rate_limit_handler(e):
    return jsonify({
        "error": "Rate limit exceeded",
        "message": "Too many requests. Please wait before trying again.",
        "retry_after": getattr(e, 'retry_after', 60)
    }), 429

@app.errorhandler(404)
def not_found_handler(e):
    return jsonify({
        "error": "Not found",
        "message": "The requested endpoint does not exist"
    }), 404

@app.errorhandler(500)
def internal_error_handler(e):
    logger.error(f"Internal server error: {e}")
    return jsonify({
        "error": "Internal server error",
        "message": "Something went wrong on our end"
    }), 500

if __name__ == '__main__':
    port = int(os.getenv('PORT', 5000))
    debug = os.getenv('FLASK_ENV') == 'development'
    app.run(host='0.0.0.0', port=port, debug=debug)
