"""
Flask application - PayrollPro admin backend
REST API behind the PayrollPro admin dashboard
"""

from flask import Flask, request
from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate
from flask_jwt_extended import JWTManager
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from config import config
import logging
import os

db = SQLAlchemy()
jwt = JWTManager()
migrate = Migrate()


def get_rate_limit_key():
    """
    Key used for rate limiting.
    - 'preflight' for OPTIONS requests (CORS preflight)
    - client IP otherwise
    """
    if request.method == 'OPTIONS':
        return 'preflight'

    ip = get_remote_address()
    if not ip:
        ip = request.headers.get('X-Forwarded-For', request.headers.get('X-Real-IP', '127.0.0.1'))
        if ',' in ip:
            ip = ip.split(',')[0].strip()

    return ip or '127.0.0.1'


limiter = Limiter(
    key_func=get_rate_limit_key,
    default_limits=["500 per day", "100 per hour"]
)

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def create_app(config_name='default'):
    """
    Factory building the Flask application

    Args:
        config_name: Configuration name (development, production, testing)

    Returns:
        Configured Flask app
    """
    app = Flask(__name__)
    app.config.from_object(config[config_name])

    if config_name == 'production':
        config[config_name].init_app(app)

    logging.getLogger().setLevel(app.config.get('LOG_LEVEL', 'INFO'))

    from payroll.utils.audit import configure_audit_logger
    configure_audit_logger(app)

    db.init_app(app)
    migrate.init_app(app, db)
    jwt.init_app(app)
    limiter.init_app(app)

    cors_origins = app.config.get('CORS_ORIGINS', ['http://localhost:5173'])
    CORS(app, resources={
        r"/api/*": {
            "origins": cors_origins,
            "methods": ["GET", "POST", "PUT", "DELETE", "OPTIONS"],
            "allow_headers": app.config.get('CORS_ALLOW_HEADERS', ["Content-Type", "Authorization"]),
            "supports_credentials": app.config.get('CORS_SUPPORTS_CREDENTIALS', True)
        }
    })

    @app.after_request
    def add_security_headers(response):
        if config_name == 'production':
            response.headers['Strict-Transport-Security'] = 'max-age=31536000; includeSubDomains'

        response.headers['X-Content-Type-Options'] = 'nosniff'
        response.headers['X-Frame-Options'] = 'DENY'
        response.headers['Referrer-Policy'] = 'strict-origin-when-cross-origin'
        response.headers['Cache-Control'] = 'no-store'

        return response

    # ==================== BLUEPRINTS ====================

    from payroll.routes.auth import auth_bp
    app.register_blueprint(auth_bp, url_prefix='/api/auth')

    # Step-up verification + gated manager operations
    from payroll.routes.admin import admin_bp
    app.register_blueprint(admin_bp, url_prefix='/api/admin')

    # ==================== CLI ====================

    from payroll.commands import otp_cli
    app.cli.add_command(otp_cli)

    # ==================== ERROR HANDLERS ====================

    @app.errorhandler(400)
    def bad_request(error):
        return {'error': 'Invalid request', 'code': 'BAD_REQUEST'}, 400

    @app.errorhandler(401)
    def unauthorized(error):
        return {'error': 'Unauthorized', 'code': 'UNAUTHORIZED'}, 401

    @app.errorhandler(403)
    def forbidden(error):
        return {'error': 'Access denied', 'code': 'FORBIDDEN'}, 403

    @app.errorhandler(404)
    def not_found(error):
        return {'error': 'Resource not found', 'code': 'NOT_FOUND'}, 404

    @app.errorhandler(429)
    def rate_limit_exceeded(error):
        return {'error': 'Too many requests. Try again later.', 'code': 'RATE_LIMITED'}, 429

    @app.errorhandler(500)
    def internal_error(error):
        logger.error(f"Internal error: {str(error)}")
        return {'error': 'Internal server error', 'code': 'INTERNAL_ERROR'}, 500

    @app.route('/api/health')
    def health_check():
        """Health check endpoint"""
        return {'status': 'healthy', 'version': '1.0.0'}

    if os.environ.get('AUTO_CREATE_DB', 'false').lower() == 'true':
        with app.app_context():
            db.create_all()

    logger.info(f"Application started in {config_name} mode")

    return app
