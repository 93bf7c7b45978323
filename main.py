"""
Course Storefront - Main Flask Application
Entitlement, order and progression API on SQLAlchemy ORM and Blueprints
"""

from flask import Flask, jsonify
from flask_cors import CORS
import logging
import os
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

# Import models and routes
from models import db
from auth_routes import auth_bp
from course_routes import course_bp
from order_routes import order_bp
from leaderboard_routes import leaderboard_bp
from engine_errors import EngineError
from seeder import DatabaseSeeder


def _env_flag(name, default='false'):
    return os.environ.get(name, default).lower() == 'true'


def configure_logging():
    logging.basicConfig(
        level=os.environ.get('LOG_LEVEL', 'INFO').upper(),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )


def create_app(config_name=None):
    """Application factory pattern"""
    configure_logging()
    app = Flask(__name__)

    # Configuration - Load from environment variables
    app.config['SECRET_KEY'] = os.environ.get('SECRET_KEY')
    if not app.config['SECRET_KEY']:
        raise ValueError("SECRET_KEY environment variable is required! Check your .env file.")
    app.config['JWT_SECRET'] = os.environ.get('JWT_SECRET') or app.config['SECRET_KEY']

    # Database Configuration
    # Use SQLite for development, PostgreSQL for production
    database_url = os.environ.get('DATABASE_URL')
    if database_url:
        # Handle Heroku-style postgres:// URLs
        if database_url.startswith('postgres://'):
            database_url = database_url.replace('postgres://', 'postgresql://', 1)
        app.config['SQLALCHEMY_DATABASE_URI'] = database_url
    else:
        db_path = os.path.join(os.path.dirname(os.path.abspath(__file__)), 'storefront.db')
        app.config['SQLALCHEMY_DATABASE_URI'] = f'sqlite:///{db_path}'

    app.config['SQLALCHEMY_TRACK_MODIFICATIONS'] = False
    app.config['SQLALCHEMY_ECHO'] = _env_flag('SQL_DEBUG')

    # Engine settings
    app.config['ORDER_PAY_DEADLINE_HOURS'] = int(os.environ.get('ORDER_PAY_DEADLINE_HOURS', 72))
    app.config['ENABLE_MOCK_PURCHASE'] = _env_flag('ENABLE_MOCK_PURCHASE')
    app.config['ENABLE_DEV_LOGIN'] = _env_flag('ENABLE_DEV_LOGIN')
    app.config['ADMIN_CRON_KEY'] = os.environ.get('ADMIN_CRON_KEY')

    app.config['JSON_AS_ASCII'] = False
    app.config['JSON_SORT_KEYS'] = False

    if config_name == 'testing':
        app.config['TESTING'] = True

    # Initialize extensions
    cors_origins = os.environ.get('CORS_ORIGINS', 'http://localhost:3000,http://127.0.0.1:3000')
    allowed_origins = [origin.strip() for origin in cors_origins.split(',') if origin.strip()]
    CORS(app, resources={r"/api/*": {"origins": allowed_origins}}, supports_credentials=True)
    db.init_app(app)

    # Register blueprints
    app.register_blueprint(auth_bp)
    app.register_blueprint(course_bp)
    app.register_blueprint(order_bp)
    app.register_blueprint(leaderboard_bp)

    # Error handlers
    @app.errorhandler(EngineError)
    def engine_error(error):
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(404)
    def not_found(error):
        return jsonify({'success': False, 'error': 'Resource not found'}), 404

    @app.errorhandler(500)
    def internal_error(error):
        db.session.rollback()
        return jsonify({'success': False, 'error': 'Internal server error'}), 500

    @app.errorhandler(400)
    def bad_request(error):
        return jsonify({'success': False, 'error': 'Bad request'}), 400

    # Root endpoint
    @app.route('/')
    def index():
        return jsonify({
            'name': 'Course Storefront API',
            'version': '1.0.0',
            'endpoints': {
                'health': '/api/health',
                'courses': '/api/courses',
                'orders': '/api/orders',
                'leaderboard': '/api/leaderboard/total'
            }
        })

    @app.route('/api/health')
    def health():
        return jsonify({'status': 'ok'})

    @app.cli.command('seed')
    def seed_command():
        """Create tables and seed demo data"""
        result = init_database(app)
        print(f"Seeded {result['courses']} courses, {result['users']} users")

    return app


def init_database(app):
    """Initialize database with tables and seed data"""
    with app.app_context():
        db.create_all()
        return DatabaseSeeder().run()


if __name__ == '__main__':
    app = create_app()
    init_database(app)
    app.run(host='0.0.0.0', port=int(os.environ.get('PORT', 5000)), debug=_env_flag('FLASK_DEBUG'))
