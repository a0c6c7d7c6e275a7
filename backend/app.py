from typing import Optional

from flask import Flask
from flask_cors import CORS

from core.config import Config, load_environment
from core.logger import logger
from sheets.record_store import RecordStore, build_record_store


def create_app(store: Optional[RecordStore] = None, config: Optional[Config] = None) -> Flask:
    """
    Build the Flask app.

    Environment variables are loaded before the config is read. When no store
    is passed one is built from the config; if that fails the app still starts
    and data routes answer "Record store not configured".
    """
    load_environment()
    config = config or Config()

    if store is None:
        try:
            store = build_record_store(config)
        except Exception as e:
            logger.warning(f"Record store not initialized: {type(e).__name__}: {e}")
            store = None

    # Imported here so route modules see the loaded environment
    from api.routes import create_api_blueprint

    app = Flask(__name__)

    # CORS configuration - require explicit origins (no wildcard default)
    CORS(app, origins=config.cors_origins())

    # Register blueprints
    app.register_blueprint(create_api_blueprint(store, config), url_prefix='/api')

    @app.route('/health', methods=['GET'])
    def health_check():
        """Health check endpoint"""
        return {
            'status': 'ok',
            'message': 'Backend is running',
            'recordStore': 'configured' if store is not None else 'not configured',
        }, 200

    @app.route('/', methods=['GET'])
    def root():
        """Root endpoint"""
        return {'status': 'ok', 'message': 'School Transport Management API'}, 200

    return app


if __name__ == '__main__':
    load_environment()
    app_config = Config()
    create_app(config=app_config).run(host='0.0.0.0', port=app_config.port, debug=app_config.debug)
