from flask import Flask, jsonify
import atexit
import logging
import os
import threading
from dotenv import load_dotenv
load_dotenv()  # pick up .env before reading settings

from market_sync.config import SyncSettings
from market_sync.scheduler import SyncScheduler
from market_sync.sync_service import SyncService

logger = logging.getLogger(__name__)


def create_app(service):
    """
    Ops surface for a running sync service.
    GET  /health          liveness
    GET  /api/sync/status running flag and the last cycle report
    POST /api/sync/run    start a cycle in the background (409 if one is running)
    """
    app = Flask(__name__)

    @app.route('/health', methods=['GET'])
    def health():
        return jsonify({'status': 'ok'})

    @app.route('/api/sync/status', methods=['GET'])
    def sync_status():
        try:
            return jsonify(service.status())
        except Exception as e:
            logger.error(f"Error reading sync status: {e}", exc_info=True)
            return jsonify({'error': str(e)}), 500

    @app.route('/api/sync/run', methods=['POST'])
    def sync_run():
        if service.orchestrator.running:
            return jsonify({'started': False, 'message': 'sync_cycle_already_running'}), 409

        def job():
            try:
                service.run_once()
            except Exception as e:
                logger.exception(f"Manual sync failed: {e}")

        threading.Thread(target=job, name="manual-sync", daemon=True).start()
        return jsonify({'started': True}), 202

    return app


def bootstrap():
    """Build service, scheduler and Flask app from the environment and start the scheduler."""
    settings = SyncSettings.from_env()
    logging.basicConfig(level=getattr(logging, settings.log_level, logging.INFO))

    service = SyncService(settings)
    scheduler = SyncScheduler(service, timezone=settings.timezone)
    scheduler.start(settings.sync_cron, run_on_start=settings.sync_on_start)
    return create_app(service), service, scheduler


def __getattr__(name):
    # `flask --app app run` and WSGI servers look up `app`; build it on first access only
    # so importing this module does not need credentials.
    if name == 'app':
        flask_app, service, scheduler = bootstrap()
        atexit.register(service.shutdown)
        atexit.register(scheduler.shutdown)
        globals()['app'] = flask_app
        return flask_app
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


if __name__ == "__main__":
    app, service, scheduler = bootstrap()
    port = int(os.environ.get("PORT", 5000))
    try:
        app.run(host="0.0.0.0", port=port, debug=False)
    finally:
        scheduler.shutdown()
        service.shutdown()
