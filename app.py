from flask import Flask
from flask_migrate import Migrate

from config import Config
from models import db, login_manager


migrate = Migrate()


def build_order_sync(app: Flask):
    """Arma el orquestador de sync (una sola instancia por app)."""
    from services.connectivity import ConnectivityMonitor
    from services.order_sync import OrderSyncService
    from services.supabase_client import SupabaseOrderClient

    remote = SupabaseOrderClient(
        app.config["SUPABASE_URL"],
        app.config["SUPABASE_KEY"],
        create_rpc=app.config["SUPABASE_CREATE_RPC"],
        timeout=app.config["SUPABASE_HTTP_TIMEOUT"],
    )
    monitor = ConnectivityMonitor(remote.ping, interval_s=app.config["SYNC_PROBE_INTERVAL_S"])

    return OrderSyncService(
        app,
        remote,
        batch_size=app.config["SYNC_BATCH_SIZE"],
        max_attempts=app.config["SYNC_MAX_ATTEMPTS"],
        update_timeout_s=app.config["SYNC_UPDATE_TIMEOUT_S"],
        machine_id=app.config["MACHINE_ID"],
        connectivity=monitor,
    )


def create_app(config_class=Config) -> Flask:
    app = Flask(__name__)
    app.config.from_object(config_class)

    # -------------------------
    # Extensiones
    # -------------------------
    db.init_app(app)
    migrate.init_app(app, db)

    login_manager.init_app(app)

    # -------------------------
    # Importar modelos (Alembic)
    # -------------------------
    from models.user import User  # noqa: F401
    from models.order import Order, OrderItem  # noqa: F401

    # -------------------------
    # Blueprints
    # -------------------------
    from routes.auth import auth_bp
    from routes.orders import orders_bp
    from routes.sync import sync_bp

    blueprints = [
        auth_bp,

        # Operación
        orders_bp,

        # Sync
        sync_bp,
    ]

    for bp in blueprints:
        app.register_blueprint(bp)

    # -------------------------
    # Sync offline -> servidor
    # -------------------------
    app.extensions["order_sync"] = build_order_sync(app)

    from cli import register_cli
    register_cli(app)

    # -------------------------
    # Logging + manejo global de errores
    # -------------------------
    import os
    import logging
    from logging.handlers import RotatingFileHandler
    from flask import jsonify, request

    if not app.testing:
        log_dir = app.config["LOG_DIR"]
        os.makedirs(log_dir, exist_ok=True)

        file_handler = RotatingFileHandler(
            os.path.join(log_dir, "app.log"),
            maxBytes=2_000_000,
            backupCount=5,
            encoding="utf-8",
        )
        file_handler.setLevel(logging.INFO)
        file_handler.setFormatter(logging.Formatter(
            "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
        ))

        # app.logger + logs de services.* (sync, cliente remoto)
        for logger in (app.logger, logging.getLogger("services")):
            if not any(isinstance(h, RotatingFileHandler) for h in logger.handlers):
                logger.addHandler(file_handler)
            logger.setLevel(logging.INFO)

    @login_manager.unauthorized_handler
    def _unauthorized():
        return jsonify({"ok": False, "error": "Inicia sesión para continuar."}), 401

    @app.errorhandler(500)
    def _handle_500(e):
        app.logger.exception("Error 500 no manejado: %s %s", request.method, request.path)
        return jsonify({"ok": False, "error": "Ocurrió un error interno. El problema fue registrado."}), 500

    @app.errorhandler(403)
    def _handle_403(e):
        return jsonify({"ok": False, "error": "Acceso denegado."}), 403

    @app.errorhandler(404)
    def _handle_404(e):
        return jsonify({"ok": False, "error": "No encontrado."}), 404

    return app


app = create_app()


if __name__ == "__main__":
    sync = app.extensions["order_sync"]
    sync.start(app.config["SYNC_INTERVAL_MS"])
    try:
        app.run(debug=app.config.get("DEBUG", False), use_reloader=False)
    finally:
        sync.stop()
