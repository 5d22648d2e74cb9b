import os

basedir = os.path.abspath(os.path.dirname(__file__))


class Config:
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev_secret_key_change_me")

    # Offline-first: SQLite local (cache de órdenes)
    DB_PATH = os.environ.get("DB_PATH", os.path.join(basedir, "pos.db"))
    SQLALCHEMY_DATABASE_URI = os.environ.get("DATABASE_URL", f"sqlite:///{DB_PATH}")

    SQLALCHEMY_TRACK_MODIFICATIONS = False

    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = "Lax"

    # Backend remoto (Supabase / PostgREST)
    SUPABASE_URL = os.environ.get("SUPABASE_URL", "")
    SUPABASE_KEY = os.environ.get("SUPABASE_KEY", "")
    SUPABASE_CREATE_RPC = os.environ.get("SUPABASE_CREATE_RPC", "create_pos_order_notary")
    SUPABASE_HTTP_TIMEOUT = float(os.environ.get("SUPABASE_HTTP_TIMEOUT", "30"))

    # Cada terminal DEBE tener su propio MACHINE_ID (evita choques de numeración offline)
    MACHINE_ID = os.environ.get("MACHINE_ID", "A")

    # Sincronización
    SYNC_INTERVAL_MS = int(os.environ.get("SYNC_INTERVAL_MS", "60000"))
    SYNC_BATCH_SIZE = int(os.environ.get("SYNC_BATCH_SIZE", "5"))
    SYNC_MAX_ATTEMPTS = int(os.environ.get("SYNC_MAX_ATTEMPTS", "10"))
    SYNC_UPDATE_TIMEOUT_S = float(os.environ.get("SYNC_UPDATE_TIMEOUT_S", "20"))
    SYNC_PROBE_INTERVAL_S = float(os.environ.get("SYNC_PROBE_INTERVAL_S", "15"))

    LOG_DIR = os.environ.get("LOG_DIR", os.path.join(basedir, "logs"))


class TestConfig(Config):
    TESTING = True
    SECRET_KEY = "test"
    SQLALCHEMY_DATABASE_URI = "sqlite://"

    SUPABASE_URL = "http://supabase.test"
    SUPABASE_KEY = "test-key"
    MACHINE_ID = "T"

    SYNC_UPDATE_TIMEOUT_S = 0.2
