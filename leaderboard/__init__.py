import os
from flask import Flask


def _env_number(name, default, cast=int):
    try:
        return cast(os.environ.get(name, default))
    except ValueError:
        return default


def create_app(config=None):
    app = Flask(__name__)

    db_url = os.environ.get("DATABASE_URL")
    if not db_url:
        raise RuntimeError("DATABASE_URL is required (PostgreSQL connection string).")

    app.config.update(
        LEADERBOARD_PER_PAGE=_env_number("LEADERBOARD_PER_PAGE", 20),
        RECALC_LOCK_ATTEMPTS=_env_number("RECALC_LOCK_ATTEMPTS", 5),
        RECALC_LOCK_BACKOFF=_env_number("RECALC_LOCK_BACKOFF", 0.2, float),
        POINTS_TABLE_FILE=os.environ.get("POINTS_TABLE_FILE") or None,
    )
    if config:
        app.config.update(config)

    # Initialize connection pool early (optional; direct connect works if pool init fails)
    try:
        from . import datastore_pg as _pg
        _pg.init_pool(
            minconn=_env_number("DB_POOL_MIN", 1),
            maxconn=_env_number("DB_POOL_MAX", 10),
        )
    except Exception:  # pylint: disable=broad-except
        app.logger.exception("PostgreSQL pool initialization failed; continuing without pool")

    from . import routes, cli
    app.register_blueprint(routes.bp)
    cli.register(app)

    return app


if __name__ == '__main__':
    port = int(os.environ.get('PORT', 5000))
    create_app().run(host='0.0.0.0', port=port)
