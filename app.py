import logging

from flask import Flask, jsonify
from tinydb import TinyDB
from tinydb.storages import MemoryStorage

from maci.config import AppConfig
from round_routes import round_bp, init_round_bp


def open_db(config):
    if config.db_path:
        return TinyDB(config.db_path)      # Storage DB
    return TinyDB(storage=MemoryStorage)   # Memory DB


def create_app(config=None, clock=None):
    if config is None:
        config = AppConfig.from_env()
    logging.basicConfig(
        level=config.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    app = Flask(__name__)
    DB = open_db(config)
    if clock is None:
        init_round_bp(DB.table("maci"))
    else:
        init_round_bp(DB.table("maci"), clock=clock)
    app.register_blueprint(round_bp)
    app.config["MACI_DB"] = DB

    @app.route("/")
    def index():
        rules = sorted(str(rule) for rule in app.url_map.iter_rules()
                       if rule.endpoint.startswith("round."))
        return jsonify({"service": "maci", "endpoints": rules})

    return app


if __name__ == "__main__":
    create_app().run(debug=True)
