import os

from BrokerageLedger.INIT.main import create_app

config_name = os.getenv("LEDGER_ENV", "DevelopmentConfig")
app = create_app(config_name)

if __name__ == "__main__":
    debug_mode = app.config.get("DEBUG", False)

    app.run(
        host="0.0.0.0",
        port=9000,
        debug=debug_mode,
        threaded=True,
        use_reloader=False
    )
