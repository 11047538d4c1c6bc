#!/usr/bin/env python3
"""
Decoupe Express - Application Entry Point
Creates Flask app and registers the quote generation Blueprint.
"""

import os

from flask import Flask


def create_app(store=None, generator=None):
    """Application factory.

    store:     KeyValueStore for zones, background, company profile and history
               (default: JSON file under DATA_DIR)
    generator: QuoteGenerator (default: built on the same store)
    """
    from decoupe.agents.orchestrator import QuoteGenerator
    from decoupe.api.routes import bp
    from decoupe.core.settings import get_setting, startup_check
    from decoupe.core.store import default_store

    app = Flask(__name__)
    app.secret_key = get_setting("secret_key")

    if store is None:
        store = default_store()
    if generator is None:
        generator = QuoteGenerator(store=store)
    app.extensions["decoupe"] = {"store": store, "generator": generator}

    app.register_blueprint(bp)

    # Runtime self-test of settings, catches a missing webhook config at boot
    startup_check()
    return app


if __name__ == "__main__":
    from logging_config import setup_logging
    from decoupe.core.paths import validate_paths

    setup_logging()
    validate_paths()
    port = int(os.environ.get("PORT", 5000))
    create_app().run(host="0.0.0.0", port=port, debug=False)
