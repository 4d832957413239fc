"""Flask stats endpoint for the HEP server."""

from flask import Flask, jsonify


def create_dashboard_app(server) -> Flask:
    app = Flask(__name__)

    @app.route("/stats")
    def stats():
        return jsonify(server.snapshot())

    @app.route("/health")
    def health():
        return jsonify(status="ok", state=server.state.value)

    return app


def run_dashboard(app: Flask, port: int):
    """Run the Flask app (intended for use in a daemon thread)."""
    app.run(host="0.0.0.0", port=port, use_reloader=False)
