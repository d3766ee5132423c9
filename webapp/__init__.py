"""
Flask static site served on EKS
"""
import os
import socket

from flask import Flask, jsonify, render_template


def get_app_details():
    return {
        "app_name": os.environ.get("APP_NAME", "flask-static-app"),
        "environment": os.environ.get("APP_ENV", "development"),
        "version": os.environ.get("APP_VERSION", "local"),
        "hostname": socket.gethostname(),
    }


def create_app(test_config=None):
    app = Flask(__name__)
    if test_config:
        app.config.update(test_config)

    @app.route("/")
    def index():
        return render_template("index.html", **get_app_details())

    @app.route("/about")
    def about():
        return render_template("about.html", **get_app_details())

    @app.route("/health")
    def health():
        # Readiness and liveness probes, and the ALB target group check
        details = get_app_details()
        return jsonify({"status": "healthy", "version": details["version"]}), 200

    return app
