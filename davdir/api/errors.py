"""JSON error handlers for the application."""
from flask import jsonify
from werkzeug.exceptions import HTTPException

from davdir.core.exceptions import PrincipalNotFoundError


def register_error_handlers(app):
    """Register error handlers with the Flask app."""

    @app.errorhandler(400)
    def bad_request(error):
        """Handle 400 Bad Request errors."""
        message = getattr(error, "description", None) or str(error)
        return jsonify({"error": "Bad Request", "message": message}), 400

    @app.errorhandler(401)
    def unauthorized(error):
        """Handle 401 Unauthorized errors."""
        return jsonify({"error": "Unauthorized", "message": "Authentication required"}), 401

    @app.errorhandler(404)
    def not_found(error):
        """Handle 404 Not Found errors."""
        message = getattr(error, "description", None) or "Resource not found"
        return jsonify({"error": "Not Found", "message": message}), 404

    @app.errorhandler(409)
    def conflict(error):
        """Handle 409 Conflict errors."""
        message = getattr(error, "description", None) or "Conflict"
        return jsonify({"error": "Conflict", "message": message}), 409

    @app.errorhandler(PrincipalNotFoundError)
    def principal_not_found(error):
        return jsonify({"error": "Not Found", "message": str(error)}), 404

    @app.errorhandler(500)
    def internal_error(error):
        """Handle 500 Internal Server Error."""
        app.logger.error(f"Internal error: {error}", exc_info=True)
        return jsonify({"error": "Internal Server Error", "message": "An unexpected error occurred"}), 500

    @app.errorhandler(Exception)
    def handle_exception(error):
        """Handle uncaught exceptions."""
        # Pass through HTTP errors
        if isinstance(error, HTTPException):
            return error

        app.logger.error(f"Unhandled exception: {error}", exc_info=True)
        return jsonify({"error": "Internal Server Error", "message": "An unexpected error occurred"}), 500
