from types import SimpleNamespace

import pytest
from flask import Flask, abort

from davdir.api.errors import register_error_handlers
from davdir.core import PrincipalNotFoundError


@pytest.fixture()
def flask_client():
    app = Flask(__name__)
    app.config["TESTING"] = True
    app.logger = SimpleNamespace(error=lambda *args, **kwargs: None)

    register_error_handlers(app)

    @app.route("/bad")
    def bad():
        abort(400, description="invalid payload")

    @app.route("/unauth")
    def unauth():
        abort(401)

    @app.route("/conflict")
    def conflict():
        abort(409, description="Principal principals/users/alice already exists")

    @app.route("/missing-principal")
    def missing_principal():
        raise PrincipalNotFoundError("principals/groups/nobody")

    @app.route("/crash")
    def crash():
        raise RuntimeError("boom")

    with app.test_client() as client:
        yield client


def test_bad_request_keeps_description(flask_client):
    response = flask_client.get("/bad")
    assert response.status_code == 400
    assert response.get_json() == {"error": "Bad Request", "message": "invalid payload"}


def test_unauthorized(flask_client):
    response = flask_client.get("/unauth")
    assert response.status_code == 401
    assert response.get_json()["error"] == "Unauthorized"


def test_unknown_route_is_json_404(flask_client):
    response = flask_client.get("/nope")
    assert response.status_code == 404
    assert response.get_json()["error"] == "Not Found"


def test_conflict(flask_client):
    response = flask_client.get("/conflict")
    assert response.status_code == 409
    assert "already exists" in response.get_json()["message"]


def test_principal_not_found_maps_to_404(flask_client):
    response = flask_client.get("/missing-principal")
    assert response.status_code == 404
    assert response.get_json() == {
        "error": "Not Found",
        "message": "Principal not found: principals/groups/nobody",
    }


def test_unhandled_exception_hides_details(flask_client):
    response = flask_client.get("/crash")
    assert response.status_code == 500
    body = response.get_json()
    assert body["error"] == "Internal Server Error"
    assert "boom" not in body["message"]
