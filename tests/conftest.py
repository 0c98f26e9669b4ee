from __future__ import annotations

from collections.abc import Iterator

import pytest
from flask import Flask
from flask.testing import FlaskClient

from linedefect import create_app
from linedefect.config import TestingConfig
from linedefect.extensions import db


@pytest.fixture()
def app() -> Iterator[Flask]:
    app = create_app(TestingConfig)
    with app.app_context():
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def client(app: Flask) -> FlaskClient:
    return app.test_client()
