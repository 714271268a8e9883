import io
import time
from urllib.parse import urlsplit

import cv2
import numpy as np
import pytest
import requests

from sugarcane_scan.api import create_app
from sugarcane_scan.config import Config
from sugarcane_scan.records import ScanRecordService


def make_leaf_image(seed=7):
    """Elongated green blade filling most of a 160x320 soil-coloured frame"""
    rng = np.random.default_rng(seed)
    img = np.full((320, 160, 3), (110, 80, 50), dtype=np.uint8)
    cv2.ellipse(img, (80, 160), (60, 150), 0, 0, 360, (40, 150, 40), -1)
    noise = rng.integers(0, 40, img.shape, dtype=np.uint8)
    return cv2.add(img, noise)


def make_flat_image(value=128, width=300, height=300):
    return np.full((height, width, 3), value, dtype=np.uint8)


def encode_jpeg(rgb):
    ok, buffer = cv2.imencode('.jpg', cv2.cvtColor(rgb, cv2.COLOR_RGB2BGR))
    assert ok
    return buffer.tobytes()


def wait_for(predicate, timeout=5.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


class FakeLeafModel:
    """predict_proba stand-in returning a fixed leaf probability"""

    def __init__(self, leaf_prob=0.9, classes=(0, 1)):
        self.leaf_prob = leaf_prob
        self.classes_ = np.array(classes)
        self.calls = 0
        self.closed = False

    def predict_proba(self, X):
        self.calls += 1
        row = [1 - self.leaf_prob, self.leaf_prob]
        if list(self.classes_) == [1, 0]:
            row = row[::-1]
        return np.tile(row, (len(X), 1))

    def close(self):
        self.closed = True


@pytest.fixture
def leaf_rgb():
    return make_leaf_image()


@pytest.fixture
def flat_rgb():
    return make_flat_image()


@pytest.fixture
def leaf_jpeg(leaf_rgb):
    return encode_jpeg(leaf_rgb)


@pytest.fixture
def config(tmp_path):
    return Config(
        DATABASE=str(tmp_path / 'scans.db'),
        BLOB_ROOT=str(tmp_path / 'blobs'),
        LEAF_MODEL_PATH=str(tmp_path / 'missing_model.joblib'),
    )


@pytest.fixture
def service(config):
    return ScanRecordService.from_config(config)


@pytest.fixture
def app(config, service):
    return create_app(config, service=service)


@pytest.fixture
def client(app):
    return app.test_client()


class FlaskSession:
    """requests.Session replacement that dispatches to a Flask test client"""

    def __init__(self, test_client):
        self.test_client = test_client

    def request(self, method, url, timeout=None, files=None, json=None, params=None):
        path = urlsplit(url).path
        kwargs = {'query_string': params or {}}
        if files:
            kwargs['data'] = {
                name: (io.BytesIO(data), filename, content_type)
                for name, (filename, data, content_type) in files.items()
            }
            kwargs['content_type'] = 'multipart/form-data'
        if json is not None:
            kwargs['json'] = json

        flask_response = self.test_client.open(path, method=method, **kwargs)
        response = requests.Response()
        response.status_code = flask_response.status_code
        response._content = flask_response.get_data()
        response.headers.update(flask_response.headers)
        response.reason = flask_response.status.split(' ', 1)[-1]
        response.url = url
        return response


@pytest.fixture
def flask_session(client):
    return FlaskSession(client)
