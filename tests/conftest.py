import json

import pytest

import mutate


def make_container(requests=None, limits=None):
    resources = {}
    if requests is not None:
        resources["requests"] = requests
    if limits is not None:
        resources["limits"] = limits
    return {"name": "test", "image": "quay.io/test/test:latest", "resources": resources}


def make_review(namespace, containers, uid="1234"):
    return {
        "apiVersion": "admission.k8s.io/v1beta1",
        "kind": "AdmissionReview",
        "request": {
            "uid": uid,
            "namespace": namespace,
            "operation": "CREATE",
            "object": {
                "apiVersion": "v1",
                "kind": "Pod",
                "metadata": {"generateName": "test-", "namespace": namespace},
                "spec": {"containers": containers},
            },
        },
    }


@pytest.fixture()
def review():
    """Returns a function that builds an AdmissionReview request body."""

    def _review(namespace, containers, uid="1234"):
        return json.dumps(make_review(namespace, containers, uid=uid)).encode()

    return _review


@pytest.fixture()
def container():
    return make_container


@pytest.fixture()
def app():
    app = mutate.create_app(TESTING=True)
    yield app


@pytest.fixture()
def client(app):
    return app.test_client()
