import logging
import os
import sys
import pydantic

from flask import Flask, request, current_app

from models import (
    AdmissionReview,
    AdmissionResponse,
    Patch,
    PatchAction,
    PatchOp,
    PatchType,
    Pod,
    Status,
    quantity_is_set,
)

import policy
from exc import ApplicationError, DecodeEnvelopeError, DecodePodError

LOG = logging.getLogger(__name__)
logging.basicConfig(level=logging.INFO)

NAMESPACE_PREFIX = "openshift-"

AUDIT_ANNOTATIONS = {
    "crc-mutate-webhook": "initial resource requests been adjusted by crc-mutate-webhook",
}


class DEFAULTS:
    VERBOSE = False
    HOST = "0.0.0.0"
    PORT = 8443
    TLS = True
    TLS_CERT_FILE = "/etc/webhook/certs/tls.crt"
    TLS_KEY_FILE = "/etc/webhook/certs/tls.key"


def should_patch(namespace: str) -> bool:
    # TODO: decide whether openshift-kube-apiserver, openshift-kube-controller-manager,
    # openshift-kube-scheduler and openshift-etcd should be left alone.
    return len(namespace) > 0 and namespace.startswith(NAMESPACE_PREFIX)


def build_patch(pod: Pod, namespace: str) -> list[PatchAction]:
    """Lower the resource requests of every container in the pod to the
    minimal values for the namespace, and drop the resource limits.

    Operations are only generated for fields that are set, since both
    "replace" and "remove" fail on a path that does not exist."""

    patch = []

    for i, container in enumerate(pod.spec.containers):
        requests = container.resources.requests
        limits = container.resources.limits
        path = f"/spec/containers/{i}/resources"

        if quantity_is_set(requests.get("memory")):
            patch.append(
                PatchAction(
                    op=PatchOp.REPLACE,
                    path=f"{path}/requests/memory",
                    value=policy.minimal_memory(namespace),
                )
            )

        if quantity_is_set(requests.get("cpu")):
            patch.append(
                PatchAction(
                    op=PatchOp.REPLACE,
                    path=f"{path}/requests/cpu",
                    value=policy.minimal_cpu(namespace),
                )
            )

        if quantity_is_set(limits.get("memory")):
            patch.append(PatchAction(op=PatchOp.REMOVE, path=f"{path}/limits/memory"))

        if quantity_is_set(limits.get("cpu")):
            patch.append(PatchAction(op=PatchOp.REMOVE, path=f"{path}/limits/cpu"))

    return patch


def dump_review(review: AdmissionReview) -> bytes:
    return review.model_dump_json(by_alias=True, exclude_none=True).encode()


def mutate(body: bytes | str, verbose: bool = False) -> bytes:
    """Take the body of an AdmissionReview request and return the body of the
    response, ready to be sent back to the API server as-is.

    Raises DecodeEnvelopeError if the body is not an admission review, and
    DecodePodError if the object under review is not a pod."""

    try:
        review = AdmissionReview.model_validate_json(body)
    except pydantic.ValidationError as err:
        raise DecodeEnvelopeError(f"unmarshaling request failed with {err}") from err

    ar = review.request

    # Nothing to answer, hand the envelope back.
    if ar is None:
        LOG.info("admission review has no request")
        return dump_review(review)

    try:
        pod = Pod.model_validate(ar.object)
    except pydantic.ValidationError as err:
        raise DecodePodError(f"unable to unmarshal pod json object: {err}") from err

    if verbose:
        LOG.info("admission request %s: %s", ar.uid, ar.model_dump_json())

    patch = []
    if should_patch(ar.namespace):
        LOG.info("trying to patch for the namespace: %s", ar.namespace)
        patch = build_patch(pod, ar.namespace)
        LOG.info(
            "patched for the namespace: %s (%d operations)", ar.namespace, len(patch)
        )
    else:
        LOG.info("not patching for the namespace: %s", ar.namespace)

    if patch:
        response = AdmissionResponse(
            uid=ar.uid,
            allowed=True,
            patchType=PatchType.JSONPatch,
            patch=Patch(patch),
            auditAnnotations=dict(AUDIT_ANNOTATIONS),
            result=Status(status="Success"),
        )
    else:
        response = AdmissionResponse(
            uid=ar.uid,
            allowed=True,
            result=Status(status="Success"),
        )

    review.response = response
    res = dump_review(review)

    if verbose:
        LOG.info("admission response %s: %s", ar.uid, res.decode())

    return res


def mutate_pod(path=None):
    res = mutate(request.get_data(), verbose=current_app.config["VERBOSE"])
    return res, 200, {"content-type": "application/json"}


def handle_decodeenvelopeerror(err):
    LOG.error("%s", err)
    return str(err), 400, {"content-type": "text/plain"}


def handle_applicationerror(err):
    LOG.error("%s", err)
    return str(err), 500, {"content-type": "text/plain"}


def health():
    return "OK", 200, {"content-type": "text/plain"}


def create_app(**config) -> Flask:
    """Use an application factory [1] to create the Flask app.

    Configuration comes from DEFAULTS, then from CRC_MUTATE_* environment
    variables, then from keyword arguments.

    [1]: https://flask.palletsprojects.com/en/3.0.x/patterns/appfactories/
    """

    app = Flask(__name__)
    app.config.from_object(DEFAULTS)
    app.config.from_prefixed_env("CRC_MUTATE")
    if config:
        app.config.update(config)

    app.errorhandler(DecodeEnvelopeError)(handle_decodeenvelopeerror)
    app.errorhandler(ApplicationError)(handle_applicationerror)
    app.add_url_rule("/healthz", view_func=health)

    # The API server may be configured to call us on any path.
    app.add_url_rule("/", view_func=mutate_pod, methods=["POST"])
    app.add_url_rule("/<path:path>", view_func=mutate_pod, methods=["POST"])

    return app


def main():
    app = create_app()

    ssl_context = None
    if app.config["TLS"]:
        cert_file = app.config["TLS_CERT_FILE"]
        key_file = app.config["TLS_KEY_FILE"]
        if not (os.path.exists(cert_file) and os.path.exists(key_file)):
            LOG.error("TLS certificate or key not found: %s, %s", cert_file, key_file)
            sys.exit(1)
        ssl_context = (cert_file, key_file)
    else:
        LOG.warning("TLS disabled, serving plain HTTP")

    LOG.info("listening on %s:%s", app.config["HOST"], app.config["PORT"])
    app.run(host=app.config["HOST"], port=app.config["PORT"], ssl_context=ssl_context)


if __name__ == "__main__":
    main()
