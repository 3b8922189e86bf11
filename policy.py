"""Minimal resource requests for pods admitted into openshift-* namespaces.

Namespaces are matched exactly. Anything not listed here, including other
openshift-* namespaces, gets the defaults.
"""


class DEFAULTS:
    CPU = "10m"
    MEMORY = "10Mi"


MINIMAL_CPU = {
    "openshift-console": "100m",
    "openshift-kube-controller-manager": "300m",
    "openshift-kube-apiserver": "800m",
    "openshift-etcd": "600m",
}

MINIMAL_MEMORY = {
    "openshift-console": "50Mi",
}


def minimal_cpu(namespace: str) -> str:
    return MINIMAL_CPU.get(namespace, DEFAULTS.CPU)


def minimal_memory(namespace: str) -> str:
    return MINIMAL_MEMORY.get(namespace, DEFAULTS.MEMORY)
