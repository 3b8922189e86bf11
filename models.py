import base64
import re
from decimal import Decimal
from typing import Any, Literal
from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    RootModel,
    model_validator,
    field_validator,
)
from enum import StrEnum


class ApiVersion(StrEnum):
    V1BETA1 = "admission.k8s.io/v1beta1"
    V1 = "admission.k8s.io/v1"


class PatchType(StrEnum):
    JSONPatch = "JSONPatch"


class PatchOp(StrEnum):
    REPLACE = "replace"
    ADD = "add"
    REMOVE = "remove"


class PatchAction(BaseModel):
    op: PatchOp
    path: str
    value: Any = None


# https://jsonpatch.com/
Patch = RootModel[list[PatchAction]]


# https://kubernetes.io/docs/reference/generated/kubernetes-api/v1.30/#status-v1-meta
class Status(BaseModel):
    status: str | None = None
    message: str | None = None


# https://kubernetes.io/docs/reference/config-api/apiserver-admission.v1/#admission-k8s-io-v1-AdmissionResponse
class AdmissionResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    uid: str
    allowed: bool
    # Serialized as "status" on the wire.
    result: Status | None = Field(default=None, alias="status")
    patchType: PatchType | None = None
    patch: str | None = None
    auditAnnotations: dict[str, str] | None = None

    @field_validator("patch", mode="before")
    @classmethod
    def validate_patch(cls, val):
        if isinstance(val, Patch):
            val = base64.b64encode(val.model_dump_json(exclude_none=True).encode())
            val = val.decode()
        elif isinstance(val, (str, bytes)):
            # Make sure the base64 string contains valid data.
            Patch.model_validate_json(base64.b64decode(val))
        return val

    @model_validator(mode="after")
    def validate_model(self):
        if self.patch and not self.patchType:
            raise ValueError("missing patchType field")
        if self.patchType and not self.patch:
            raise ValueError(f"patchType is {self.patchType} but there is no patch")

        return self


# https://kubernetes.io/docs/reference/config-api/apiserver-admission.v1/#admission-k8s-io-v1-AdmissionRequest
#
# Fields we do not read (kind, operation, userInfo, ...) are kept so that the
# envelope goes back to the API server the way it came in.
class AdmissionRequest(BaseModel):
    model_config = ConfigDict(extra="allow")

    uid: str = ""
    namespace: str = ""
    # Decoded as a Pod by the mutator, not here.
    object: Any = None


# https://kubernetes.io/docs/reference/config-api/apiserver-admission.v1/#admission-k8s-io-v1-AdmissionReview
class AdmissionReview(BaseModel):
    model_config = ConfigDict(extra="allow")

    apiVersion: ApiVersion = ApiVersion.V1BETA1
    kind: Literal["AdmissionReview"] = "AdmissionReview"
    request: AdmissionRequest | None = None
    response: AdmissionResponse | None = None


# https://kubernetes.io/docs/reference/kubernetes-api/common-definitions/quantity/
QUANTITY_RE = re.compile(
    r"^(?P<number>[+-]?(?:[0-9]+(?:\.[0-9]*)?|\.[0-9]+))"
    r"(?P<suffix>Ki|Mi|Gi|Ti|Pi|Ei|n|u|m|k|M|G|T|P|E|[eE][+-]?[0-9]+)?$"
)


def parse_quantity(val: Any) -> str:
    """Return the string form of a resource quantity, raising ValueError if
    it is not a valid quantity.

    Quantities usually arrive as strings ("100m", "1Gi") but a bare JSON
    number is accepted too, the way the API server does."""

    if isinstance(val, bool):
        raise ValueError(f"invalid quantity {val!r}")
    if isinstance(val, (int, float)):
        val = str(val)
    if not isinstance(val, str):
        raise ValueError(f"invalid quantity {val!r}")

    val = val.strip()
    if not QUANTITY_RE.match(val):
        raise ValueError(f"invalid quantity {val!r}")

    return val


def quantity_is_set(val: str | None) -> bool:
    """A quantity counts as set when it is present and not zero. "0", "0m"
    and "0Mi" are all unset."""

    if val is None:
        return False

    match = QUANTITY_RE.match(val)
    if match is None:
        return False

    return Decimal(match.group("number")) != 0


def null_as_empty(val, empty):
    """The API server treats a JSON null like an omitted field."""
    return empty if val is None else val


class ResourceRequirements(BaseModel):
    requests: dict[str, str] = Field(default_factory=dict)
    limits: dict[str, str] = Field(default_factory=dict)

    @field_validator("requests", "limits", mode="before")
    @classmethod
    def validate_quantities(cls, val):
        val = null_as_empty(val, {})
        if not isinstance(val, dict):
            # Let pydantic report the type error.
            return val

        return {
            name: parse_quantity(quantity)
            for name, quantity in val.items()
            if quantity is not None
        }


class Container(BaseModel):
    name: str | None = None
    resources: ResourceRequirements = Field(default_factory=ResourceRequirements)

    @field_validator("resources", mode="before")
    @classmethod
    def validate_resources(cls, val):
        return null_as_empty(val, {})


class PodSpec(BaseModel):
    containers: list[Container] = []

    @field_validator("containers", mode="before")
    @classmethod
    def validate_containers(cls, val):
        return null_as_empty(val, [])


class Pod(BaseModel):
    spec: PodSpec = Field(default_factory=PodSpec)

    @field_validator("spec", mode="before")
    @classmethod
    def validate_spec(cls, val):
        return null_as_empty(val, {})
