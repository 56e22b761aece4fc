"""
In-memory cloud provider.

Simulates the AWS network and EKS kinds closely enough to exercise the
engine: generated ids and ARNs, immutable attributes, and a
``DependencyViolation`` when deleting an object another live object still
references. Supports fault injection and artificial latency for tests.
"""

from __future__ import annotations

import asyncio
import copy
import itertools
from dataclasses import dataclass, field
from typing import Any, Callable, Collection, Iterator, Mapping

import structlog

from infralayer.core.errors import NotFoundError, ProviderError, UpdateUnsupported
from infralayer.providers.base import ProviderResourceSchema, SchemaProviderAdapter

logger = structlog.get_logger()

ACCOUNT_ID = "123456789012"

AWS_SCHEMAS = (
    ProviderResourceSchema("aws_vpc", "VPC", "vpc", frozenset({"cidr_block"})),
    ProviderResourceSchema(
        "aws_subnet", "Subnet", "subnet", frozenset({"vpc_id", "cidr_block", "availability_zone"})
    ),
    ProviderResourceSchema("aws_internet_gateway", "Internet gateway", "igw"),
    ProviderResourceSchema("aws_route_table", "Route table", "rtb", frozenset({"vpc_id"})),
    ProviderResourceSchema(
        "aws_route_table_association",
        "Route table association",
        "rtbassoc",
        frozenset({"subnet_id", "route_table_id"}),
    ),
    ProviderResourceSchema(
        "aws_security_group", "Security group", "sg", frozenset({"vpc_id", "name", "description"})
    ),
    ProviderResourceSchema("aws_iam_role", "IAM role", "", frozenset({"name"})),
    ProviderResourceSchema(
        "aws_iam_role_policy_attachment",
        "IAM role policy attachment",
        "attach",
        frozenset({"role", "policy_arn"}),
    ),
    ProviderResourceSchema(
        "aws_eks_cluster", "EKS cluster", "", frozenset({"name", "role_arn", "vpc_config"})
    ),
    ProviderResourceSchema(
        "aws_eks_node_group",
        "EKS node group",
        "",
        frozenset(
            {"cluster_name", "node_group_name", "node_role_arn", "subnet_ids", "instance_types"}
        ),
    ),
)

FailurePredicate = Callable[[str, str, Mapping[str, Any]], bool]


@dataclass
class CloudObject:
    kind: str
    provider_id: str
    attributes: dict[str, Any]
    outputs: dict[str, Any] = field(default_factory=dict)


class InMemoryCloudProvider(SchemaProviderAdapter):
    """Provider adapter backed by a dict of simulated cloud objects."""

    name = "memory"

    def __init__(
        self,
        *,
        region: str = "us-east-1",
        fail_on: Mapping[str, Collection[str]] | None = None,
        fail_when: FailurePredicate | None = None,
        unsupported_updates: Collection[str] = (),
        latency: float = 0.0,
    ) -> None:
        super().__init__(AWS_SCHEMAS)
        self.region = region
        self.fail_on = {op: set(kinds) for op, kinds in (fail_on or {}).items()}
        self.fail_when = fail_when
        self.unsupported_updates = set(unsupported_updates)
        self.latency = latency
        self.calls: list[tuple[str, str, str]] = []
        self.max_in_flight = 0
        self._in_flight = 0
        self._objects: dict[str, CloudObject] = {}
        self._counter = itertools.count(1)

    @property
    def objects(self) -> dict[str, CloudObject]:
        return dict(self._objects)

    def find(self, kind: str) -> list[CloudObject]:
        return [obj for obj in self._objects.values() if obj.kind == kind]

    def forget(self, provider_id: str) -> None:
        """Remove an object behind the engine's back (out-of-band deletion)."""
        self._objects.pop(provider_id, None)

    async def create(self, kind: str, attributes: Mapping[str, Any]) -> tuple[str, dict[str, Any]]:
        async with self._call("create", kind, attributes):
            provider_id = self._new_id(kind, attributes)
            if provider_id in self._objects:
                raise ProviderError(
                    f"{kind} {provider_id} already exists",
                    {"kind": kind, "provider_id": provider_id, "code": "AlreadyExists"},
                )
            obj = CloudObject(kind=kind, provider_id=provider_id, attributes=copy.deepcopy(dict(attributes)))
            obj.outputs = self._outputs(obj)
            self._objects[provider_id] = obj
            self.calls.append(("create", kind, provider_id))
            return provider_id, copy.deepcopy(obj.outputs)

    async def read(self, kind: str, provider_id: str) -> dict[str, Any]:
        async with self._call("read", kind, {}):
            self.calls.append(("read", kind, provider_id))
            return copy.deepcopy(self._get(kind, provider_id).outputs)

    async def update(
        self, kind: str, provider_id: str, attributes: Mapping[str, Any]
    ) -> dict[str, Any]:
        async with self._call("update", kind, attributes):
            obj = self._get(kind, provider_id)
            changed = {
                key
                for key in set(obj.attributes) | set(attributes)
                if obj.attributes.get(key) != attributes.get(key)
            }
            if kind in self.unsupported_updates or self.requires_replace(kind, changed):
                raise UpdateUnsupported(
                    f"{kind} {provider_id} cannot be updated in place",
                    {"kind": kind, "provider_id": provider_id, "changed": sorted(changed)},
                )
            obj.attributes = copy.deepcopy(dict(attributes))
            obj.outputs = self._outputs(obj)
            self.calls.append(("update", kind, provider_id))
            return copy.deepcopy(obj.outputs)

    async def delete(self, kind: str, provider_id: str) -> None:
        async with self._call("delete", kind, {}):
            obj = self._get(kind, provider_id)
            dependents = sorted(
                other.provider_id
                for other in self._objects.values()
                if other.provider_id != provider_id and _mentions(other.attributes, obj)
            )
            if dependents:
                raise ProviderError(
                    f"DependencyViolation: {kind} {provider_id} is still used by "
                    f"{', '.join(dependents)}",
                    {"kind": kind, "provider_id": provider_id, "code": "DependencyViolation"},
                )
            del self._objects[provider_id]
            self.calls.append(("delete", kind, provider_id))

    def _get(self, kind: str, provider_id: str) -> CloudObject:
        obj = self._objects.get(provider_id)
        if obj is None or obj.kind != kind:
            raise NotFoundError(
                f"{kind} {provider_id} not found", {"kind": kind, "provider_id": provider_id}
            )
        return obj

    def _call(self, operation: str, kind: str, attributes: Mapping[str, Any]) -> _CallGuard:
        return _CallGuard(self, operation, kind, attributes)

    def _check_failure(self, operation: str, kind: str, attributes: Mapping[str, Any]) -> None:
        injected = kind in self.fail_on.get(operation, set())
        if not injected and self.fail_when is not None:
            injected = self.fail_when(operation, kind, attributes)
        if injected:
            raise ProviderError(
                f"Injected {operation} failure for {kind}",
                {"kind": kind, "operation": operation, "code": "InjectedFailure"},
            )

    def _new_id(self, kind: str, attributes: Mapping[str, Any]) -> str:
        # IAM roles, EKS clusters and node groups are identified by name
        if kind == "aws_iam_role":
            return str(attributes["name"])
        if kind == "aws_eks_cluster":
            return str(attributes["name"])
        if kind == "aws_eks_node_group":
            return f"{attributes['cluster_name']}:{attributes['node_group_name']}"
        schema = self.schema(kind)
        prefix = schema.id_prefix if schema and schema.id_prefix else kind.rsplit("_", 1)[-1]
        return f"{prefix}-{next(self._counter):08x}"

    def _outputs(self, obj: CloudObject) -> dict[str, Any]:
        outputs = copy.deepcopy(obj.attributes)
        outputs["id"] = obj.provider_id
        outputs["arn"] = self._arn(obj)
        if obj.kind == "aws_iam_role":
            outputs["name"] = obj.provider_id
        elif obj.kind == "aws_eks_cluster":
            outputs["endpoint"] = f"https://{obj.provider_id}.gr7.{self.region}.eks.amazonaws.com"
            outputs["status"] = "ACTIVE"
            outputs["certificate_authority"] = {"data": f"ca-{obj.provider_id}"}
        elif obj.kind == "aws_eks_node_group":
            outputs["status"] = "ACTIVE"
        elif obj.kind == "aws_vpc":
            outputs["main_route_table_id"] = f"rtb-main-{obj.provider_id}"
        return outputs

    def _arn(self, obj: CloudObject) -> str:
        if obj.kind == "aws_iam_role":
            return f"arn:aws:iam::{ACCOUNT_ID}:role/{obj.provider_id}"
        if obj.kind == "aws_eks_cluster":
            return f"arn:aws:eks:{self.region}:{ACCOUNT_ID}:cluster/{obj.provider_id}"
        if obj.kind == "aws_eks_node_group":
            cluster, group = obj.provider_id.split(":", 1)
            return f"arn:aws:eks:{self.region}:{ACCOUNT_ID}:nodegroup/{cluster}/{group}"
        resource = obj.kind.removeprefix("aws_").replace("_", "-")
        return f"arn:aws:ec2:{self.region}:{ACCOUNT_ID}:{resource}/{obj.provider_id}"


class _CallGuard:
    """Async context applying latency, failure injection and in-flight tracking."""

    def __init__(
        self,
        provider: InMemoryCloudProvider,
        operation: str,
        kind: str,
        attributes: Mapping[str, Any],
    ) -> None:
        self._provider = provider
        self._operation = operation
        self._kind = kind
        self._attributes = attributes

    async def __aenter__(self) -> None:
        provider = self._provider
        provider._in_flight += 1
        provider.max_in_flight = max(provider.max_in_flight, provider._in_flight)
        try:
            await asyncio.sleep(provider.latency)
            provider._check_failure(self._operation, self._kind, self._attributes)
        except BaseException:
            provider._in_flight -= 1
            raise

    async def __aexit__(self, *exc_info: Any) -> None:
        self._provider._in_flight -= 1


def _iter_strings(value: Any) -> Iterator[str]:
    if isinstance(value, str):
        yield value
    elif isinstance(value, Mapping):
        for item in value.values():
            yield from _iter_strings(item)
    elif isinstance(value, (list, tuple)):
        for item in value:
            yield from _iter_strings(item)


def _mentions(attributes: Mapping[str, Any], obj: CloudObject) -> bool:
    identifiers = {obj.provider_id, obj.outputs.get("arn")}
    return any(text in identifiers for text in _iter_strings(attributes))
