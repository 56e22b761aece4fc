"""
Resource kind registry.

Each registered kind carries the attribute checks applied at build time.
Values that are (or contain) references are only checked once resolved, so
validators skip them. Kinds that are not registered get structural checks
only.
"""

from __future__ import annotations

import ipaddress
import json
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, NoReturn

from infralayer.core.errors import ValidationError
from infralayer.graph.references import contains_reference
from infralayer.resources.models import Resource

AttributeValidator = Callable[[Resource], None]


@dataclass(frozen=True)
class KindSchema:
    """Validation metadata for one resource kind."""

    kind: str
    description: str = ""
    required: tuple[str, ...] = ()
    validators: tuple[AttributeValidator, ...] = field(default_factory=tuple)


class KindRegistry:
    """In-memory registry of resource kinds."""

    def __init__(self) -> None:
        self._kinds: Dict[str, KindSchema] = {}

    def register(self, schema: KindSchema) -> None:
        if not schema.kind:
            raise ValueError("Kind name is required")
        self._kinds[schema.kind] = schema

    def get(self, kind: str) -> KindSchema | None:
        return self._kinds.get(kind)

    def list(self) -> List[str]:
        return list(self._kinds.keys())

    def validate(self, resource: Resource) -> None:
        """Raise ValidationError if the resource's attributes are malformed."""
        if not isinstance(resource.attributes, Mapping):
            raise ValidationError(
                f"{resource.address}: attributes must be a mapping",
                {"address": str(resource.address)},
            )
        schema = self._kinds.get(resource.kind)
        if schema is None:
            return
        missing = [name for name in schema.required if resource.attributes.get(name) is None]
        if missing:
            raise ValidationError(
                f"{resource.address}: missing required attribute(s) {', '.join(missing)}",
                {"address": str(resource.address), "missing": missing},
            )
        for validator in schema.validators:
            validator(resource)


def _fail(resource: Resource, message: str) -> NoReturn:
    raise ValidationError(f"{resource.address}: {message}", {"address": str(resource.address)})


def _literal(value: Any) -> bool:
    return value is not None and not contains_reference(value)


def cidr(attribute: str) -> AttributeValidator:
    def check(resource: Resource) -> None:
        value = resource.attributes.get(attribute)
        if not _literal(value):
            return
        try:
            ipaddress.ip_network(str(value), strict=True)
        except ValueError as exc:
            _fail(resource, f"{attribute} {value!r} is not a valid CIDR block ({exc})")

    return check


def non_empty_list(path: str) -> AttributeValidator:
    def check(resource: Resource) -> None:
        value: Any = resource.attributes
        for part in path.split("."):
            if not isinstance(value, Mapping):
                return
            value = value.get(part)
        if not isinstance(value, list) and contains_reference(value):
            return
        if not isinstance(value, list) or not value:
            _fail(resource, f"{path} must be a non-empty list")

    return check


def arn(attribute: str) -> AttributeValidator:
    def check(resource: Resource) -> None:
        value = resource.attributes.get(attribute)
        if _literal(value) and not str(value).startswith("arn:"):
            _fail(resource, f"{attribute} {value!r} is not an ARN")

    return check


def _check_rule(resource: Resource, direction: str, rule: Any) -> None:
    if not isinstance(rule, Mapping):
        _fail(resource, f"{direction} rules must be mappings")
    from_port = rule.get("from_port")
    to_port = rule.get("to_port")
    for name, port in (("from_port", from_port), ("to_port", to_port)):
        if _literal(port) and (not isinstance(port, int) or not -1 <= port <= 65535):
            _fail(resource, f"{direction} {name} {port!r} is out of range")
    if isinstance(from_port, int) and isinstance(to_port, int) and from_port > to_port:
        _fail(resource, f"{direction} from_port {from_port} is greater than to_port {to_port}")
    if rule.get("protocol") is None:
        _fail(resource, f"{direction} rule is missing protocol")
    for block in rule.get("cidr_blocks") or []:
        if _literal(block):
            try:
                ipaddress.ip_network(str(block), strict=True)
            except ValueError:
                _fail(resource, f"{direction} cidr block {block!r} is invalid")


def security_group_rules(resource: Resource) -> None:
    for direction in ("ingress", "egress"):
        rules = resource.attributes.get(direction)
        if rules is None or (not isinstance(rules, list) and contains_reference(rules)):
            continue
        if not isinstance(rules, list):
            _fail(resource, f"{direction} must be a list of rules")
        for rule in rules:
            _check_rule(resource, direction, rule)


def route_table_routes(resource: Resource) -> None:
    for route in resource.attributes.get("route") or []:
        if not isinstance(route, Mapping):
            _fail(resource, "route entries must be mappings")
        block = route.get("cidr_block")
        if block is None:
            _fail(resource, "route entry is missing cidr_block")
        if _literal(block):
            try:
                ipaddress.ip_network(str(block), strict=True)
            except ValueError:
                _fail(resource, f"route cidr_block {block!r} is invalid")


def assume_role_policy(resource: Resource) -> None:
    policy = resource.attributes.get("assume_role_policy")
    if isinstance(policy, str):
        try:
            policy = json.loads(policy)
        except json.JSONDecodeError as exc:
            _fail(resource, f"assume_role_policy is not valid JSON ({exc.msg})")
    if _literal(policy) and not isinstance(policy, Mapping):
        _fail(resource, "assume_role_policy must be a policy document")


def scaling_config(resource: Resource) -> None:
    config = resource.attributes.get("scaling_config")
    if not isinstance(config, Mapping):
        if contains_reference(config):
            return
        _fail(resource, "scaling_config must be a mapping")
    sizes = {name: config.get(name) for name in ("min_size", "desired_size", "max_size")}
    for name, size in sizes.items():
        if size is None:
            _fail(resource, f"scaling_config.{name} is required")
        if _literal(size) and (not isinstance(size, int) or isinstance(size, bool) or size < 0):
            _fail(resource, f"scaling_config.{name} must be a non-negative integer")
    if all(isinstance(size, int) for size in sizes.values()):
        if not sizes["min_size"] <= sizes["desired_size"] <= sizes["max_size"]:
            _fail(
                resource,
                "scaling_config requires min_size <= desired_size <= max_size "
                f"(got {sizes['min_size']} <= {sizes['desired_size']} <= {sizes['max_size']})",
            )


kind_registry = KindRegistry()


def register_kind(
    kind: str,
    *,
    description: str = "",
    required: tuple[str, ...] = (),
    validators: tuple[AttributeValidator, ...] = (),
) -> None:
    kind_registry.register(
        KindSchema(kind=kind, description=description, required=required, validators=validators)
    )


def validate_resource(resource: Resource) -> None:
    kind_registry.validate(resource)


register_kind(
    "aws_vpc",
    description="Virtual private cloud",
    required=("cidr_block",),
    validators=(cidr("cidr_block"),),
)
register_kind(
    "aws_subnet",
    description="VPC subnet",
    required=("vpc_id", "cidr_block"),
    validators=(cidr("cidr_block"),),
)
register_kind("aws_internet_gateway", description="Internet gateway", required=("vpc_id",))
register_kind(
    "aws_route_table",
    description="Route table",
    required=("vpc_id",),
    validators=(route_table_routes,),
)
register_kind(
    "aws_route_table_association",
    description="Subnet to route table association",
    required=("subnet_id", "route_table_id"),
)
register_kind(
    "aws_security_group",
    description="Security group",
    required=("vpc_id",),
    validators=(security_group_rules,),
)
register_kind(
    "aws_iam_role",
    description="IAM role",
    required=("name", "assume_role_policy"),
    validators=(assume_role_policy,),
)
register_kind(
    "aws_iam_role_policy_attachment",
    description="Managed policy attached to a role",
    required=("role", "policy_arn"),
    validators=(arn("policy_arn"),),
)
register_kind(
    "aws_eks_cluster",
    description="EKS control plane",
    required=("name", "role_arn", "vpc_config"),
    validators=(arn("role_arn"), non_empty_list("vpc_config.subnet_ids")),
)
register_kind(
    "aws_eks_node_group",
    description="EKS managed node group",
    required=("cluster_name", "node_group_name", "node_role_arn", "subnet_ids", "scaling_config"),
    validators=(arn("node_role_arn"), non_empty_list("subnet_ids"), scaling_config),
)
