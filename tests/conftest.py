"""Root test configuration."""

import logging
from pathlib import Path

import pytest
import structlog
from infralayer.config import Settings
from infralayer.providers import InMemoryCloudProvider
from infralayer.resources import PerIndex, Ref, ResourceDeclaration
from infralayer.state import InMemoryStateStore

EXAMPLES_DIR = Path(__file__).resolve().parent.parent / "examples"


def pytest_configure(config):
    """Configure structlog for tests to suppress debug/info output."""
    logging.basicConfig(level=logging.WARNING, force=True)
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.processors.add_log_level,
            structlog.processors.format_exc_info,
            structlog.dev.ConsoleRenderer(),
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )


def network_declarations(
    vpc_cidr: str = "10.0.0.0/16",
    subnets: int = 2,
    vpc_tags: dict[str, str] | None = None,
) -> list[ResourceDeclaration]:
    """VPC, counted subnets, a route table and one association per subnet."""
    cidrs = [f"10.0.{i + 1}.0/24" for i in range(subnets)]
    vpc: dict = {"cidr_block": vpc_cidr}
    if vpc_tags:
        vpc["tags"] = vpc_tags
    return [
        ResourceDeclaration("aws_vpc", "main", vpc),
        ResourceDeclaration(
            "aws_subnet",
            "public",
            {"vpc_id": Ref("aws_vpc.main", "id"), "cidr_block": PerIndex(cidrs)},
            count=subnets,
        ),
        ResourceDeclaration(
            "aws_route_table",
            "public",
            {"vpc_id": Ref("aws_vpc.main", "id"), "route": [{"cidr_block": "0.0.0.0/0"}]},
        ),
        ResourceDeclaration(
            "aws_route_table_association",
            "public",
            {
                "subnet_id": Ref("aws_subnet.public[count.index]", "id"),
                "route_table_id": Ref("aws_route_table.public", "id"),
            },
            count=subnets,
        ),
    ]


@pytest.fixture
def provider():
    """Fresh in-memory cloud provider."""
    return InMemoryCloudProvider()


@pytest.fixture
def store():
    """Empty in-memory state store."""
    return InMemoryStateStore()


@pytest.fixture
def settings():
    """Settings with no commit backoff so retry tests stay fast."""
    return Settings(
        max_parallelism=4,
        state_commit_attempts=3,
        state_commit_backoff_seconds=0,
    )


@pytest.fixture
def eks_declaration_path():
    return EXAMPLES_DIR / "eks_cluster.yaml"


@pytest.fixture
def network():
    """Factory for the VPC/subnet/route table declaration set."""
    return network_declarations
