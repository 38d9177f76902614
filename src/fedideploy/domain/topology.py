"""Deployment topology — the fixed set of services and their startup graph.

INVARIANT: The dependency graph is acyclic, every dependency is declared,
and every service that something depends on carries a health check, so a
dependent is never started before its dependencies report healthy.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import networkx as nx
from pydantic import BaseModel, Field, model_validator

if TYPE_CHECKING:
    from fedideploy.domain.deployment import DeploymentConfig

ENV_FILE = ".env.production"

MASTODON_IMAGE = "tootsuite/mastodon"
KAFKA_SENDER_IMAGE = (
    "ghcr.io/rss3-network/mastodon-instance-kit:main-0359d7920db633f14f2c36f831f9ff47bd6aa7f0"
)

# The mastodon and bitnami images both run as this uid and gid.
CONTAINER_UID = 1001
CONTAINER_USER = f"{CONTAINER_UID}:{CONTAINER_UID}"


class HealthCheck(BaseModel):
    """Container health check, rendered as a compose ``healthcheck`` block."""

    model_config = {"frozen": True}

    test: tuple[str, ...]
    interval: str = "10s"
    timeout: str = "5s"
    retries: int = 5
    start_period: str | None = None


class ServiceSpec(BaseModel):
    """One compose service."""

    model_config = {"frozen": True}

    name: str
    image: str
    command: tuple[str, ...] | str | None = None
    restart: str | None = "always"
    user: str | None = None
    env_file: bool = True
    environment: dict[str, str] = Field(default_factory=dict)
    health_check: HealthCheck | None = None
    ports: tuple[str, ...] = ()
    volumes: tuple[str, ...] = ()
    depends_on: tuple[str, ...] = ()
    shm_size: str | None = None
    container_name: str | None = None


class Topology(BaseModel):
    """Ordered collection of services forming one deployment."""

    model_config = {"frozen": True}

    services: tuple[ServiceSpec, ...]

    @model_validator(mode="after")
    def _check_graph(self) -> Topology:
        names = [s.name for s in self.services]
        if len(names) != len(set(names)):
            msg = f"Duplicate service names in topology: {names}"
            raise ValueError(msg)
        known = set(names)
        for spec in self.services:
            unknown = [d for d in spec.depends_on if d not in known]
            if unknown:
                msg = f"Service {spec.name!r} depends on undeclared services: {unknown}"
                raise ValueError(msg)
        graph = self.graph()
        if not nx.is_directed_acyclic_graph(graph):
            cycle = nx.find_cycle(graph)
            msg = f"Dependency cycle in topology: {cycle}"
            raise ValueError(msg)
        for spec in self.services:
            for dep in spec.depends_on:
                if self.get(dep).health_check is None:
                    msg = f"Service {dep!r} is a dependency of {spec.name!r} but has no health check"
                    raise ValueError(msg)
        return self

    def graph(self) -> nx.DiGraph:
        """Edges point from a dependency to its dependent."""
        g = nx.DiGraph()
        for spec in self.services:
            g.add_node(spec.name)
            for dep in spec.depends_on:
                g.add_edge(dep, spec.name)
        return g

    def get(self, name: str) -> ServiceSpec:
        for spec in self.services:
            if spec.name == name:
                return spec
        msg = f"Unknown service: {name!r}"
        raise KeyError(msg)

    @property
    def names(self) -> list[str]:
        return [s.name for s in self.services]

    def startup_order(self) -> list[ServiceSpec]:
        """Topological order, ties broken by declaration order."""
        position = {name: i for i, name in enumerate(self.names)}
        ordered = nx.lexicographical_topological_sort(self.graph(), key=lambda n: position[n])
        return [self.get(name) for name in ordered]


# ---------------------------------------------------------------------------
# The fixed Mastodon deployment
# ---------------------------------------------------------------------------


def build_topology(config: DeploymentConfig, *, image: str = MASTODON_IMAGE) -> Topology:
    """Build the 8-service Mastodon topology for *config*.

    Kafka runs in KRaft mode, so there is no separate ZooKeeper service.
    """
    mastodon_image = f"{image}:{config.mastodon_version}"
    shared_system = ("./public/system:/opt/mastodon/public/system",)
    redis_env = {
        "REDIS_PASSWORD": config.cache_password,
        "REDIS_URL": config.redis_url,
    }

    return Topology(
        services=(
            ServiceSpec(
                name="db",
                image="postgres:14-alpine",
                shm_size="256mb",
                env_file=False,
                health_check=HealthCheck(test=("CMD", "pg_isready", "-U", "mastodon")),
                volumes=("./postgres14:/var/lib/postgresql/data",),
                environment={
                    "POSTGRES_USER": "mastodon",
                    "POSTGRES_PASSWORD": config.db_password,
                    "POSTGRES_DB": "mastodon",
                },
                ports=("127.0.0.1:5432:5432",),
            ),
            ServiceSpec(
                name="redis",
                image="redis:7-alpine",
                env_file=False,
                command=("redis-server", "--requirepass", config.cache_password),
                health_check=HealthCheck(
                    test=("CMD", "redis-cli", "-a", config.cache_password, "ping"),
                ),
                volumes=("./redis:/data",),
                environment={"REDIS_PASSWORD": config.cache_password},
                ports=("127.0.0.1:6379:6379",),
            ),
            ServiceSpec(
                name="web",
                image=mastodon_image,
                user=CONTAINER_USER,
                command="bundle exec puma -C config/puma.rb",
                health_check=HealthCheck(
                    test=(
                        "CMD-SHELL",
                        "wget -q --spider --proxy=off localhost:3000/health || exit 1",
                    ),
                    start_period="60s",
                ),
                ports=("127.0.0.1:3000:3000",),
                depends_on=("db", "redis"),
                volumes=shared_system,
                environment=dict(redis_env),
            ),
            ServiceSpec(
                name="streaming",
                image=mastodon_image,
                user=CONTAINER_USER,
                command=("node", "streaming/index.js"),
                health_check=HealthCheck(
                    test=(
                        "CMD-SHELL",
                        "wget -q --spider --proxy=off localhost:4000/api/v1/streaming/health"
                        " || exit 1",
                    ),
                ),
                ports=("127.0.0.1:4000:4000",),
                depends_on=("db", "redis"),
                volumes=shared_system,
                environment=dict(redis_env),
            ),
            ServiceSpec(
                name="sidekiq",
                image=mastodon_image,
                user=CONTAINER_USER,
                command="bundle exec sidekiq",
                health_check=HealthCheck(
                    test=("CMD-SHELL", "ps aux | grep '[s]idekiq ' || false"),
                ),
                depends_on=("db", "redis"),
                volumes=shared_system,
                environment={"REDIS_PASSWORD": config.cache_password},
            ),
            ServiceSpec(
                name="kafka",
                image="bitnami/kafka:3.7",
                health_check=HealthCheck(
                    test=(
                        "CMD-SHELL",
                        "kafka-topics.sh --bootstrap-server localhost:9092 --list || exit 1",
                    ),
                    start_period="30s",
                ),
                ports=("9092:9092",),
                volumes=("./kafka:/bitnami/kafka",),
            ),
            ServiceSpec(
                name="kafka_sender",
                image=KAFKA_SENDER_IMAGE,
                ports=("127.0.0.1:3001:3001",),
                depends_on=("kafka",),
            ),
            ServiceSpec(
                name="caddy",
                image="caddy:2-alpine",
                container_name="caddy",
                ports=("80:80", "443:443"),
                volumes=(
                    "./Caddyfile:/etc/caddy/Caddyfile:ro",
                    "./caddy/config:/config",
                    "./caddy/data:/data",
                    "./public:/opt/mastodon/public:ro",
                    "./logs:/logs",
                ),
                depends_on=("web", "streaming"),
            ),
        )
    )
