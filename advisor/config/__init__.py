"""
advisor config: load from env.

Database: load_postgres_config() (None when persistence is disabled).
Orchestrator behaviour lives in advisor.orchestrator.types.OrchestratorConfig.
"""
from advisor.config.postgres import PostgresConfig, load_postgres_config

__all__ = [
    "PostgresConfig",
    "load_postgres_config",
]
