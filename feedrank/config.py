"""
Configuration management using Pydantic BaseSettings.
All values can be overridden via environment variables or a .env file.
"""
from typing import Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # ── TiDB (MySQL-protocol compatible) ───────────────────────────────────
    tidb_host: str = "tidb"
    tidb_port: int = 4000
    tidb_user: str = "root"
    tidb_password: str = ""
    tidb_database: str = "social_feed"
    # Full SQLAlchemy URL; takes precedence over the TiDB parts when set
    # (e.g. sqlite+aiosqlite:///./feedrank.db for local runs).
    database_url: Optional[str] = None

    @property
    def tidb_url(self) -> str:
        return (
            f"mysql+aiomysql://{self.tidb_user}:{self.tidb_password}"
            f"@{self.tidb_host}:{self.tidb_port}/{self.tidb_database}"
        )

    @property
    def db_url(self) -> str:
        return self.database_url or self.tidb_url

    # ── Redis ──────────────────────────────────────────────────────────────
    redis_host: str = "redis"
    redis_port: int = 6379
    viewed_stories_ttl: int = 3600       # 1h per-user viewed-stories set
    preferences_cache_ttl: int = 7200    # 2h aggregated interaction preferences

    # ── Kafka ──────────────────────────────────────────────────────────────
    kafka_bootstrap_servers: str = "kafka:9092"
    kafka_topic_interactions: str = "interactions"
    kafka_consumer_group: str = "interaction-worker"

    # ── Feed assembly ──────────────────────────────────────────────────────
    feed_page_size: int = 20
    feed_window_days: int = 30           # fyp / explore candidate window
    trending_window_days: int = 7
    feed_overfetch_factor: int = 3       # candidates per ranked slot requested
    feed_max_pages: int = 10             # deepest page the scored window covers
    feed_max_candidates: int = 1000      # hard cap on the scored window
    feed_score_write_back: bool = False  # copy computed scores onto the rows

    # ── Interaction store ──────────────────────────────────────────────────
    interaction_half_life_days: float = 7.0

    # ── Suggestions ────────────────────────────────────────────────────────
    suggestion_default_limit: int = 10
    suggestion_mutual_pool_cap: int = 100
    suggestion_popular_pool_cap: int = 200
    suggestion_active_window_days: int = 30
    suggestion_preference_tags: int = 5
    # Clamp for ln(followers + 1) * 10; None leaves it unbounded
    suggestion_follower_score_cap: Optional[float] = 25.0

    # ── Observability ──────────────────────────────────────────────────────
    otel_exporter_otlp_endpoint: str = "http://jaeger:4317"
    service_name: str = "feedrank"
    environment: str = "development"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


settings = Settings()
