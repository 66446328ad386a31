"""Configuration management for graph-loader."""

from __future__ import annotations

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict, TomlConfigSettingsSource

from graph_loader.batching import DEFAULT_BATCH_SIZE
from graph_loader.records import LoadMode

CONFIG_FILENAME = "graph-loader.toml"


def _find_config_toml(start: Path | None = None) -> Path | None:
    """Walk up from *start* (default: cwd) looking for ``graph-loader.toml``."""
    current = (start or Path.cwd()).resolve()
    while True:
        candidate = current / CONFIG_FILENAME
        if candidate.is_file():
            return candidate
        parent = current.parent
        if parent == current:
            return None
        current = parent


class GraphDBSettings(BaseSettings):
    """Graph database (Bolt) connection settings."""

    model_config = SettingsConfigDict(env_prefix="GRAPH_LOADER_GRAPH__")

    host: str = Field(default="localhost", description="Graph database host.")
    port: int = Field(default=7687, description="Bolt port.")
    username: str = Field(default="", description="Username (empty = no auth).")
    password: str = Field(default="", description="Password.")
    database: str = Field(default="", description="Target graph/database name. Empty uses the server default.")
    query_timeout_s: float = Field(default=30.0, description="Timeout in seconds for read queries.")
    write_timeout_s: float = Field(default=300.0, description="Timeout in seconds for batch write queries.")

    @property
    def uri(self) -> str:
        return f"bolt://{self.host}:{self.port}"


class LoadSettings(BaseSettings):
    """Bulk load behaviour."""

    model_config = SettingsConfigDict(env_prefix="GRAPH_LOADER_LOAD__")

    csv_dir: Path = Field(default=Path("csv_output"), description="Directory containing the CSV files.")
    batch_size: int = Field(default=DEFAULT_BATCH_SIZE, ge=1, description="Records per synthesized query.")
    progress_interval: int = Field(
        default=1000, ge=0, description="Report progress every N records (0 disables progress reporting)."
    )
    mode: LoadMode = Field(default=LoadMode.INSERT, description="'insert' (CREATE) or 'upsert' (MERGE by id).")
    fail_fast: bool = Field(default=False, description="Abort the run as soon as a batch reports failed records.")
    strict_labels: bool = Field(
        default=True, description="Abort when edge files reference labels that no node file provides."
    )
    sample_records: int = Field(
        default=3, ge=0, description="Records of the first batch logged at debug level; also the sample node limit."
    )


class ObservabilitySettings(BaseSettings):
    """OpenTelemetry observability settings (OTLP exporter requires the ``[otel]`` extra)."""

    model_config = SettingsConfigDict(env_prefix="GRAPH_LOADER_OBSERVABILITY__")

    enabled: bool = Field(default=False, description="Enable OpenTelemetry tracing and metrics.")
    exporter: str = Field(default="otlp", description="Exporter type: 'otlp', 'console', or 'none'.")
    endpoint: str = Field(default="http://localhost:4317", description="OTLP collector endpoint.")
    service_name: str = Field(default="graph-loader", description="OTel service.name resource attribute.")
    sample_rate: float = Field(default=1.0, description="Trace sample rate (1.0 = all, 0.1 = 10%).")


class LoaderSettings(BaseSettings):
    """Root configuration for graph-loader."""

    model_config = SettingsConfigDict(
        toml_file=CONFIG_FILENAME,
        env_prefix="GRAPH_LOADER_",
        env_nested_delimiter="__",
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,  # noqa: ARG003
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        toml_path = _find_config_toml()
        sources: list[PydanticBaseSettingsSource] = [init_settings, env_settings]
        if toml_path:
            sources.append(TomlConfigSettingsSource(settings_cls, toml_file=toml_path))
        sources.append(file_secret_settings)
        return tuple(sources)

    graph: GraphDBSettings = Field(default_factory=GraphDBSettings)
    load: LoadSettings = Field(default_factory=LoadSettings)
    observability: ObservabilitySettings = Field(default_factory=ObservabilitySettings)
