"""Configuration system for DepthStream.

Loads configuration from YAML files with validation and defaults.
The config file location can be overridden with the DEPTHSTREAM_CONFIG
environment variable.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from depthstream.core.schema import SessionConfig


# Default configuration file path
DEFAULT_CONFIG_PATH = Path(__file__).parent.parent.parent / "config" / "depthstream_config.yaml"

SENSOR_BACKENDS = ("realsense", "synthetic")

# Nominal frame period used to build the delay choices (30 fps)
FRAME_PERIOD_MS = 1000.0 / 30.0


@dataclass
class SensorConfig:
    """Configuration for the RGB-D sensor."""

    backend: str = "realsense"
    serial: str = ""
    resolution: tuple[int, int] = (640, 480)
    fps: int = 30
    align_depth: bool = True
    depth_filtering: bool = False
    frame_timeout_ms: int = 1000
    warmup_frames: int = 30
    pixel_size_mm: float = 0.003

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> SensorConfig:
        """Create from dictionary."""
        resolution = tuple(data.get("resolution", [640, 480]))
        return cls(
            backend=data.get("backend", "realsense"),
            serial=data.get("serial", ""),
            resolution=resolution,
            fps=data.get("fps", 30),
            align_depth=data.get("align_depth", True),
            depth_filtering=data.get("depth_filtering", False),
            frame_timeout_ms=data.get("frame_timeout_ms", 1000),
            warmup_frames=data.get("warmup_frames", 30),
            pixel_size_mm=data.get("pixel_size_mm", 0.003),
        )


@dataclass
class RecordingConfig:
    """Configuration for cadence-gated recording."""

    frame_count: int = 10
    inter_frame_delay_ms: int = 33
    max_frame_count: int = 100
    delay_steps: int = 90
    dataset_prefix: str = "Stream"
    max_workers: int = 4

    def session_config(self) -> SessionConfig:
        """Build the SessionConfig for these defaults."""
        return SessionConfig(
            requested_frame_count=self.frame_count,
            min_inter_frame_delay_ms=self.inter_frame_delay_ms,
        )

    def frame_count_options(self) -> List[int]:
        """Selectable frame counts: 1 .. max_frame_count."""
        return list(range(1, self.max_frame_count + 1))

    def delay_options(self) -> List[int]:
        """Selectable delays in whole frame periods: 33, 66, 100 ... ms."""
        return [int((step + 1) * FRAME_PERIOD_MS) for step in range(self.delay_steps)]


@dataclass
class StorageConfig:
    """Configuration for on-disk dataset layout."""

    data_root: str = "data"
    app_dir_name: str = "AppData"
    scratch_dir_name: str = "Datasets"
    archive_name: str = "Archive.zip"
    preferences_path: str = "state/preferences.db"

    def _resolve(self, value: str, base_dir: Optional[Path]) -> Path:
        path = Path(value).expanduser()
        if path.is_absolute():
            return path
        base = base_dir or Path.cwd()
        return base / path

    def get_data_root(self, base_dir: Optional[Path] = None) -> Path:
        """Get absolute path to the data root."""
        return self._resolve(self.data_root, base_dir)

    def get_preferences_path(self, base_dir: Optional[Path] = None) -> Path:
        """Get absolute path to the preferences database."""
        return self._resolve(self.preferences_path, base_dir)


@dataclass
class ServerConfig:
    """Configuration for the export HTTP server."""

    enabled: bool = True
    host: str = "0.0.0.0"
    port: int = 8080
    service_name: str = "DepthStream Web Server"
    advertise: bool = True
    progress_interval_s: float = 0.3


@dataclass
class LoggingConfig:
    """Configuration for logging."""

    level: str = "INFO"
    file: str = ""
    console: bool = True


@dataclass
class DepthStreamConfig:
    """Main configuration container for DepthStream.

    Usage:
        # Load from default location
        config = DepthStreamConfig.load()

        # Load from specific file
        config = DepthStreamConfig.load("/path/to/config.yaml")

        print(config.recording.frame_count)
    """

    name: str = "DepthStream"
    version: str = "0.1.0"

    sensor: SensorConfig = field(default_factory=SensorConfig)
    recording: RecordingConfig = field(default_factory=RecordingConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    server: ServerConfig = field(default_factory=ServerConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    # Source file tracking for reload
    _config_path: Optional[Path] = field(default=None, repr=False)
    _raw_config: Dict[str, Any] = field(default_factory=dict, repr=False)

    @classmethod
    def load(cls, config_path: Optional[str | Path] = None) -> DepthStreamConfig:
        """Load configuration from YAML file.

        Args:
            config_path: Path to config file. If None, uses DEPTHSTREAM_CONFIG
                        or the default location.

        Returns:
            Loaded DepthStreamConfig instance

        Raises:
            FileNotFoundError: If config file doesn't exist
            yaml.YAMLError: If config file is invalid YAML
        """
        if config_path is None:
            config_path = os.environ.get("DEPTHSTREAM_CONFIG", DEFAULT_CONFIG_PATH)

        path = Path(config_path)
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")

        with open(path, "r") as f:
            raw_config = yaml.safe_load(f) or {}

        return cls.from_dict(raw_config, config_path=path)

    @classmethod
    def from_dict(
        cls,
        data: Dict[str, Any],
        config_path: Optional[Path] = None
    ) -> DepthStreamConfig:
        """Create config from dictionary.

        Unknown keys are ignored; missing keys take dataclass defaults.
        """
        framework = data.get("framework", {})

        def parse_section(section_name: str, config_cls: type) -> Any:
            section_data = data.get(section_name) or {}
            valid_fields = {f.name for f in config_cls.__dataclass_fields__.values()}
            filtered = {k: v for k, v in section_data.items() if k in valid_fields}
            return config_cls(**filtered)

        return cls(
            name=framework.get("name", "DepthStream"),
            version=framework.get("version", "0.1.0"),
            sensor=SensorConfig.from_dict(data.get("sensor") or {}),
            recording=parse_section("recording", RecordingConfig),
            storage=parse_section("storage", StorageConfig),
            server=parse_section("server", ServerConfig),
            logging=parse_section("logging", LoggingConfig),
            _config_path=config_path,
            _raw_config=data,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to dictionary."""
        from dataclasses import asdict

        def config_to_dict(obj: Any) -> Any:
            if hasattr(obj, "__dataclass_fields__"):
                return {
                    k: config_to_dict(v)
                    for k, v in asdict(obj).items()
                    if not k.startswith("_")
                }
            elif isinstance(obj, (list, tuple)):
                return [config_to_dict(item) for item in obj]
            return obj

        return {
            "framework": {"name": self.name, "version": self.version},
            "sensor": config_to_dict(self.sensor),
            "recording": config_to_dict(self.recording),
            "storage": config_to_dict(self.storage),
            "server": config_to_dict(self.server),
            "logging": config_to_dict(self.logging),
        }

    def save(self, path: Optional[str | Path] = None) -> None:
        """Save configuration to YAML file.

        Raises:
            ValueError: If no path specified and no source path known
        """
        save_path = Path(path) if path else self._config_path
        if save_path is None:
            raise ValueError("No save path specified and no source path known")

        save_path.parent.mkdir(parents=True, exist_ok=True)
        with open(save_path, "w") as f:
            yaml.safe_dump(self.to_dict(), f, default_flow_style=False, sort_keys=False)

    def reload(self) -> DepthStreamConfig:
        """Reload configuration from source file.

        Raises:
            ValueError: If no source path known
        """
        if self._config_path is None:
            raise ValueError("No source config path known for reload")
        return DepthStreamConfig.load(self._config_path)

    @property
    def base_dir(self) -> Optional[Path]:
        """Directory relative storage paths resolve against."""
        if self._config_path is None:
            return None
        return self._config_path.parent

    def validate(self) -> List[str]:
        """Validate configuration and return list of issues.

        Returns:
            List of validation error messages (empty if valid)
        """
        errors = []

        if self.sensor.backend not in SENSOR_BACKENDS:
            errors.append(f"Unknown sensor backend: {self.sensor.backend}")

        if self.sensor.fps <= 0:
            errors.append("Sensor FPS must be positive")

        if len(self.sensor.resolution) != 2 or min(self.sensor.resolution) <= 0:
            errors.append("Sensor resolution must be two positive integers")

        rec = self.recording
        if not (1 <= rec.frame_count <= rec.max_frame_count):
            errors.append(f"Frame count must be between 1 and {rec.max_frame_count}")

        if rec.inter_frame_delay_ms < 0:
            errors.append("Inter-frame delay must be non-negative")

        if rec.max_workers < 1:
            errors.append("Persistence worker count must be at least 1")

        if not rec.dataset_prefix:
            errors.append("Dataset prefix must not be empty")

        if not (0 <= self.server.port <= 65535):
            errors.append("Server port must be between 0 and 65535")

        if self.server.progress_interval_s <= 0:
            errors.append("Progress interval must be positive")

        return errors


def get_default_config() -> DepthStreamConfig:
    """Get default configuration without loading from file.

    Useful for testing or when config file is not available.
    """
    return DepthStreamConfig()
