"""
Configuration for InsightFlow.
"""
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

from .core.dates import DateRangePreset

logger = logging.getLogger(__name__)

# Above this the UI visibly lags after an account switch
MAX_RECOMMENDED_SWITCH_DELAY = 2.0

ENV_PREFIX = "INSIGHTFLOW_"


class ConfigError(ValueError):
    """Raised when a configuration value is out of range."""
    pass


@dataclass
class InsightConfig:
    """Configuration for one application instance.

    Usage:
        config = InsightConfig(data_dir=Path("~/.insightflow").expanduser())
        context = AppContext.create(config)
    """

    data_dir: Path = field(default_factory=lambda: Path.home() / ".insightflow")

    # Network timeouts (seconds)
    request_timeout: float = 30.0
    auth_timeout: float = 15.0
    realtime_timeout: float = 10.0

    # Delay between writing credentials and broadcasting an account change
    switch_delay: float = 0.3

    # Dashboard behaviour
    breakdown_limit: int = 10
    default_range: str = DateRangePreset.THIS_WEEK.value

    def __post_init__(self):
        self.data_dir = Path(self.data_dir)
        self._validate()

    def _validate(self) -> None:
        for name in ("request_timeout", "auth_timeout", "realtime_timeout"):
            if getattr(self, name) <= 0:
                raise ConfigError(f"{name} must be positive, got {getattr(self, name)}")

        if self.switch_delay < 0:
            raise ConfigError(f"switch_delay cannot be negative, got {self.switch_delay}")
        if self.switch_delay > MAX_RECOMMENDED_SWITCH_DELAY:
            logger.warning(
                f"switch_delay of {self.switch_delay}s is longer than the "
                f"recommended {MAX_RECOMMENDED_SWITCH_DELAY}s"
            )

        if self.breakdown_limit < 1:
            raise ConfigError(f"breakdown_limit must be at least 1, got {self.breakdown_limit}")

        try:
            preset = DateRangePreset(self.default_range)
        except ValueError:
            raise ConfigError(f"Unknown default_range '{self.default_range}'") from None
        if preset is DateRangePreset.CUSTOM:
            raise ConfigError("default_range cannot be 'custom'")

    @property
    def accounts_path(self) -> Path:
        return self.data_dir / "accounts.json"

    @property
    def companion_path(self) -> Path:
        """Account summaries read by the widget process."""
        return self.data_dir / "widget_accounts.json"

    @property
    def secrets_path(self) -> Path:
        return self.data_dir / "secrets.json"

    @property
    def cache_dir(self) -> Path:
        return self.data_dir / "analytics_cache"

    @classmethod
    def from_env(cls, environ: dict[str, str] | None = None) -> "InsightConfig":
        """Build a config from INSIGHTFLOW_* environment variables."""
        env = os.environ if environ is None else environ
        kwargs = {}

        if env.get(f"{ENV_PREFIX}DATA_DIR"):
            kwargs["data_dir"] = Path(env[f"{ENV_PREFIX}DATA_DIR"]).expanduser()

        float_fields = ("request_timeout", "auth_timeout", "realtime_timeout", "switch_delay")
        for name in float_fields:
            raw = env.get(f"{ENV_PREFIX}{name.upper()}")
            if raw:
                try:
                    kwargs[name] = float(raw)
                except ValueError:
                    raise ConfigError(f"{ENV_PREFIX}{name.upper()} must be a number, got '{raw}'") from None

        raw_limit = env.get(f"{ENV_PREFIX}BREAKDOWN_LIMIT")
        if raw_limit:
            try:
                kwargs["breakdown_limit"] = int(raw_limit)
            except ValueError:
                raise ConfigError(f"{ENV_PREFIX}BREAKDOWN_LIMIT must be an integer, got '{raw_limit}'") from None

        if env.get(f"{ENV_PREFIX}DEFAULT_RANGE"):
            kwargs["default_range"] = env[f"{ENV_PREFIX}DEFAULT_RANGE"]

        return cls(**kwargs)
