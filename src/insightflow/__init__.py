"""
Unified analytics dashboards over Umami and Plausible.

Usage:
    from insightflow import setup_insightflow

    insight = setup_insightflow(data_dir="~/.insightflow")
    await insight.context.startup()

    account = await insight.context.login(
        "umami",
        "analytics.example.com",
        LoginCredentials(username="admin", password="secret"),
    )
    state = await insight.context.dashboard.refresh(DateRange.from_preset("7d"))

    # Or expose the same operations to a UI shell
    app.include_router(insight.router, prefix="/api/analytics")
"""

from pathlib import Path

from .config import InsightConfig
from .context import AppContext
from .core.dates import DateRange, DateRangePreset
from .core.models import Account, LoginCredentials, ProviderType
from .routes import create_dashboard_router
from .secret_store import SecretStore

__version__ = "0.1.0"
__all__ = [
    "setup_insightflow", "InsightFlow", "AppContext", "InsightConfig",
    "Account", "LoginCredentials", "ProviderType", "DateRange", "DateRangePreset",
]


class InsightFlow:
    """Main interface: the wired context plus its JSON router."""

    def __init__(self, context: AppContext):
        self.context = context
        self.router = create_dashboard_router(context)

    def close(self) -> None:
        self.context.close()


def setup_insightflow(
    data_dir: str | Path | None = None,
    secrets: SecretStore | None = None,
    config: InsightConfig | None = None,
) -> InsightFlow:
    """
    Set up the analytics core.

    Args:
        data_dir: Where accounts, cache and (file) secrets live. Ignored when
                  config is given.
        secrets: Secret store to use; defaults to a JSON file in data_dir.
        config: Full configuration; defaults to INSIGHTFLOW_* environment
                variables.

    Returns:
        InsightFlow instance with context and router
    """
    if config is None:
        config = InsightConfig.from_env()
        if data_dir is not None:
            config.data_dir = Path(data_dir).expanduser()
    return InsightFlow(AppContext.create(config, secrets=secrets))
