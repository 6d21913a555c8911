"""
Orchestrators composing provider calls per site and per range.
"""

from .comparison import ComparisonOrchestrator, ComparisonResult, ComparisonSide
from .dashboard import DashboardAggregator, DashboardState
from .detail import WebsiteDetail, WebsiteDetailLoader
from .parallel import parallel_queries

__all__ = [
    "DashboardAggregator", "DashboardState",
    "ComparisonOrchestrator", "ComparisonResult", "ComparisonSide",
    "WebsiteDetailLoader", "WebsiteDetail",
    "parallel_queries",
]
