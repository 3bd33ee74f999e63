"""Aggregation of captured items: sort-merge grouping, projections and scoring."""
from tsql_compass.aggregation.objects import ObjectRollup
from tsql_compass.aggregation.projections import ReportAggregate, ReportAggregator, aggregate
from tsql_compass.aggregation.scoring import ScoreCalculator
from tsql_compass.aggregation.sortmerge import SortMergeGrouper

__all__ = [
    "ObjectRollup",
    "ReportAggregate",
    "ReportAggregator",
    "ScoreCalculator",
    "SortMergeGrouper",
    "aggregate",
]
