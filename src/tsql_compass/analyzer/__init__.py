"""T-SQL batch analysis: batch splitting, declaration pass and classification pass."""
from tsql_compass.analyzer.batches import Batch, read_sql_file, split_batches
from tsql_compass.analyzer.classifier import BatchClassifier
from tsql_compass.analyzer.declarations import declare_symbols
from tsql_compass.analyzer.rules import FeatureRuleset, load_feature_rules

__all__ = [
    "Batch",
    "BatchClassifier",
    "FeatureRuleset",
    "declare_symbols",
    "load_feature_rules",
    "read_sql_file",
    "split_batches",
]
