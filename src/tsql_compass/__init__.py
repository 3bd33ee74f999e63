"""T-SQL compatibility assessment.

Classifies SQL Server T-SQL constructs against a target dialect engine and
aggregates the captured findings into a scored compatibility report.
"""

__version__ = "0.3.0"
