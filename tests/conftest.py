"""Shared pytest fixtures for all tests."""
import pytest

from tsql_compass.capture.records import CaptureRecord
from tsql_compass.config import CompassConfig
from tsql_compass.layout import ReportLayout
from tsql_compass.resolver import BATCH_CONTEXT
from tsql_compass.session import AnalysisSession
from tsql_compass.status import Status


@pytest.fixture
def report_root(tmp_path):
    """Report root directory inside the test's temporary directory."""
    return tmp_path / "reports"


@pytest.fixture
def config(report_root):
    return CompassConfig(target_version="2.4", report_root=str(report_root))


@pytest.fixture
def layout(report_root):
    return ReportLayout(report_root, "demo")


@pytest.fixture
def session(layout, config):
    return AnalysisSession(layout, config)


@pytest.fixture
def write_sql(tmp_path):
    """Write a T-SQL input file and return its path."""
    def _write(name: str, text: str, encoding: str = "utf-8"):
        path = tmp_path / "input" / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(text.encode(encoding))
        return path
    return _write


@pytest.fixture
def make_record():
    """Build a CaptureRecord with sensible defaults."""
    def _make(item="MERGE", status=Status.NOT_SUPPORTED, group="DML", line_nr=1,
              app_name="app1", src_file="a.sql", batch_nr=1, line_nr_in_file=1,
              context=BATCH_CONTEXT, sub_context="", item_detail="", misc=""):
        return CaptureRecord(
            item=item,
            item_detail=item_detail,
            group=group,
            status=status,
            line_nr=line_nr,
            app_name=app_name,
            src_file=src_file,
            batch_nr=batch_nr,
            line_nr_in_file=line_nr_in_file,
            context=context,
            sub_context=sub_context,
            misc=misc,
        )
    return _make


SAMPLE_SCRIPT = """USE DB1
GO
CREATE PROCEDURE dbo.p1
AS
SELECT dbo.fn(1) FROM dbo.t WITH (NOLOCK)
GO
CREATE FUNCTION dbo.fn(@x INT) RETURNS INT
AS BEGIN RETURN @x END
GO
CREATE TABLE dbo.t (id INT NOT NULL PRIMARY KEY, c dbo.phone, total AS id * 2)
GO
CREATE TYPE dbo.phone FROM varchar(20)
GO
"""


@pytest.fixture
def sample_script():
    """A script whose first batches reference objects declared further down."""
    return SAMPLE_SCRIPT
