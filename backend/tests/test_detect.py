"""Tests for format detection."""

import pytest

from astrolabe.core.errors import FetchError
from astrolabe.ingest.detect import (
    FormatDetector,
    detect_remote,
    format_from_content_type,
    format_from_filename,
    format_from_url,
    is_url,
)
from astrolabe.models.entities import Confidence, DatasetFormat

from conftest import FakeResponse


@pytest.fixture
def detector() -> FormatDetector:
    return FormatDetector()


def test_csv_with_uniform_rows_is_high(detector: FormatDetector) -> None:
    detection = detector.detect("a,b,c\n1,2,3\n4,5,6")
    assert (detection.format, detection.confidence) == (DatasetFormat.CSV, Confidence.HIGH)


def test_json_array_of_objects_is_high(detector: FormatDetector) -> None:
    detection = detector.detect('[{"a":1}]')
    assert (detection.format, detection.confidence) == (DatasetFormat.JSON, Confidence.HIGH)
    assert detection.parsed == [{"a": 1}]


def test_tsv_with_uniform_rows_is_high(detector: FormatDetector) -> None:
    detection = detector.detect("a\tb\n1\t2")
    assert (detection.format, detection.confidence) == (DatasetFormat.TSV, Confidence.HIGH)


def test_topology_object_is_topojson(detector: FormatDetector) -> None:
    detection = detector.detect('{"type": "Topology", "objects": {}, "arcs": []}')
    assert (detection.format, detection.confidence) == (DatasetFormat.TOPOJSON, Confidence.HIGH)


def test_other_json_values_are_medium(detector: FormatDetector) -> None:
    detection = detector.detect('{"rows": [1, 2]}')
    assert (detection.format, detection.confidence) == (DatasetFormat.JSON, Confidence.MEDIUM)


def test_ragged_csv_degrades_to_medium(detector: FormatDetector) -> None:
    detection = detector.detect("a,b,c\n1,2\n4,5,6")
    assert (detection.format, detection.confidence) == (DatasetFormat.CSV, Confidence.MEDIUM)


def test_unstructured_text_falls_back_to_low_csv(detector: FormatDetector) -> None:
    detection = detector.detect("just some words")
    assert (detection.format, detection.confidence) == (DatasetFormat.CSV, Confidence.LOW)
    assert detector.detect("").confidence is Confidence.LOW


def test_url_input_defers_format(detector: FormatDetector) -> None:
    detection = detector.detect("  https://example.com/data.csv  ")
    assert detection.is_url
    assert detection.format is None


def test_filename_hint_applies_only_to_inconclusive_content(detector: FormatDetector) -> None:
    hinted = detector.detect("single", filename="values.tsv")
    assert (hinted.format, hinted.confidence) == (DatasetFormat.TSV, Confidence.LOW)
    confident = detector.detect("a,b\n1,2", filename="values.tsv")
    assert confident.format is DatasetFormat.CSV


def test_json_hint_does_not_override_unparseable_content(detector: FormatDetector) -> None:
    detection = detector.detect("not json", filename="broken.json")
    assert detection.format is DatasetFormat.CSV


def test_hint_helpers() -> None:
    assert is_url("http://example.com/x")
    assert not is_url("ftp://example.com/x")
    assert not is_url("a,b\n1,2")
    assert format_from_filename("cities.TOPOJSON") is DatasetFormat.TOPOJSON
    assert format_from_filename("table.txt") is DatasetFormat.TSV
    assert format_from_filename(None) is None
    assert format_from_url("https://example.com/data.csv?x=1") is DatasetFormat.CSV
    assert format_from_url("https://example.com/readme.txt") is None
    assert format_from_content_type("text/csv; charset=utf-8") is DatasetFormat.CSV
    assert format_from_content_type("application/geo+json") is DatasetFormat.JSON
    assert format_from_content_type(None) is None


def test_detect_remote_prefers_content_type(fetcher, fake_session) -> None:
    url = "https://example.com/download"
    fake_session.routes[url] = FakeResponse("a,b\n1,2\n3,4", headers={"content-type": "text/csv"})
    detection = detect_remote(url, fetcher)
    assert detection.format is DatasetFormat.CSV
    assert detection.confidence is Confidence.HIGH
    assert detection.metadata.row_count == 2
    assert detection.metadata.columns == ["a", "b"]


def test_detect_remote_sniffs_topology_behind_json_header(fetcher, fake_session) -> None:
    url = "https://example.com/world.json"
    body = '{"type": "Topology", "objects": {}, "arcs": []}'
    fake_session.routes[url] = FakeResponse(body, headers={"content-type": "application/json"})
    detection = detect_remote(url, fetcher)
    assert detection.format is DatasetFormat.TOPOJSON
    assert detection.metadata.row_count == 1


def test_detect_remote_reports_parse_failures(fetcher, fake_session) -> None:
    url = "https://example.com/data.json"
    fake_session.routes[url] = FakeResponse("<html>oops</html>", headers={"content-type": "application/json"})
    with pytest.raises(FetchError) as excinfo:
        detect_remote(url, fetcher)
    assert excinfo.value.kind == "parse"
