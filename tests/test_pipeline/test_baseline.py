"""Tests for the baseline CSV loader."""

import pytest

from campwatch.pipeline.baseline import load_baseline, slugify
from campwatch.telemetry.errors import ParseError

HEADER = "camp_name,website,min_age,max_age,price_min,price_max,hours,extended_care,contact_email,contact_phone\n"


def _write(tmp_path, body):
    path = tmp_path / "baseline.csv"
    path.write_text(HEADER + body, encoding="utf-8")
    return path


class TestLoadBaseline:
    def test_parses_rows(self, tmp_path):
        path = _write(
            tmp_path,
            'Zoo Camp,zoo.example/camp,5,12,"$1,200",350,9-3,Yes,camp@zoo.example,555-1234\n',
        )
        [record] = load_baseline(path)
        assert record.id == "zoo-camp"
        assert record.base_url == "https://zoo.example/camp"
        assert record.baseline.price_min == 1200
        assert record.baseline.max_age == 12
        assert record.baseline.extended_care == "Yes"

    def test_blank_cells_and_unparsable_numbers(self, tmp_path):
        path = _write(tmp_path, "Art Camp,https://art.example,,n/a,,,,,,\n")
        [record] = load_baseline(path)
        assert record.baseline.min_age is None
        assert record.baseline.max_age is None
        assert record.baseline.hours is None

    def test_nameless_and_duplicate_rows_skipped(self, tmp_path):
        path = _write(
            tmp_path,
            ",https://nobody.example,,,,,,,,\n"
            "Zoo Camp,https://zoo.example,,,,,,,,\n"
            "Zoo Camp!,https://zoo2.example,,,,,,,,\n",
        )
        records = load_baseline(path)
        assert [r.base_url for r in records] == ["https://zoo.example"]

    def test_missing_columns(self, tmp_path):
        path = tmp_path / "baseline.csv"
        path.write_text("camp_name,website\nZoo Camp,https://zoo.example\n")
        with pytest.raises(ParseError, match="missing columns"):
            load_baseline(path)

    def test_missing_file(self, tmp_path):
        with pytest.raises(ParseError):
            load_baseline(tmp_path / "nope.csv")


def test_slugify():
    assert slugify("Bob's Zoo Camp!") == "bob-s-zoo-camp"
