"""
Tests for the command-line tools that do not need a running server.
"""

import json
import random
from collections import Counter
from datetime import datetime, timezone

from typer.testing import CliRunner

from internet_mood.aggregation import parse_timestamp
from internet_mood.cli import SEED_COUNTRIES, SEED_MOODS, app, build_seed

FIXED_NOW = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)

runner = CliRunner()


class TestSeed:
    """Test suite for synthetic seed data."""

    def test_build_seed(self):
        records = build_seed(600, now=FIXED_NOW, rng=random.Random(7))

        assert len(records) == 600
        assert all(record.emoji in SEED_MOODS for record in records)
        for record in records:
            stamp = parse_timestamp(record.timestamp)
            assert stamp is not None
            assert (FIXED_NOW - stamp).days < 14

        known = {code for pool in SEED_COUNTRIES.values() for code in pool}
        per_country = Counter(record.country for record in records)
        assert set(per_country) <= known
        oceania = sum(per_country[code] for code in SEED_COUNTRIES["Oceania"])
        assert oceania == 30

    def test_small_counts_add_up(self):
        for count in (1, 2, 3, 7, 11):
            assert len(build_seed(count, now=FIXED_NOW, rng=random.Random(count))) == count

    def test_dry_run(self):
        result = runner.invoke(app, ["seed", "--count", "30", "--dry-run"])

        assert result.exit_code == 0
        preview = json.loads(result.output)
        assert len(preview) == 25
        assert {"emoji", "timestamp", "country", "reason"} <= set(preview[0])
