"""Tests for TLE parsing."""
import logging
from datetime import datetime, timezone

import pytest

from conftest import ISS_LINE1, ISS_LINE2, ISS_NAME
from rftrack.errors import ParseError
from rftrack.tle import TLE, _implied_decimal, iter_records, parse_tles

HST_LINE1 = "1 20580U 90037B   24001.50000000  .00000764  00000-0  34340-4 0  9998"
HST_LINE2 = "2 20580  28.4700 100.2000 0002500 300.0000  60.0000 15.09000000400000"


class TestTLE:
    def test_parse_iss(self):
        tle = TLE.parse(ISS_LINE1, ISS_LINE2, name=ISS_NAME)
        assert tle.name == ISS_NAME
        assert tle.norad_id == 25544
        assert tle.inclination == pytest.approx(51.6439)
        assert tle.raan == pytest.approx(211.2001)
        assert tle.eccentricity == pytest.approx(0.0007417)
        assert tle.mean_motion == pytest.approx(15.50103472)
        assert tle.bstar == pytest.approx(0.38792e-4)

    def test_epoch(self):
        tle = TLE.parse(ISS_LINE1, ISS_LINE2)
        assert tle.epoch.tzinfo is not None
        assert tle.epoch.year == 2019
        assert tle.epoch.month == 12
        assert tle.epoch.day == 9
        assert tle.epoch.hour == 16

    def test_derived(self):
        tle = TLE.parse(ISS_LINE1, ISS_LINE2)
        assert 400 < tle.altitude < 430
        assert 5500 < tle.period < 5600

    def test_norad_mismatch(self):
        with pytest.raises(ParseError, match="mismatch"):
            TLE.parse(ISS_LINE1, HST_LINE2)

    def test_wrong_line_numbers(self):
        with pytest.raises(ParseError):
            TLE.parse(ISS_LINE2, ISS_LINE1)

    def test_malformed_field(self):
        bad = ISS_LINE2[:8] + "  xx.yyy" + ISS_LINE2[16:]
        with pytest.raises(ParseError):
            TLE.parse(ISS_LINE1, bad)

    def test_checksum_mismatch_warns(self, caplog):
        bad = ISS_LINE1[:68] + "0"
        with caplog.at_level(logging.WARNING, logger="rftrack.tle"):
            TLE.parse(bad, ISS_LINE2)
        assert "Checksum mismatch" in caplog.text

    def test_implied_decimal(self):
        assert _implied_decimal(" 38792-4") == pytest.approx(0.38792e-4)
        assert _implied_decimal("-11606-4") == pytest.approx(-0.11606e-4)
        assert _implied_decimal(" 00000-0") == 0.0
        assert _implied_decimal("") == 0.0


class TestRecords:
    def test_mixed_two_and_three_line(self):
        lines = [
            "",
            f"0 {ISS_NAME}",
            ISS_LINE1,
            ISS_LINE2,
            "   ",
            HST_LINE1,
            HST_LINE2,
        ]
        records = list(iter_records(lines))
        assert records == [(ISS_NAME, ISS_LINE1, ISS_LINE2), (None, HST_LINE1, HST_LINE2)]

    def test_title_without_prefix(self):
        [(title, _, _)] = iter_records(["HUBBLE", HST_LINE1, HST_LINE2])
        assert title == "HUBBLE"

    def test_truncated(self):
        with pytest.raises(ParseError, match="ended"):
            list(iter_records([ISS_NAME, ISS_LINE1]))

    def test_out_of_order(self):
        with pytest.raises(ParseError, match="line 2"):
            list(iter_records([ISS_LINE1, HST_LINE1]))
        with pytest.raises(ParseError, match="line 1"):
            list(iter_records([ISS_NAME, ISS_LINE2]))

    def test_parse_tles(self):
        text = f"{ISS_NAME}\n{ISS_LINE1}\n{ISS_LINE2}\nHUBBLE\n{HST_LINE1}\n{HST_LINE2}\n"
        tles = parse_tles(text)
        assert [t.norad_id for t in tles] == [25544, 20580]
        assert tles[1].epoch == datetime(2024, 1, 1, 12, tzinfo=timezone.utc)
