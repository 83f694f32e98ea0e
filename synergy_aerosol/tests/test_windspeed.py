"""
Tests for the windspeed module.

Tests the windspeed table inversion, the ambiguity test and the complete
glint retrieval from the 3.7 um channel.
"""

import numpy as np
import pytest

from synergy_aerosol import windspeed
from synergy_aerosol.constants import GLINT_NO_DATA
from synergy_aerosol.glint import extrapolate_bt37, glint_reflectance, transmission_37
from synergy_aerosol.lut import LookupTable


# Linear 3.7 um BT-to-radiance table: radiance = (T - 250) / 100
BT_TABLE = ([250.0, 350.0], [0.0, 1.0])


def bt37_for_solar_part(solar, bt11, bt12, meris14, meris15):
    """3.7 um brightness temperature producing a given solar part."""
    thermal = (extrapolate_bt37(bt11, bt12) - 250.0) / 100.0
    t0, _ = transmission_37(meris14, meris15)
    return 250.0 + 100.0 * (thermal + solar * t0)


class TestConfig:
    """Tests for glint retrieval settings."""

    def test_defaults(self):
        """Test default table and channels."""
        config = windspeed.GlintRetrievalConfig()
        assert config.table_size == 151
        assert config.windspeed_range == (1.0, 14.0)
        assert config.glint_channels == ("meris_865", "aatsr_nadir_870")

    def test_unknown_channel(self):
        """Test unknown glint channel."""
        with pytest.raises(ValueError, match="Unknown ocean channel"):
            windspeed.GlintRetrievalConfig(glint_channels=["meris_412"])

    def test_invalid_range(self):
        """Test an empty windspeed range."""
        with pytest.raises(ValueError, match="windspeed range"):
            windspeed.GlintRetrievalConfig(windspeed_range=(5.0, 5.0))


class TestWindspeedTable:
    """Tests for the tabulated glint."""

    def test_nodes(self):
        """Test 151 windspeeds from 1 to 14 m/s."""
        ws, table = windspeed.windspeed_table(20.0, 30.0, 10.0)
        assert ws.size == 151
        assert ws[0] == 1.0
        assert ws[-1] == 14.0
        assert ws[1] == pytest.approx(1.0 + 13.0 / 150.0)

    def test_values(self):
        """Test entries equal the glint reflectance at n = 1.37, foam 0.01."""
        ws, table = windspeed.windspeed_table(20.0, 30.0, 10.0)
        assert table[40] == pytest.approx(glint_reflectance(20.0, 30.0, 10.0, 1.37, ws[40], 0.01))


class TestSolveWindspeedTable:
    """Tests for matching an observation against the table."""

    def test_monotone(self):
        """Test a single branch."""
        ws = np.linspace(1.0, 14.0, 14)
        table = 0.01 * ws
        first, second = windspeed.solve_windspeed_table(ws, table, 0.052)
        assert first == pytest.approx(5.0)
        assert second is None

    def test_two_branches(self):
        """Test an interior maximum splits the table."""
        ws = np.linspace(0.0, 10.0, 11)
        table = 1.0 - 0.01 * (ws - 6.0) ** 2
        first, second = windspeed.solve_windspeed_table(ws, table, 0.91)
        assert first == pytest.approx(3.0)
        assert second == pytest.approx(9.0)

    def test_no_match(self):
        """Test an observation far outside the table."""
        ws = np.linspace(1.0, 14.0, 14)
        assert windspeed.solve_windspeed_table(ws, 0.01 * ws, 0.5) == (None, None)

    def test_explicit_tolerance(self):
        """Test a tight tolerance rejects the nearest node."""
        ws = np.linspace(1.0, 14.0, 14)
        table = 0.01 * ws
        assert windspeed.solve_windspeed_table(ws, table, 0.0525, tolerance=0.001)[0] is None
        assert windspeed.solve_windspeed_table(ws, table, 0.0525, tolerance=0.003)[0] == pytest.approx(5.0)

    def test_max_adjacent_difference(self):
        """Test the adaptive tolerance."""
        assert windspeed.max_adjacent_difference([0.0, 0.1, 0.15, 0.5]) == pytest.approx(0.35)
        assert windspeed.max_adjacent_difference([0.3]) == 0.0


class TestResolveAmbiguity:
    """Tests for choosing between two windspeeds."""

    def test_nearest_wins(self):
        """Test the candidate nearest to the ancillary wind."""
        a = windspeed.WindspeedCandidate(3.0, 0.01)
        b = windspeed.WindspeedCandidate(9.0, 0.02)
        assert windspeed.resolve_ambiguity([a, b], 6.0, 6.0) is b
        assert windspeed.resolve_ambiguity([a, b], 3.0, 0.0) is a

    def test_tie_keeps_first(self):
        """Test the first candidate wins a tie."""
        a = windspeed.WindspeedCandidate(4.0, 0.01)
        b = windspeed.WindspeedCandidate(6.0, 0.02)
        assert windspeed.resolve_ambiguity([a, b], 5.0, 0.0) is a

    def test_missing(self):
        """Test missing candidates."""
        b = windspeed.WindspeedCandidate(9.0, 0.02)
        assert windspeed.resolve_ambiguity([None, b], 0.0, 0.0) is b
        assert windspeed.resolve_ambiguity([b, None], 0.0, 0.0) is b
        assert windspeed.resolve_ambiguity([None, None], 0.0, 0.0) is None


class TestRetrieveGlint:
    """Tests for the complete glint retrieval."""

    @pytest.fixture
    def observed_glint(self, typical_geometry):
        """3.7 um glint of the typical geometry at 7 m/s."""
        meris = typical_geometry.meris
        return glint_reflectance(
            meris.solar_zenith, meris.view_zenith,
            180.0 - typical_geometry.aatsr_nadir.azimuth_difference,
            1.37, 7.0, 0.01,
        )

    def test_retrieves_windspeed(self, typical_geometry, observed_glint):
        """Test the windspeed behind a synthetic 3.7 um signal."""
        bt37 = bt37_for_solar_part(observed_glint, 290.0, 289.0, 0.1, 0.05)
        result = windspeed.retrieve_glint(
            typical_geometry, bt37, 290.0, 289.0, 0.1, 0.05, BT_TABLE, 1.0
        )
        assert result.found
        assert result.windspeed == pytest.approx(7.0, abs=0.1)
        assert result.solar_part == pytest.approx(observed_glint, rel=1e-6)
        assert result.n_candidates in (1, 2)
        assert set(result.channel_glint) == {"meris_865", "aatsr_nadir_870"}

    def test_meris_glint(self, typical_geometry, observed_glint):
        """Test the predicted MERIS glint uses n = 1.33 and foam 0.2."""
        bt37 = bt37_for_solar_part(observed_glint, 290.0, 289.0, 0.1, 0.05)
        result = windspeed.retrieve_glint(
            typical_geometry, bt37, 290.0, 289.0, 0.1, 0.05, BT_TABLE, 1.0
        )
        meris = typical_geometry.meris
        expected = glint_reflectance(
            meris.solar_zenith, meris.view_zenith, 180.0 - meris.azimuth_difference,
            1.33, result.windspeed, 0.2,
        )
        assert result.meris_glint == pytest.approx(expected)

    def test_land_pixel(self, typical_geometry):
        """Test land pixels are skipped."""
        result = windspeed.retrieve_glint(
            typical_geometry, 300.0, 290.0, 289.0, 0.1, 0.05, BT_TABLE, 1.0, land=True
        )
        assert not result.found
        assert result.windspeed == GLINT_NO_DATA
        assert result.channel_glint == {}

    def test_no_transmission(self, typical_geometry):
        """Test unusable MERIS 14/15 values."""
        result = windspeed.retrieve_glint(
            typical_geometry, 300.0, 290.0, 289.0, 0.05, 0.1, BT_TABLE, 1.0
        )
        assert not result.found
        assert result.solar_part == GLINT_NO_DATA

    def test_second_candidate(self, typical_geometry, observed_glint):
        """Test the rejected windspeed is reported only when enabled."""
        bt37 = bt37_for_solar_part(observed_glint, 290.0, 289.0, 0.1, 0.05)
        quiet = windspeed.retrieve_glint(
            typical_geometry, bt37, 290.0, 289.0, 0.1, 0.05, BT_TABLE, 1.0
        )
        assert quiet.second_windspeed == GLINT_NO_DATA

        config = windspeed.GlintRetrievalConfig(emit_second_candidate=True)
        loud = windspeed.retrieve_glint(
            typical_geometry, bt37, 290.0, 289.0, 0.1, 0.05, BT_TABLE, 1.0, config=config
        )
        if loud.n_candidates == 2:
            assert loud.second_windspeed != GLINT_NO_DATA
            assert loud.second_windspeed != loud.windspeed
        else:
            assert loud.second_windspeed == GLINT_NO_DATA

    def test_gauss_tables(self, typical_geometry, observed_glint):
        """Test per-channel glint from Gauss-parameter LUTs."""
        axes = [[-1.0, 0.0], [1.3, 1.4], [0.0, 20.0]]
        tables = [LookupTable(axes, np.full((2, 2, 2), c)) for c in (np.log(0.05), 0.3, 0.4, 0.0, 0.0)]
        bt37 = bt37_for_solar_part(observed_glint, 290.0, 289.0, 0.1, 0.05)
        result = windspeed.retrieve_glint(
            typical_geometry, bt37, 290.0, 289.0, 0.1, 0.05, BT_TABLE, 1.0, gauss_tables=tables
        )
        assert all(0 < g <= 0.05 for g in result.channel_glint.values())
