"""
Tests for the land module.

Tests the LUT subsections, the surface inversion, the surface model fits
and the AARDVARC AOT search on synthetic aerosol models.
"""

import numpy as np
import pytest

from synergy_aerosol import land
from synergy_aerosol.constants import LUT_OUT_OF_DOMAIN
from synergy_aerosol.datamodel import Geometry, ObservationVector, RetrievalState, ViewGeometry
from synergy_aerosol.surface import angular_model, spectral_model


TRUE_AOT = 0.5
TRUE_MIXTURE = (0.6, 0.4)


def forward_toa(subsection, surface, aot_index):
    """TOA reflectance of a LUT subsection at an AOT node."""
    return np.array([
        np.interp(surface[c], subsection.albedo, subsection.reflectance[c][:, aot_index])
        for c in range(len(subsection))
    ])


def aot_node(subsection, aot):
    """Index of an AOT node."""
    return int(np.flatnonzero(np.isclose(subsection.aot, aot))[0])


@pytest.fixture
def meris_subsection(land_model, typical_geometry):
    """MERIS subsection of the path-term land model."""
    return land.reflectance_subsection(
        land_model.sensor_tables("meris"), typical_geometry.meris,
        typical_geometry.pressure, typical_geometry.ozone, "meris",
    )


@pytest.fixture
def meris_only():
    """MERIS-only settings."""
    return land.LandRetrievalConfig(use_aatsr=False, aerosol_models=(8,))


class TestLandRetrievalConfig:
    """Tests for land retrieval settings."""

    def test_weights_normalized(self):
        """Test channel weights sum to one."""
        config = land.LandRetrievalConfig()
        assert sum(config.spectral_weights) == pytest.approx(1.0)
        assert sum(config.angular_weights) == pytest.approx(1.0)

    def test_invalid_model(self):
        """Test model ids outside 1 to 40."""
        with pytest.raises(ValueError, match="Invalid aerosol model"):
            land.LandRetrievalConfig(aerosol_models=(8, 41))

    def test_no_sensor(self):
        """Test both sensors disabled."""
        with pytest.raises(ValueError, match="At least one"):
            land.LandRetrievalConfig(use_meris=False, use_aatsr=False)

    def test_angular_start_length(self):
        """Test inconsistent angular start point."""
        with pytest.raises(ValueError, match="angular_start"):
            land.LandRetrievalConfig(angular_start=(0.1, 0.1, 0.5, 0.3))

    def test_invalid_aot_bounds(self):
        """Test empty AOT interval."""
        with pytest.raises(ValueError, match="AOT search interval"):
            land.LandRetrievalConfig(aot_bounds=(1.0, 0.5))

    def test_blend_weight(self):
        """Test fixed, adaptive and single-sensor weights."""
        assert land.LandRetrievalConfig().blend_weight(0.9) == 0.5
        assert land.LandRetrievalConfig(adaptive_angular_weight=True).blend_weight(0.0) == 1.0
        assert land.LandRetrievalConfig(use_aatsr=False).blend_weight(0.3) == 0.0
        assert land.LandRetrievalConfig(use_meris=False).blend_weight(0.3) == 1.0


class TestReflectanceSubsection:
    """Tests for slicing the land LUTs at a pixel."""

    def test_shape(self, meris_subsection):
        """Test (channel, albedo, AOT) layout."""
        assert meris_subsection.reflectance.shape == (13, 11, 9)
        assert len(meris_subsection) == 13

    def test_conversion(self, meris_subsection):
        """Test LUT values become reflectance."""
        # 412 nm has no water vapour slope and the pixel has no ozone
        factor = np.pi / np.cos(np.deg2rad(35.0))
        path = 0.08 * (412.0 / 550.0) ** -2
        expected = (path * 0.5 + 0.3 * (1.0 - 0.25 * 0.5)) * factor
        assert meris_subsection.reflectance[0, 3, 2] == pytest.approx(expected)

    def test_read_only(self, meris_subsection):
        """Test subsections cannot be modified."""
        with pytest.raises(ValueError):
            meris_subsection.reflectance[0, 0, 0] = 1.0

    def test_out_of_domain(self, land_model, typical_geometry):
        """Test a view outside the tables."""
        view = ViewGeometry(35.0, 140.0, 65.0, 100.0)
        sub = land.reflectance_subsection(
            land_model.sensor_tables("meris"), view, typical_geometry.pressure, 0.0, "meris"
        )
        assert sub is None

    def test_table_count(self, land_model, typical_geometry):
        """Test a table set not matching the sensor."""
        with pytest.raises(ValueError, match="channel tables"):
            land.reflectance_subsection(
                land_model.sensor_tables("aatsr"), typical_geometry.meris, 1013.25, 0.0, "meris"
            )


class TestInvertSurfaceReflectance:
    """Tests for the inverse lookup."""

    def test_simple(self):
        """Test a two-node table."""
        curves = np.array([[0.0, 0.0], [0.5, 0.25]])
        value = land.invert_surface_reflectance(curves, np.array([0.0, 1.0]), np.array([0.0, 1.0]), 0.0, 0.25)
        assert value == pytest.approx(0.5)

    def test_round_trip(self, meris_subsection):
        """Test forward then inverse lookup returns the albedo."""
        k = aot_node(meris_subsection, TRUE_AOT)
        surface = np.linspace(0.05, 0.6, 13)
        toa = forward_toa(meris_subsection, surface, k)
        np.testing.assert_allclose(meris_subsection.invert(TRUE_AOT, toa), surface, atol=1e-10)

    def test_between_aot_nodes(self, meris_subsection):
        """Test inversion between AOT nodes of a bilinear table."""
        c = 5
        aot = 0.6
        surface = 0.2
        path = 0.08 * (620.0 / 550.0) ** -2
        scale = meris_subsection.reflectance[c, 1, 0] / 0.1
        toa = (path * aot + surface * (1.0 - 0.25 * aot)) * scale
        value = land.invert_surface_reflectance(
            meris_subsection.reflectance[c], meris_subsection.albedo, meris_subsection.aot, aot, toa
        )
        assert value == pytest.approx(surface)

    def test_outside_aot(self, meris_subsection):
        """Test AOT beyond the nodes."""
        assert land.invert_surface_reflectance(
            meris_subsection.reflectance[0], meris_subsection.albedo, meris_subsection.aot, 2.5, 0.3
        ) == LUT_OUT_OF_DOMAIN

    def test_outside_reflectance(self, meris_subsection):
        """Test TOA reflectance beyond the table range."""
        assert land.invert_surface_reflectance(
            meris_subsection.reflectance[0], meris_subsection.albedo, meris_subsection.aot, 0.5, 50.0
        ) == LUT_OUT_OF_DOMAIN
        assert land.invert_surface_reflectance(
            meris_subsection.reflectance[0], meris_subsection.albedo, meris_subsection.aot, 0.5, np.nan
        ) == LUT_OUT_OF_DOMAIN


class TestSurfaceFits:
    """Tests for the spectral and angular fits."""

    def test_overcorrection_penalty(self):
        """Test penalty only for low reflectances."""
        assert land.overcorrection_penalty(np.array([0.1, 0.2])) == 0.0
        penalty = land.overcorrection_penalty(np.array([0.1, -0.01]))
        assert penalty == pytest.approx(1000.0 * (-0.01 - 5e-6) ** 2 + 1e-8)

    def test_spectral_exact_mixture(self, surface_spectrum):
        """Test the fit of an exact soil/vegetation mixture."""
        surface = spectral_model(TRUE_MIXTURE, surface_spectrum)
        config = land.LandRetrievalConfig(spectral_ftol=1e-12)
        err, params = land.spectral_error(surface, surface_spectrum, 0.5, config)
        assert err < 1e-8
        np.testing.assert_allclose(params, TRUE_MIXTURE, atol=1e-3)

    def test_spectral_overcorrected(self, surface_spectrum):
        """Test the fit is skipped for negative reflectances."""
        surface = spectral_model(TRUE_MIXTURE, surface_spectrum)
        surface[0] = -0.05
        err, params = land.spectral_error(surface, surface_spectrum, 0.5, land.LandRetrievalConfig())
        assert err == pytest.approx(land.overcorrection_penalty(surface))
        np.testing.assert_allclose(params, [0.5, 0.5])

    def test_spectral_length_mismatch(self, surface_spectrum):
        """Test surface not matching the spectrum."""
        with pytest.raises(ValueError):
            land.spectral_error(np.full(4, 0.1), surface_spectrum, 0.5, land.LandRetrievalConfig())

    def test_angular_exact_model(self):
        """Test the fit of reflectance produced by the angular model."""
        diffuse = np.array([[0.3, 0.25, 0.2, 0.1], [0.4, 0.35, 0.3, 0.15]])
        surface = angular_model([0.1, 0.15, 0.3, 0.35], [0.8, 0.5], diffuse)
        config = land.LandRetrievalConfig(angular_ftol=1e-12, powell_maxiter=2000)
        err, params = land.angular_error(surface, diffuse, config)
        assert err < 1e-6
        assert params.shape == (6,)

    def test_angular_view_penalty(self):
        """Test view scales outside the bounds are penalized."""
        diffuse = np.full((2, 4), 0.2)
        surface = angular_model([0.1, 0.15, 0.3, 0.35], [1.9, 1.8], diffuse)
        config = land.LandRetrievalConfig(angular_ftol=1e-12, powell_maxiter=2000)
        err, params = land.angular_error(surface, diffuse, config)
        assert params[4] < 1.9
        assert params[5] < 1.8


class TestRetrievalError:
    """Tests for the curvature-based AOT uncertainty."""

    def test_parabola(self):
        """Test a parabola with unit curvature."""
        def error(x):
            return (x - 0.5) ** 2 + 0.01

        aot_error, negative = land.retrieval_error(error, 0.5, error(0.5))
        assert not negative
        assert aot_error == pytest.approx(np.sqrt(0.01 / 0.8 * 2.0))

    def test_negative_curvature(self):
        """Test a parabola opening downwards."""
        def error(x):
            return 1.0 - x ** 2

        aot_error, negative = land.retrieval_error(error, 0.5, error(0.5))
        assert negative
        assert aot_error == pytest.approx(np.sqrt(0.75 / 0.8 * 2.0 / 1e-4))

    def test_zero_aot(self):
        """Test the singular system at zero AOT."""
        aot_error, negative = land.retrieval_error(lambda x: 0.1, 0.0, 0.1)
        assert negative
        assert np.isfinite(aot_error)


class TestLandQuality:
    """Tests for the quality checks."""

    @pytest.mark.parametrize("aot, err, neg, failed", [
        (0.5, 0.1, False, False),
        (0.5, 0.1, True, True),
        (0.0005, 0.001, False, True),
        (0.2, 1.5, False, True),
        (0.05, 1.0, False, False),
    ])
    def test_failed(self, aot, err, neg, failed):
        """Test the failure conditions."""
        assert land.land_quality(aot, err, neg)[0] == failed

    def test_flags(self):
        """Test low AOT and high error flags."""
        _, flags = land.land_quality(5e-6, 0.0, False)
        assert flags.aot_low
        _, flags = land.land_quality(0.2, 1.5, True)
        assert flags.error_high
        assert flags.negative_curvature


class TestEvaluateLandFit:
    """Tests for the combined residual at one AOT."""

    def test_stub_model_truth(self, land_model_factory, typical_geometry, surface_spectrum):
        """Test the stub albedo * (1 - AOT / 2) recovers the surface at the true AOT."""
        model = land_model_factory(8)
        config = land.LandRetrievalConfig(use_aatsr=False, aerosol_models=(8,), spectral_ftol=1e-12)
        observation = ObservationVector(meris=np.zeros(13))
        pixel = land.build_land_pixel(model, typical_geometry, observation, config, 0.5)
        surface = spectral_model(TRUE_MIXTURE, surface_spectrum)
        toa = forward_toa(pixel.meris, surface, aot_node(pixel.meris, TRUE_AOT))
        pixel = land.build_land_pixel(
            model, typical_geometry, ObservationVector(meris=toa), config, 0.5
        )

        fit = land.evaluate_land_fit(pixel, surface_spectrum, config, 0.0, TRUE_AOT)
        np.testing.assert_allclose(fit.surface_meris, surface, atol=1e-10)
        np.testing.assert_allclose(fit.spectral_params, TRUE_MIXTURE, atol=1e-3)
        assert fit.error < 1e-8
        assert fit.surface_aatsr is None

    def test_stub_model_residual(self, land_model_factory, typical_geometry, surface_spectrum):
        """Test the search residual does not exceed the residual at the truth."""
        model = land_model_factory(8)
        config = land.LandRetrievalConfig(use_aatsr=False, aerosol_models=(8,))
        probe = land.build_land_pixel(model, typical_geometry, ObservationVector(meris=np.zeros(13)), config, 0.5)
        surface = spectral_model(TRUE_MIXTURE, surface_spectrum)
        toa = forward_toa(probe.meris, surface, aot_node(probe.meris, TRUE_AOT))
        pixel = land.build_land_pixel(model, typical_geometry, ObservationVector(meris=toa), config, 0.5)

        found = land.aardvarc(pixel, surface_spectrum, config)
        truth = land.evaluate_land_fit(pixel, surface_spectrum, config, 0.0, TRUE_AOT).error
        assert found.error_metric <= truth + 1e-6


class TestRetrieveLandAot:
    """Tests for the complete land retrieval."""

    @pytest.fixture
    def observation(self, meris_subsection, surface_spectrum):
        """MERIS TOA reflectance of the mixture at AOT 0.5."""
        surface = spectral_model(TRUE_MIXTURE, surface_spectrum)
        toa = forward_toa(meris_subsection, surface, aot_node(meris_subsection, TRUE_AOT))
        return ObservationVector(meris=toa)

    def test_inverse_crime(self, land_model, typical_geometry, observation, surface_spectrum, meris_only):
        """Test the AOT behind synthetic observations is recovered."""
        result = land.retrieve_land_aot(
            typical_geometry, observation, surface_spectrum, [land_model], meris_only
        )
        assert result.state is not RetrievalState.OUT_OF_DOMAIN
        assert result.aot == pytest.approx(TRUE_AOT, abs=0.05)
        assert result.model_id == 8
        assert "meris" in result.surface_reflectance
        assert result.aot_error >= 0

    def test_best_model(self, land_model, land_model_factory, typical_geometry, observation,
                        surface_spectrum):
        """Test the model with the smallest residual is reported."""
        flat = land_model_factory(20, path=lambda wvl: 0.08, attenuation=0.25)
        config = land.LandRetrievalConfig(use_aatsr=False, aerosol_models=(20, 8))
        result = land.retrieve_land_aot(
            typical_geometry, observation, surface_spectrum, [flat, land_model], config
        )
        assert result.model_id == 8

    def test_out_of_domain(self, land_model, typical_geometry, observation, surface_spectrum, meris_only):
        """Test a geometry outside the tables."""
        geometry = Geometry(
            ViewGeometry(75.0, 140.0, 20.0, 100.0),
            typical_geometry.aatsr_nadir,
            typical_geometry.aatsr_fward,
        )
        result = land.retrieve_land_aot(geometry, observation, surface_spectrum, [land_model], meris_only)
        assert result.state is RetrievalState.OUT_OF_DOMAIN
        assert result.aot == -1.0

    def test_dual_view(self, land_model, typical_geometry, surface_spectrum):
        """Test a retrieval using both sensors runs to a result."""
        meris = land.reflectance_subsection(
            land_model.sensor_tables("meris"), typical_geometry.meris, 1013.25, 0.0, "meris"
        )
        tables = land_model.sensor_tables("aatsr")
        nadir = land.reflectance_subsection(tables, typical_geometry.aatsr_nadir, 1013.25, 0.0, "aatsr")
        fward = land.reflectance_subsection(tables, typical_geometry.aatsr_fward, 1013.25, 0.0, "aatsr")
        k = aot_node(meris, TRUE_AOT)
        observation = ObservationVector(
            meris=forward_toa(meris, spectral_model(TRUE_MIXTURE, surface_spectrum), k),
            aatsr_nadir=forward_toa(nadir, np.array([0.08, 0.1, 0.3, 0.25]), k),
            aatsr_fward=forward_toa(fward, np.array([0.07, 0.09, 0.27, 0.22]), k),
        )
        result = land.retrieve_land_aot(
            typical_geometry, observation, surface_spectrum, [land_model],
            land.LandRetrievalConfig(aerosol_models=(8,)),
        )
        assert result.state is not RetrievalState.OUT_OF_DOMAIN
        assert 0.0 <= result.aot <= 2.0
        assert set(result.surface_reflectance) == {"meris", "aatsr_nadir", "aatsr_fward"}
