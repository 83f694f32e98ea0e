"""
Retrieval session.

A RetrievalSession bundles the lookup tables, surface spectra and solver
settings of a processing run and exposes the three per-pixel retrievals
(land AOT, glint windspeed, ocean AOT). Sessions hold no per-pixel state;
one session can serve any number of threads.
"""

import logging
import threading
from typing import Callable, Dict, Mapping, Optional, Sequence, Tuple, Union

from synergy_aerosol.datamodel import (  # noqa: F401
    Geometry,
    ObservationVector,
    RetrievalFlags,
    RetrievalResult,
    RetrievalState,
    ViewGeometry,
)
from synergy_aerosol.land import LandRetrievalConfig, retrieve_land_aot
from synergy_aerosol.lut import AerosolModelLUT, LookupTable
from synergy_aerosol.ocean import OceanRetrievalConfig, retrieve_ocean_aot
from synergy_aerosol.surface import SurfaceSpectrum
from synergy_aerosol.windspeed import GlintResult, GlintRetrievalConfig, retrieve_glint

logger = logging.getLogger(__name__)

#: Land model source: models keyed by id, a sequence of models or a loader
LandModels = Union[Mapping[int, AerosolModelLUT], Sequence[AerosolModelLUT], Callable[[int], AerosolModelLUT]]


class RetrievalSession:
    """
    Tables and settings shared by the retrievals of a processing run.

    Parameters
    ----------
    spectrum : SurfaceSpectrum
        Soil and vegetation reference spectra for the land retrieval.
    land_models : mapping, sequence or callable, optional
        Land LUTs. Either the models themselves (a sequence or a mapping
        keyed by model id) or a loader called with a model id the first
        time that model is needed.
    ocean_models : sequence of AerosolModelLUT, optional
        Ocean LUTs of all aerosol models.
    gauss_tables : sequence of LookupTable, optional
        Gauss-parameter glint LUTs; analytic glint is used without them.
    bt_table : tuple of sequence, optional
        ``(temperatures, radiances)`` conversion of the 3.7 um channel.
    solar_irradiance37 : float, optional
        Band solar irradiance of the 3.7 um channel.
    land_config, ocean_config, glint_config : optional
        Solver settings; defaults when not given.

    Examples
    --------
    >>> session = RetrievalSession(spectrum, land_models=load_land_model)
    >>> result = session.retrieve_land(geometry, observation)
    >>> result.valid
    True
    """

    def __init__(
        self,
        spectrum: Optional[SurfaceSpectrum] = None,
        land_models: Optional[LandModels] = None,
        ocean_models: Optional[Sequence[AerosolModelLUT]] = None,
        gauss_tables: Optional[Sequence[LookupTable]] = None,
        bt_table: Optional[Tuple[Sequence[float], Sequence[float]]] = None,
        solar_irradiance37: Optional[float] = None,
        land_config: Optional[LandRetrievalConfig] = None,
        ocean_config: Optional[OceanRetrievalConfig] = None,
        glint_config: Optional[GlintRetrievalConfig] = None,
    ):
        self.spectrum = spectrum
        self.land_config = land_config if land_config is not None else LandRetrievalConfig()
        self.ocean_config = ocean_config if ocean_config is not None else OceanRetrievalConfig()
        self.glint_config = glint_config if glint_config is not None else GlintRetrievalConfig()
        self.ocean_models = None if ocean_models is None else tuple(ocean_models)
        self.gauss_tables = None if gauss_tables is None else tuple(gauss_tables)
        self.bt_table = bt_table
        self.solar_irradiance37 = solar_irradiance37

        self._loader: Optional[Callable[[int], AerosolModelLUT]] = None
        self._land_models: Dict[int, AerosolModelLUT] = {}
        self._lock = threading.Lock()
        if callable(land_models):
            self._loader = land_models
        elif isinstance(land_models, Mapping):
            self._land_models.update(land_models)
        elif land_models is not None:
            self._land_models.update({m.model_id: m for m in land_models})

        if self.ocean_models is not None:
            if any(m.angstrom is None for m in self.ocean_models):
                raise ValueError("Every ocean aerosol model needs an Angstrom coefficient")
            logger.info("Session holds %d ocean aerosol models", len(self.ocean_models))
        if self.bt_table is not None and self.gauss_tables is None:
            logger.warning("No Gauss-parameter glint LUTs, using analytic glint per channel")

    def land_model(self, model_id: int) -> AerosolModelLUT:
        """
        Land LUTs of one aerosol model, loaded on first use.

        Raises
        ------
        ValueError
            If the model is neither held nor loadable.
        """
        with self._lock:
            model = self._land_models.get(model_id)
            if model is None:
                if self._loader is None:
                    raise ValueError(f"No land LUTs for aerosol model {model_id}")
                logger.info("Loading land LUTs of aerosol model %d", model_id)
                model = self._loader(model_id)
                if model.model_id != model_id:
                    raise ValueError(
                        f"Loader returned aerosol model {model.model_id} for id {model_id}"
                    )
                self._land_models[model_id] = model
            return model

    def retrieve_land(
        self,
        geometry: Geometry,
        observation: ObservationVector,
    ) -> RetrievalResult:
        """Retrieve AOT over land with the configured aerosol models."""
        if self.spectrum is None:
            raise ValueError("Land retrieval needs a surface spectrum")
        models = [self.land_model(model_id) for model_id in self.land_config.aerosol_models]
        return retrieve_land_aot(geometry, observation, self.spectrum, models, self.land_config)

    def retrieve_glint(
        self,
        geometry: Geometry,
        bt37: float,
        bt11: float,
        bt12: float,
        meris14: float,
        meris15: float,
        land: bool = False,
        cloudy: bool = False,
        sunglint: bool = False,
    ) -> GlintResult:
        """Retrieve windspeed and glint of a sea pixel; see ``windspeed.retrieve_glint``."""
        if self.bt_table is None or self.solar_irradiance37 is None:
            raise ValueError("Glint retrieval needs the 3.7 um BT table and solar irradiance")
        return retrieve_glint(
            geometry, bt37, bt11, bt12, meris14, meris15,
            self.bt_table, self.solar_irradiance37,
            gauss_tables=self.gauss_tables,
            config=self.glint_config,
            land=land, cloudy=cloudy, sunglint=sunglint,
        )

    def retrieve_ocean(
        self,
        geometry: Geometry,
        observation: ObservationVector,
        windspeed: float,
    ) -> RetrievalResult:
        """Retrieve AOT and Angstrom coefficient over ocean at a known windspeed."""
        if not self.ocean_models:
            raise ValueError("Ocean retrieval needs ocean aerosol models")
        return retrieve_ocean_aot(
            geometry, observation, self.ocean_models, windspeed, self.ocean_config,
            gauss_tables=self.gauss_tables,
        )
