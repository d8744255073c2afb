"""pyVarBVS package: variational Bayesian variable selection (VarBVS and VarBVS-mix models)."""
from .model_varbvs import VarBVS
from .model_varbvsmix import VarBVSMix
from .families import Family
from .config import FitOptions, MixtureOptions, HyperparameterGrid, resolve_options
from .grid import run_grid, GridFit
from .innerloop import fit_grid_point, GridPointFit, TerminalState
from .mixture import run_mixture, MixtureFit

__all__ = ["VarBVS", "VarBVSMix", "Family", "FitOptions", "MixtureOptions", "HyperparameterGrid",
           "resolve_options", "run_grid", "GridFit", "fit_grid_point", "GridPointFit", "TerminalState",
           "run_mixture", "MixtureFit"]
__version__ = "1.0"
