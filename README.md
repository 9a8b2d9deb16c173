# kinkal

A kinematic Kalman filter for fitting charged-particle tracks. A fit is driven
by a configuration with a schedule of meta-iterations (simulated-annealing
"temperatures"). It combines measurements (hits) and material crossings into a
piecewise kinematic trajectory, and it can correct for magnetic-field variation
along the track by dividing it into field domains.

## Installation

```
pip install .
```

To run the tests:

```
pip install ".[test]"
pytest
```

## What is inside

- `kinkal.config`: `Config` is a dataclass that holds the iteration limits,
  the convergence and divergence criteria, the field-correction switch, the
  print level and the `schedule`. `MetaIterConfig` is one meta-iteration. It has
  a `temperature` and a `variance_scale` property equal to `(1 + temperature)**2`.
  It also holds updater payloads, which you add with `add_updater` and look up by
  type with `find_updater`. `find_updater` raises `ValueError` if more than one
  updater of the type is present. `PrintLevel` sets the verbosity.
- `kinkal.status`: `Chisq` is a chi-squared with its degrees of freedom.
  `FitStatus` enumerates the fit outcomes. `Status` records one iteration and
  has the properties `usable` and `needs_fit`. `status_name` gives a printable
  name for a `FitStatus`.
- `kinkal.fit_state`: `Parameters` and `Weights` are a parameter vector with its
  covariance and the same information in weight space, and each converts into
  the other. `FitState` keeps the fit payload in either space and converts
  lazily. `TimeDir` gives the processing direction. `NPARAMS` is 6.
- `kinkal.residual`: `Residual` is a one-dimensional residual. It has the
  properties `variance`, `chisq`, `chi`, `pull` and `ndof`, and its `weight`
  method gives the weight it implies for a parameter vector.
- `kinkal.straw_material`: `StrawMaterial` gives the path lengths through the
  straw wall and gas (`path_lengths`, `transit_length`, `find_xings`,
  `angle_factor`). `StrawXingConfig` selects averaged or DOCA-based path
  lengths; `StrawXingConfig.exact(...)` builds the DOCA-based form.
  `MaterialXing` is a path length through one material.
- `kinkal.hits`: `Hit` is the abstract measurement base class, with
  `unbiased_parameters` and `chisquared`. `ResidualHit` is built from
  residuals; subclasses supply `n_resid` and `ref_residual`. `ParameterHit` is
  a direct, masked constraint on a subset of the parameters.
- `kinkal.element_xing`: `ElementXing` is the abstract crossing of a detector
  element, with `material_effects` and `radiation_fraction`. `MomDirection`
  names the momentum basis directions.
- `kinkal.shell`: `TimeRange` is a time interval. `CylindricalShell` finds the
  first crossing of a trajectory with a thin cylinder with `intersect`, and all
  crossings with `intersections`.
- `kinkal.effects`: `Effect` is the abstract fit effect. The concrete effects
  are `Measurement` (wraps a hit), `Material` (wraps an element crossing) and
  `BFieldEffect` (the parameter change across a field domain).
- `kinkal.track_support`: `time_range_of` gives the time span of the inputs,
  `create_domains` divides a range into field domains, and
  `measurement_bounds` gives the slice bounds from the first to the last active
  measurement.
- `kinkal.track`: `Track` runs the fit over the configured schedule when it is
  constructed. `extend` refits it with a new configuration and, optionally,
  added hits and crossings.

## Example

```python
import numpy as np

from kinkal.config import Config, MetaIterConfig
from kinkal.fit_state import FitState, Parameters
from kinkal.residual import Residual
from kinkal.status import Status

config = Config()
config.schedule.append(MetaIterConfig(2.0))
config.schedule.append(MetaIterConfig(0.0))
print(config)
print(config.schedule[0].variance_scale)  # 9.0

status = Status(0, 0)
print(status.needs_fit)  # True: nothing has been fit yet

state = FitState(parameters=Parameters(np.zeros(6), 4.0 * np.eye(6)))
print(state.w_data().weight_mat[0, 0])  # 0.25

resid = Residual(2.0, 1.0, 3.0, True, np.ones(6))
print(resid.variance, resid.chisq)  # 4.0 1.0
```

A `Track` takes a `Config`, a magnetic field map, a seed particle trajectory,
and lists of hits and element crossings. The `fit_status` property gives the
latest `Status`, `history` gives all of them, and `fit_traj` gives the fitted
trajectory. `describe(detail)` returns a text summary.

## What this package does not provide

The package contains the fit machinery only. It has no concrete trajectory
classes (helices, lines), no magnetic field maps, no material database or
energy-loss model, no closest-approach calculation and no command-line program.
You supply these objects, and the classes above use them through the attributes
and methods described in their docstrings:

- Trajectories provide `position3`, `nearest_piece`, `nearest_traj`, `append`,
  `prepend` and `gaps`.
- Pieces provide mutable `params` and `range`, and `set_bnom`.
- Field maps provide `field_vect` and `range_in_tolerance`.
- Materials provide `energy_loss`, `energy_loss_var`, `scatter_angle_var` and
  `radiation_fraction`.
- Closest-approach data provides `doca`, `doca_var` and `dir_dot`.