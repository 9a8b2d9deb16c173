import numpy as np
import pytest

from kinkal.config import Config, MetaIterConfig
from kinkal.effects import BFieldEffect, Material, Measurement
from kinkal.element_xing import ElementXing
from kinkal.fit_state import NPARAMS, FitState, Parameters, TimeDir, Weights
from kinkal.hits import ParameterHit
from kinkal.shell import TimeRange
from kinkal.status import Chisq


class FakePiece:
    def __init__(self, params, trange, bz=1.0):
        self.params = params
        self.range = trange
        self.bz = bz

    def set_bnom(self, time, bfield):
        self.params.parameters[0] += bfield[2] - self.bz
        self.bz = bfield[2]


class FakePTraj:
    def __init__(self, piece):
        self.pieces = [piece]

    @property
    def front(self):
        return self.pieces[0]

    @property
    def back(self):
        return self.pieces[-1]

    @property
    def range(self):
        return TimeRange(self.front.range.begin, self.back.range.end)

    def append(self, piece):
        self.pieces.append(piece)

    def prepend(self, piece):
        self.pieces.insert(0, piece)

    def position3(self, t):
        return (0.0, 0.0, t)

    def nearest_traj(self, t):
        return self.back


class FakeBField:
    def field_vect(self, pos):
        return (0.0, 0.0, 1.0 + 0.01 * pos[2])


class FakeXing(ElementXing):
    def __init__(self, time, dp, active=True, transit=0.5):
        self._time = time
        self._dp = np.array(dp, dtype=float)
        self._mxings = ["material"] if active else []
        self._transit = transit
        self.reference = None
        self.updates = []

    def update_reference(self, ktraj):
        self.reference = ktraj

    def update_state(self, config, first):
        self.updates.append(first)

    def parameters(self, tdir):
        sign = 1.0 if tdir is TimeDir.FORWARDS else -1.0
        return Parameters(sign * self._dp, 0.1 * np.eye(NPARAMS))

    @property
    def time(self):
        return self._time

    @property
    def transit_time(self):
        return self._transit

    @property
    def reference_trajectory(self):
        return self.reference

    @property
    def mat_xings(self):
        return self._mxings

    def describe(self, detail=0):
        return "fake xing"


def make_ptraj(begin=0.0, end=10.0):
    return FakePTraj(FakePiece(Parameters(np.arange(NPARAMS, dtype=float), np.eye(NPARAMS)), TimeRange(begin, end)))


def make_hit(mask, time=5.0):
    ptraj = make_ptraj()
    params = Parameters(np.ones(NPARAMS), 2.0 * np.eye(NPARAMS))
    return ParameterHit(time, ptraj, params, mask), ptraj


def test_effect_str_active_and_inactive():
    hit, _ = make_hit([True] * NPARAMS)
    assert str(Measurement(hit)) == "Active time 5"
    idle, _ = make_hit([False] * NPARAMS)
    assert str(Measurement(idle)) == "Inactive time 5"


def test_measurement_process_adds_hit_weight():
    hit, _ = make_hit([True, False, True, False, True, False])
    meas = Measurement(hit)
    meas.update_state(MetaIterConfig(0.0), True)
    state = FitState(weights=Weights())
    meas.process(state, TimeDir.BACKWARDS)
    assert np.allclose(state.w_data().weight_mat, hit.weight.weight_mat)
    assert np.allclose(state.w_data().weight_vec, hit.weight.weight_vec)


def test_measurement_inactive_leaves_state():
    hit, _ = make_hit([False] * NPARAMS)
    meas = Measurement(hit)
    meas.update_state(MetaIterConfig(0.0), True)
    state = FitState(weights=Weights())
    meas.process(state, TimeDir.FORWARDS)
    assert np.allclose(state.w_data().weight_mat, 0.0)
    assert state.has_weights


def test_measurement_append_updates_reference():
    hit, _ = make_hit([True] * NPARAMS)
    meas = Measurement(hit)
    ptraj = make_ptraj()
    ptraj.append(FakePiece(Parameters(), TimeRange(10.0, 20.0)))
    meas.append(ptraj, TimeDir.FORWARDS)
    assert hit.reference_trajectory is ptraj.back
    meas.append(ptraj, TimeDir.BACKWARDS)
    assert hit.reference_trajectory is ptraj.front
    other = ptraj.back
    meas.update_reference(other)
    assert hit.reference_trajectory is other


def test_measurement_chisq_delegates():
    hit, _ = make_hit([True] * NPARAMS)
    meas = Measurement(hit)
    pdata = Parameters(np.zeros(NPARAMS), np.eye(NPARAMS))
    assert meas.chisq(pdata) == hit.chisq(pdata)


def test_material_forwards_process_caches_after():
    xing = FakeXing(5.0, np.full(NPARAMS, 0.2))
    mat = Material(xing, None)
    start = Parameters(np.zeros(NPARAMS), np.eye(NPARAMS))
    state = FitState(parameters=start)
    mat.process(state, TimeDir.FORWARDS)
    assert np.allclose(state.p_data().parameters, 0.2)
    expected = Weights.from_parameters(state.p_data())
    assert np.allclose(mat.cache.weight_mat, expected.weight_mat)
    assert np.allclose(mat.cache.weight_vec, expected.weight_vec)


def test_material_backwards_process_caches_before():
    xing = FakeXing(5.0, np.full(NPARAMS, 0.2))
    mat = Material(xing)
    start = Parameters(np.zeros(NPARAMS), np.eye(NPARAMS))
    state = FitState(parameters=start)
    mat.process(state, TimeDir.BACKWARDS)
    assert np.allclose(mat.cache.weight_mat, np.eye(NPARAMS))
    assert np.allclose(state.p_data().parameters, -0.2)


def test_material_inactive_process_does_nothing():
    xing = FakeXing(5.0, np.full(NPARAMS, 0.2), active=False)
    mat = Material(xing)
    state = FitState(parameters=Parameters(np.zeros(NPARAMS), np.eye(NPARAMS)))
    mat.process(state, TimeDir.FORWARDS)
    assert np.allclose(state.p_data().parameters, 0.0)
    assert np.allclose(mat.cache.weight_mat, 0.0)
    assert not mat.active


def test_material_update_state_resets_cache():
    xing = FakeXing(5.0, np.full(NPARAMS, 0.2))
    mat = Material(xing)
    mat.process(FitState(parameters=Parameters(np.zeros(NPARAMS), np.eye(NPARAMS))), TimeDir.FORWARDS)
    mat.update_state(MetaIterConfig(1.0), True)
    assert np.allclose(mat.cache.weight_mat, 0.0)
    assert xing.updates == [True]


def test_material_append_forwards_adds_piece():
    xing = FakeXing(5.0, np.full(NPARAMS, 0.2), transit=7.0)
    mat = Material(xing)
    state = FitState(parameters=Parameters(np.zeros(NPARAMS), np.eye(NPARAMS)))
    mat.process(state, TimeDir.FORWARDS)
    ptraj = make_ptraj()
    mat.append(ptraj, TimeDir.FORWARDS)
    assert len(ptraj.pieces) == 2
    assert ptraj.back.range.begin == 5.0
    assert ptraj.back.range.end == 12.0
    assert np.allclose(ptraj.back.params.parameters, state.p_data().parameters)
    assert xing.reference is ptraj.back
    assert ptraj.front.params.parameters[1] == 1.0


def test_material_append_backwards_prepends():
    xing = FakeXing(5.0, np.full(NPARAMS, 0.2), transit=1.0)
    mat = Material(xing)
    mat.process(FitState(parameters=Parameters(np.zeros(NPARAMS), np.eye(NPARAMS))), TimeDir.BACKWARDS)
    ptraj = make_ptraj()
    mat.append(ptraj, TimeDir.BACKWARDS)
    assert len(ptraj.pieces) == 2
    assert ptraj.front.range.begin == 0.0
    assert ptraj.front.range.end == 5.0
    assert xing.reference is ptraj.front


def test_material_append_overlap_raises():
    xing = FakeXing(-5.0, np.full(NPARAMS, 0.2))
    mat = Material(xing)
    with pytest.raises(ValueError):
        mat.append(make_ptraj(), TimeDir.FORWARDS)


def test_material_inactive_append_only_updates_reference():
    xing = FakeXing(5.0, np.zeros(NPARAMS), active=False)
    mat = Material(xing)
    ptraj = make_ptraj()
    mat.append(ptraj, TimeDir.FORWARDS)
    assert len(ptraj.pieces) == 1
    assert xing.reference is ptraj.back
    assert mat.chisq(Parameters()) == Chisq()


def test_bfield_inactive_when_correction_off():
    eff = BFieldEffect(Config(bfcorr=False), FakeBField(), TimeRange(0.0, 10.0))
    assert not eff.active
    state = FitState(parameters=Parameters(np.zeros(NPARAMS), np.eye(NPARAMS)))
    eff.process(state, TimeDir.FORWARDS)
    ptraj = make_ptraj()
    eff.append(ptraj, TimeDir.FORWARDS)
    assert len(ptraj.pieces) == 1
    assert np.allclose(state.p_data().parameters, 0.0)
    eff.update_config(Config(bfcorr=True))
    assert eff.active


def test_bfield_time_is_range_mid():
    eff = BFieldEffect(Config(), FakeBField(), TimeRange(2.0, 6.0))
    assert eff.time == pytest.approx(4.0)
    assert eff.chisq(Parameters()) == Chisq()


def test_bfield_append_forwards_and_process():
    eff = BFieldEffect(Config(), FakeBField(), TimeRange(0.0, 10.0))
    ptraj = make_ptraj(0.0, 10.0)
    old = ptraj.back.params.parameters.copy()
    eff.append(ptraj, TimeDir.FORWARDS)
    assert len(ptraj.pieces) == 2
    assert ptraj.back.range.begin == eff.time
    assert ptraj.back.range.end == 10.0
    assert np.allclose(eff.parameter_change, ptraj.back.params.parameters - old)
    assert np.allclose(ptraj.front.params.parameters, old)
    state = FitState(parameters=Parameters(np.zeros(NPARAMS), np.eye(NPARAMS)))
    eff.process(state, TimeDir.FORWARDS)
    assert np.allclose(state.p_data().parameters, eff.parameter_change)
    eff.process(state, TimeDir.BACKWARDS)
    assert np.allclose(state.p_data().parameters, 0.0)


def test_bfield_append_backwards_prepends():
    eff = BFieldEffect(Config(), FakeBField(), TimeRange(0.0, 10.0))
    ptraj = make_ptraj(0.0, 10.0)
    eff.append(ptraj, TimeDir.BACKWARDS)
    assert len(ptraj.pieces) == 2
    assert ptraj.front.range.end == eff.time
    assert np.allclose(
        eff.parameter_change,
        ptraj.back.params.parameters - ptraj.front.params.parameters,
    )


def test_bfield_append_unappendable_raises():
    eff = BFieldEffect(Config(), FakeBField(), TimeRange(0.0, 4.0))
    ptraj = make_ptraj(5.0, 10.0)
    with pytest.raises(ValueError):
        eff.append(ptraj, TimeDir.FORWARDS)