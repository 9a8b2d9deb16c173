import numpy as np
import pytest

from kinkal.fit_state import NPARAMS, FitState, Parameters, TimeDir, Weights


def _params(scale=1.0):
    vec = np.arange(1.0, NPARAMS + 1.0) * scale
    base = np.diag(np.linspace(1.0, 2.0, NPARAMS))
    cov = base + 0.1 * np.ones((NPARAMS, NPARAMS))
    return Parameters(vec, cov)


def test_default_parameters_and_weights_are_zero():
    assert np.array_equal(Parameters().parameters, np.zeros(NPARAMS))
    assert np.array_equal(Weights().weight_mat, np.zeros((NPARAMS, NPARAMS)))


def test_parameters_weights_round_trip():
    params = _params()
    back = Parameters.from_weights(Weights.from_parameters(params))
    assert np.allclose(back.parameters, params.parameters)
    assert np.allclose(back.covariance, params.covariance)


def test_singular_weights_raise():
    with pytest.raises(ValueError):
        Parameters.from_weights(Weights())


def test_singular_covariance_raises():
    with pytest.raises(ValueError):
        Weights.from_parameters(Parameters())


def test_weights_arithmetic():
    wts = Weights.from_parameters(_params())
    total = wts.copy()
    total += wts
    assert np.allclose(total.weight_mat, 2 * wts.weight_mat)
    total -= wts
    assert np.allclose(total.weight_vec, wts.weight_vec)
    total *= 0.5
    assert np.allclose(total.weight_mat, 0.5 * wts.weight_mat)
    # scaling a weight leaves the implied parameters unchanged
    assert np.allclose(Parameters.from_weights(total).parameters, _params().parameters)


def test_parameters_iadd():
    first = _params()
    second = _params(2.0)
    first += second
    assert np.allclose(first.parameters, 3 * _params().parameters)
    assert np.allclose(first.covariance, 2 * _params().covariance)


def test_fit_state_construction_flags():
    assert FitState(parameters=_params()).has_parameters
    assert not FitState(parameters=_params()).has_weights
    assert FitState(weights=Weights()).has_weights
    with pytest.raises(ValueError):
        FitState(_params(), Weights())


def test_append_parameters_forwards_and_backwards():
    state = FitState(parameters=_params())
    delta = _params(0.5)
    state.append_parameters(delta, TimeDir.FORWARDS)
    assert np.allclose(state.p_data().parameters, _params(1.5).parameters)
    state.append_parameters(delta, TimeDir.BACKWARDS)
    assert np.allclose(state.p_data().parameters, _params().parameters)
    assert np.allclose(state.p_data().covariance, 3 * _params().covariance)


def test_append_vector_keeps_covariance():
    state = FitState(parameters=_params())
    state.append_vector(np.ones(NPARAMS), TimeDir.BACKWARDS)
    assert np.allclose(state.p_data().parameters, _params().parameters - 1.0)
    assert np.allclose(state.p_data().covariance, _params().covariance)
    assert not state.has_weights


def test_lazy_conversion_from_weights():
    wts = Weights.from_parameters(_params())
    state = FitState()
    state.append_weights(wts)
    assert state.has_weights and not state.has_parameters
    pdata = state.p_data()
    assert state.has_parameters
    assert np.allclose(pdata.parameters, _params().parameters)


def test_append_weights_after_parameters_combines_information():
    state = FitState(parameters=_params())
    state.append_weights(Weights.from_parameters(_params()))
    # two identical measurements halve the covariance
    assert np.allclose(state.p_data().covariance, 0.5 * _params().covariance)
    assert np.allclose(state.p_data().parameters, _params().parameters)


def test_fit_state_copies_input():
    params = _params()
    state = FitState(parameters=params)
    state.append_vector(np.ones(NPARAMS))
    assert np.allclose(params.parameters, _params().parameters)