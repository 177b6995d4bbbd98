"""
Unit tests for the validation based stochastic gradient learner.
"""
import pytest

from conftest import FakeItem, FakeJointParser, make_output, make_pair
from learn import LearningStats
from sparse_weights import SparseWeightVector
from stocgrad import ValidationStocGrad


def make_learner(output, answer, validator, **kwargs):
    item = FakeItem('q', answer)
    return ValidationStocGrad(FakeJointParser({'q': output}), validator, [item], **kwargs), item


class TestValidationStocGrad:

    def test_gradient_is_conditional_minus_full_expectation(self, model, validator):
        output = make_output([make_pair('a', 1.0, parse_features={'a': 1.0}),
                              make_pair('b', 2.0, parse_features={'b': 1.0})])
        learner, item = make_learner(output, 1.0, validator)
        assert learner.parameter_update(item, model, 0, 0)
        assert model.theta == SparseWeightVector({'a': 0.5, 'b': -0.5})
        assert learner.step_counter == 1

    def test_all_valid_gives_no_gradient(self, model, validator):
        output = make_output([make_pair('a', 1.0, parse_features={'a': 1.0})])
        learner, item = make_learner(output, 1.0, validator)
        learner.parameter_update(item, model, 0, 0)
        assert len(model.theta) == 0

    def test_no_valid_result_skips(self, model, validator):
        output = make_output([make_pair('a', 1.0, parse_features={'a': 1.0})])
        learner, item = make_learner(output, 7.0, validator)
        assert not learner.parameter_update(item, model, 0, 0)
        assert learner.stats.skips[0][LearningStats.NO_VALID] == 1
        assert learner.step_counter == 0

    def test_no_parses_skips(self, model, validator):
        learner, item = make_learner(make_output([]), 1.0, validator)
        assert not learner.parameter_update(item, model, 0, 0)
        assert learner.stats.skips[0][LearningStats.NO_PARSES] == 1

    def test_learning_rate_decays(self, validator):
        learner, item = make_learner(make_output([]), 1.0, validator, alpha0=2.0, c=0.5)
        assert learner.learning_rate() == pytest.approx(2.0)
        learner.step_counter = 2
        assert learner.learning_rate() == pytest.approx(1.0)

    def test_from_params(self, validator):
        learner = ValidationStocGrad.from_params({'iter': '2', 'alpha0': '0.1', 'c': '0.01'}, FakeJointParser({}), validator, [])
        assert learner.num_iterations == 2
        assert learner.alpha0 == pytest.approx(0.1)
        assert learner.c == pytest.approx(0.01)
