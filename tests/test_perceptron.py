"""
Unit tests for the validation based margin perceptron.
"""
from types import SimpleNamespace

import pytest

from conftest import FakeItem, FakeJointParser, make_output, make_pair
from joint_model import JointModel
from learn import LearningStats
from perceptron import MarginPerceptron, construct_update, create_valid_invalid_sets, margin_violating_sets
from sparse_weights import SparseWeightVector


def candidate(result, score=0.0, features=None, latent_form=None):
    return SimpleNamespace(result=result, score=score, latent_form=latent_form,
                           features=SparseWeightVector(features or {}))


class AlwaysValid:

    def is_valid(self, data_item, hypothesis):
        return True


class ResultSetValidator:

    def __init__(self, results):
        self.results = results

    def is_valid(self, data_item, hypothesis):
        return hypothesis[1] in self.results


class TestValidInvalidSets:

    def test_soft_mode_keeps_every_valid_candidate(self):
        parses = [candidate(1, score) for score in [3.0, 5.0, 5.0, 2.0]]
        valid, invalid = create_valid_invalid_sets(None, parses, AlwaysValid(), hard_updates=False)
        assert valid == parses
        assert invalid == []

    def test_hard_mode_keeps_max_scoring_ties(self):
        parses = [candidate(1, score) for score in [3.0, 5.0, 5.0, 2.0]]
        valid, invalid = create_valid_invalid_sets(None, parses, AlwaysValid(), hard_updates=True)
        assert valid == [parses[1], parses[2]]
        assert invalid == []

    def test_invalid_candidates_keep_input_order(self, validator):
        parses = [candidate(1), candidate(2), candidate(3), candidate(2)]
        valid, invalid = create_valid_invalid_sets(FakeItem('x', 2), parses, validator)
        assert valid == [parses[1], parses[3]]
        assert invalid == [parses[0], parses[2]]

    def test_empty_input(self, validator):
        assert create_valid_invalid_sets(FakeItem('x', 2), [], validator, hard_updates=True) == ([], [])


class TestMarginService:

    def test_margin_violation(self):
        model = JointModel(SparseWeightVector({'v': 4.0, 'i': 3.5}))
        valid, invalid = [candidate(1, features={'v': 1.0})], [candidate(2, features={'i': 1.0})]
        assert margin_violating_sets(model, 1.0, valid, invalid) == (valid, invalid)

    def test_no_margin_violation(self):
        model = JointModel(SparseWeightVector({'v': 6.0, 'i': 3.5}))
        valid, invalid = [candidate(1, features={'v': 1.0})], [candidate(2, features={'i': 1.0})]
        assert margin_violating_sets(model, 1.0, valid, invalid) == ([], [])

    def test_only_violating_candidates_are_kept(self):
        model = JointModel(SparseWeightVector({'v1': 10.0, 'v2': 1.0, 'i1': 0.5, 'i2': -5.0}))
        valid = [candidate(1, features={'v1': 1.0}), candidate(1, features={'v2': 1.0})]
        invalid = [candidate(2, features={'i1': 1.0}), candidate(3, features={'i2': 1.0})]
        violating_valid, violating_invalid = margin_violating_sets(model, 1.0, valid, invalid)
        assert violating_valid == [valid[1]]
        assert violating_invalid == [invalid[0]]

    def test_construct_update_averages_both_sides(self, model):
        valid = [candidate(1, features={'a': 1.0}), candidate(1, features={'a': 1.0, 'c': 2.0})]
        invalid = [candidate(2, features={'b': 2.0, 'a': 1.0})]
        update = construct_update(valid, invalid, model)
        assert update == SparseWeightVector({'c': 1.0, 'b': -2.0})
        assert 'a' not in update


class TestParameterUpdate:

    def make_learner(self, outputs, validator, **kwargs):
        data = [FakeItem(sample, answer) for sample, answer in outputs.keys()]
        parser = FakeJointParser(dict(((sample, output) for (sample, answer), output in outputs.items())))
        return MarginPerceptron(parser, validator, data, **kwargs), data

    def test_no_parses_skips(self, model, validator):
        learner, data = self.make_learner({('q', 1.0): make_output([])}, validator)
        assert not learner.parameter_update(data[0], model, 0, 0)
        assert len(model.theta) == 0
        assert learner.stats.skips[0][LearningStats.NO_PARSES] == 1

    def test_degenerate_split_skips(self, model, validator):
        output = make_output([make_pair('a', 1.0, parse_features={'a': 1.0})])
        learner, data = self.make_learner({('q', 1.0): output}, validator)
        assert not learner.parameter_update(data[0], model, 0, 0)
        assert len(model.theta) == 0
        assert learner.stats.skips[0][LearningStats.NO_SPLIT] == 1

    def test_no_violation_with_zero_margin_skips(self, model, validator):
        output = make_output([make_pair('a', 1.0, parse_features={'a': 1.0}),
                              make_pair('b', 2.0, parse_features={'b': 1.0})])
        learner, data = self.make_learner({('q', 1.0): output}, validator, margin=0.0)
        assert not learner.parameter_update(data[0], model, 0, 0)
        assert len(model.theta) == 0
        assert learner.stats.skips[0][LearningStats.NO_VIOLATION] == 1

    def test_violation_updates_theta(self, model, validator):
        output = make_output([make_pair('a', 1.0, parse_features={'a': 1.0}, exec_features={'e': 1.0}),
                              make_pair('b', 2.0, parse_features={'b': 1.0}, exec_features={'e': 1.0})])
        learner, data = self.make_learner({('q', 1.0): output}, validator)
        assert learner.parameter_update(data[0], model, 0, 0)
        assert model.theta == SparseWeightVector({'a': 1.0, 'b': -1.0})
        assert learner.stats.num_updates(0) == 1

    def test_train_loops_over_epochs(self, model, validator):
        output = make_output([make_pair('a', 1.0, parse_features={'a': 1.0}),
                              make_pair('b', 2.0, parse_features={'b': 1.0})])
        learner, data = self.make_learner({('q', 1.0): output}, validator, num_iterations=3)
        learner.train(model)
        assert learner.parser.calls == 3
        # after one update the margin is satisfied (1 - (-1) >= 1)
        assert model.theta == SparseWeightVector({'a': 1.0, 'b': -1.0})
        assert learner.stats.skips[1][LearningStats.NO_VIOLATION] == 1

    def test_long_samples_are_skipped(self, model, validator):
        learner, data = self.make_learner({('long sample', 1.0): make_output([])}, validator, max_sentence_length=3)
        learner.train(model)
        assert learner.parser.calls == 0
        assert learner.stats.skips[0][LearningStats.TOO_LONG] == 1

    def test_parser_output_logger_is_called(self, model, validator):
        logged = []
        learner, data = self.make_learner({('q', 1.0): make_output([])}, validator,
                                          parser_output_logger=lambda output, model: logged.append(output))
        learner.parameter_update(data[0], model, 0, 0)
        assert len(logged) == 1

    def test_from_params(self, validator):
        learner = MarginPerceptron.from_params({'iter': '7', 'margin': '0.5', 'hard': 'true', 'maxSentenceLength': '20'},
                                               FakeJointParser({}), validator, [])
        assert learner.num_iterations == 7
        assert learner.margin == pytest.approx(0.5)
        assert learner.hard_updates
        assert learner.max_sentence_length == 20

    def test_from_params_defaults(self, validator):
        learner = MarginPerceptron.from_params({}, FakeJointParser({}), validator, [])
        assert learner.num_iterations == MarginPerceptron.DEFAULT_ITERATIONS
        assert learner.margin == MarginPerceptron.DEFAULT_MARGIN
        assert not learner.hard_updates

    def test_gold_debug_marks_optimal_items(self, model, validator):
        output = make_output([make_pair('a', 1.0, inside_score=2.0), make_pair('b', 2.0)])
        learner, data = self.make_learner({('q', 1.0): output}, validator)
        learner.training_data_debug = {data[0]: ('a', 1.0)}
        learner.train(model)
        assert 0 in learner.stats.gold_optimal[0]
        assert learner.stats.mean_parsing_time() == 3

    def test_gold_debug_requires_latent_form_and_result(self, model, validator):
        output = make_output([make_pair('a', 1.0, inside_score=2.0), make_pair('b', 2.0)])
        learner, data = self.make_learner({('q', 1.0): output}, validator, num_iterations=1)
        learner.training_data_debug = {data[0]: ('other', 1.0)}
        learner.train(model)
        assert 0 not in learner.stats.gold_optimal[0]

    def test_valid_candidate_outscoring_two_invalid_with_zero_margin_skips(self, validator):
        model = JointModel(SparseWeightVector({'a': 1.0}))
        output = make_output([make_pair('a', 1.0, parse_features={'a': 1.0}),
                              make_pair('b', 2.0, parse_features={'b': 1.0}),
                              make_pair('c', 3.0, parse_features={'c': 1.0})])
        learner, data = self.make_learner({('q', 1.0): output}, validator, margin=0.0)
        assert not learner.parameter_update(data[0], model, 0, 0)
        assert model.theta == SparseWeightVector({'a': 1.0})
        assert learner.stats.skips[0][LearningStats.NO_VIOLATION] == 1

    @pytest.mark.parametrize("hard_updates, expected", [
        (True, {'a': 1.0, 'c': -1.0}),
        (False, {'a': 0.5, 'b': 0.5, 'c': -1.0}),
    ])
    def test_hard_updates_use_max_scoring_valid_groups(self, model, hard_updates, expected):
        output = make_output([make_pair('a', 1.0, parse_score=2.0, parse_features={'a': 1.0}),
                              make_pair('b', 2.0, parse_score=0.0, parse_features={'b': 1.0}),
                              make_pair('c', 3.0, parse_score=0.0, parse_features={'c': 1.0})])
        learner, data = self.make_learner({('q', 1.0): output}, ResultSetValidator({1.0, 2.0}), hard_updates=hard_updates)
        assert learner.parameter_update(data[0], model, 0, 0)
        assert model.theta == SparseWeightVector(expected)
