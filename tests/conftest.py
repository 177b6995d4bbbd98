import sys
from pathlib import Path

import pytest

# Add the repository root to sys.path so that the top level modules can be imported
ROOT_PATH = Path(__file__).resolve().parent.parent
if ROOT_PATH.as_posix() not in sys.path:
    sys.path.insert(0, ROOT_PATH.as_posix())

from joint_forest import Evaluation, ScoredPair, build_joint_output
from joint_model import JointModel
from sparse_weights import SparseWeightVector


class FakeParse:
    """Base parse with explicit scores and features."""

    def __init__(self, latent_form, inside_score=1.0, score=0.0, features=None):
        self.latent_form = latent_form
        self.inside_score = inside_score
        self.score = score
        self.features = SparseWeightVector(features or {})


class FakeBaseForest:
    """Base forest whose expected features are sum(outside x inside x phi) over its parses."""

    def __init__(self, parses=(), exact=True):
        self.parses = list(parses)
        self.exact = exact
        self.scored_latent_forms = []

    def expected_features(self, scorer):
        expected = SparseWeightVector()
        for parse in self.parses:
            self.scored_latent_forms.append(parse.latent_form)
            parse.features.add_times_into(scorer(parse.latent_form) * parse.inside_score, expected)
        return expected

    def is_exact(self):
        return self.exact


class FakeItem:
    """Training item: a sample (parser input) and an expected result."""

    def __init__(self, sample, answer):
        self.sample = sample
        self.answer = answer

    def __str__(self):
        return "%s => %s" % (self.sample, self.answer)


class FakeValidator:
    """A hypothesis is valid if its result equals the item answer."""

    def is_valid(self, data_item, hypothesis):
        latent_form, result = hypothesis
        return result == data_item.answer


class FakeJointParser:
    """Returns prepared joint outputs, keyed by sample."""

    def __init__(self, outputs):
        self.outputs = outputs
        self.calls = 0

    def parse(self, sample, model):
        self.calls += 1
        return self.outputs[sample]


def make_pair(latent_form, result, inside_score=1.0, exec_score=0.0, parse_score=0.0,
              parse_features=None, exec_features=None):
    parse = FakeParse(latent_form, inside_score, parse_score, parse_features)
    return ScoredPair(parse, Evaluation(result, exec_score, SparseWeightVector(exec_features or {})))


def make_output(pairs, exact=True, inference_time=3):
    base = FakeBaseForest([pair.parse for pair in pairs], exact=exact)
    return build_joint_output(base, pairs, inference_time, exact_evaluation=True)


@pytest.fixture
def model():
    """An empty joint model."""
    return JointModel()


@pytest.fixture
def validator():
    return FakeValidator()
