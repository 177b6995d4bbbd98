#! /usr/bin/env python

"""
Joint (parse,execution) inference output.

A joint output aggregates the (parse,evaluation) inference pairs of one input into
derivation groups, one group per execution result, and computes the partition function
and the expected features of the joint model. Expected features are computed by propagating
outside scores from the groups down to the base parse forest, since the model factors as
parse score x execution score.

The base parse forest is external. It is expected to provide:
   expected_features(scorer) -> SparseWeightVector, where scorer maps a latent form to its outside score
   is_exact()                -> bool
"""
from math import exp

from sparse_weights import SparseWeightVector


class MalformedCandidateError(Exception):

    def __init__(self,pair,reason):
        self.pair   = pair
        self.reason = reason

    def __str__(self):
        return 'malformed inference pair, the execution result cannot be used as a key (%s)\n==> %s'%(self.reason,self.pair)


def accept_all(result):
    return True


def safe_exp(logscore):
    """
    exp() that saturates to +inf on large log scores instead of raising OverflowError
    """
    try:
        return exp(logscore)
    except OverflowError:
        return float('inf')


class Evaluation:
    """
    Outcome of one execution step: a result, its log score and the features of the execution step alone.
    """
    __slots__ = ['result','score','features']

    def __init__(self,result,score,features=None):
        self.result   = result
        self.score    = score
        self.features = features if features is not None else SparseWeightVector()

    def __str__(self):
        return '%s[%.4f]'%(self.result,self.score)


class ScoredPair:
    """
    An immutable (parse,evaluation) couple.

    The parse is a base parse object exposing:
       latent_form  : the semantic value (hashable)
       inside_score : linear domain mass of the latent form in the base forest
       score        : log score of the viterbi derivation of the latent form
       features     : features of the viterbi derivation of the latent form
    """
    __slots__ = ['parse','evaluation']

    def __init__(self,parse,evaluation):
        object.__setattr__(self,'parse',parse)
        object.__setattr__(self,'evaluation',evaluation)

    def __setattr__(self,name,value):
        raise AttributeError('ScoredPair is immutable')

    @property
    def latent_form(self):
        return self.parse.latent_form

    @property
    def execution_result(self):
        return self.evaluation.result

    @property
    def execution_score(self):
        return self.evaluation.score

    @property
    def parse_inside_score(self):
        return self.parse.inside_score

    @property
    def feature_contribution(self):
        return self.evaluation.features

    def inside_score(self):
        """
        @return exp(execution score) x parse inside score
        """
        if self.parse.inside_score == 0.0:
            return 0.0
        return safe_exp(self.evaluation.score) * self.parse.inside_score

    def viterbi_score(self):
        return self.parse.score + self.evaluation.score

    def __str__(self):
        return '%s => %s'%(self.latent_form,self.evaluation)


class DerivationGroup:
    """
    All the inference pairs sharing the same execution result.

    A group is also a joint parse candidate for learning: its score and features are those
    of its viterbi member (highest parse score + execution score, first one on ties).
    """
    def __init__(self,result,members):
        """
        @param result: the execution result shared by all the members
        @param members: a non empty sequence of ScoredPair
        """
        if not members:
            raise ValueError('a derivation group needs at least one member (result = %s)'%(result,))
        self._result       = result
        self._members      = tuple(members)
        self._inside_score = sum(pair.inside_score() for pair in self._members)
        self._viterbi      = max(self._members,key=lambda pair:pair.viterbi_score())

    @property
    def result(self):
        return self._result

    @property
    def members(self):
        return self._members

    @property
    def inside_score(self):
        return self._inside_score

    @property
    def score(self):
        return self._viterbi.viterbi_score()

    @property
    def latent_form(self):
        return self._viterbi.latent_form

    @property
    def features(self):
        """
        @return a fresh SparseWeightVector: viterbi parse features + execution features
        """
        phi = self._viterbi.parse.features.copy()
        phi += self._viterbi.feature_contribution
        return phi

    def __len__(self):
        return len(self._members)

    def __str__(self):
        return '%s (inside=%.4f, score=%.4f, %d pairs)'%(self._result,self._inside_score,self.score,len(self._members))


def filter_derivations(groups,filter=None,max_only=False):
    """
    Selects the groups whose result passes the filter.
    @param groups: a sequence of DerivationGroup
    @param filter: a predicate over execution results (None accepts everything)
    @param max_only: if True keeps only the groups with maximal inside score (ties included)
    @return a list of DerivationGroup
    """
    if filter is None:
        filter = accept_all
    selected = [group for group in groups if filter(group.result)]
    if max_only and selected:
        max_score = max(group.inside_score for group in selected)
        selected  = [group for group in selected if group.inside_score == max_score]
    return selected


class JointForestOutput:
    """
    Immutable output of joint inference for one input.
    """
    def __init__(self,base_output,inference_time,derivations,max_derivations,exact_evaluation):
        """
        @param base_output: the base parse forest
        @param inference_time: inference time in milliseconds (not interpreted)
        @param derivations: all the DerivationGroups
        @param max_derivations: the DerivationGroups with maximal inside score
        @param exact_evaluation: True if the execution step did not prune anything
        """
        self.base_output     = base_output
        self.inference_time  = inference_time
        self.derivations     = tuple(derivations)
        self.max_derivations = tuple(max_derivations)
        self.exact           = bool(exact_evaluation) and base_output.is_exact()

    def get_all_derivation_groups(self):
        return list(self.derivations)

    def get_max_derivation_groups(self):
        return list(self.max_derivations)

    #joint parser output interface (groups are the candidate parses)
    def get_all_parses(self):
        return list(self.derivations)

    def get_best_parses(self):
        return list(self.max_derivations)

    def get_inference_time(self):
        return self.inference_time

    def is_exact(self):
        return self.exact

    def expected_features(self,filter=None):
        """
        Computes the (unnormalized) expected features of the outputs whose result passes the filter.
        Divide by norm(filter) to get an expectation.
        @param filter: a predicate over execution results (None accepts everything)
        @return a SparseWeightVector
        """
        #Each group passing the filter is a root of the joint computation and gets an
        #implicit outside score of 1.0
        derivations_to_use = filter_derivations(self.derivations,filter)

        #Outside score of each latent form: sum over its pairs of 1.0 x exp(execution score)
        base_outside = {}
        for derivation in derivations_to_use:
            for pair in derivation.members:
                semantics = pair.latent_form
                base_outside[semantics] = base_outside.get(semantics,0.0) + 1.0 * safe_exp(pair.execution_score)

        #Latent forms without a surviving execution have probability 0 under the filter: exp(-inf) = 0
        def scorer(semantics):
            return base_outside.get(semantics,0.0)

        expected_features = self.base_output.expected_features(scorer)

        #Features of the execution step, weighted by outside (1.0) x inside of the pair
        for derivation in derivations_to_use:
            for pair in derivation.members:
                if pair.parse_inside_score == 0.0:
                    continue
                weight = safe_exp(pair.execution_score) * pair.parse_inside_score * 1.0
                pair.feature_contribution.add_times_into(weight,expected_features)
        return expected_features

    def norm(self,filter=None):
        """
        Partition function over the results passing the filter.
        @param filter: a predicate over execution results (None accepts everything)
        @return a float
        """
        return sum(derivation.inside_score for derivation in filter_derivations(self.derivations,filter))

    def __str__(self):
        return '\n'.join([str(derivation) for derivation in self.derivations])


class JointForestBuilder:
    """
    Collects inference pairs and freezes them into a JointForestOutput.
    """
    def __init__(self,base_output,inference_time=0):
        self.base_output      = base_output
        self.inference_time   = inference_time
        self.exact_evaluation = False
        self.inference_pairs  = [ ]

    def add_inference_pair(self,pair):
        self.inference_pairs.append(pair)
        return self

    def add_inference_pairs(self,pairs):
        self.inference_pairs.extend(pairs)
        return self

    def set_exact_evaluation(self,exact_evaluation):
        self.exact_evaluation = exact_evaluation
        return self

    def build(self):
        """
        Groups the pairs by execution result (first seen order) and builds the output.
        @return a JointForestOutput
        """
        groups = { }
        for pair in self.inference_pairs:
            try:
                members = groups.setdefault(pair.execution_result,[ ])
            except TypeError as e:
                raise MalformedCandidateError(pair,str(e)) from e
            members.append(pair)
        derivations     = [DerivationGroup(result,members) for result,members in groups.items()]
        max_derivations = filter_derivations(derivations,max_only=True)
        return JointForestOutput(self.base_output,self.inference_time,derivations,max_derivations,self.exact_evaluation)


def build_joint_output(base_output,pairs,inference_time=0,exact_evaluation=False):
    """
    @param base_output: the base parse forest
    @param pairs: a sequence of ScoredPair
    @param inference_time: inference time in milliseconds
    @param exact_evaluation: True if the execution step is exact
    @return a JointForestOutput
    """
    return JointForestBuilder(base_output,inference_time).add_inference_pairs(pairs).set_exact_evaluation(exact_evaluation).build()
