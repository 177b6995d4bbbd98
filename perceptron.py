#! /usr/bin/env python

"""
Validation based margin perceptron for joint (parse,execution) models.

An update is triggered when a valid parse does not outscore an invalid one by at least the margin.
Validity is decided by an external validator looking at both the latent form and the execution result.
Update step after the loss sensitive perceptron of Singh-Miller and Collins (2007).
"""
import logging
import sys

from learn import AbstractLearner, LearningStats
from sparse_weights import SparseWeightVector

L = logging.getLogger(__name__)


def create_valid_invalid_sets(data_item,parses,validator,hard_updates=False):
    """
    Splits a list of candidate parses into valid and invalid ones.

    With hard updates only the highest scoring valid parses are kept (exact ties included).
    @param data_item: the training item
    @param parses: a sequence of candidates with latent_form, result and score attributes
    @param validator: is_valid(data_item,(latent_form,result)) -> bool
    @param hard_updates: a boolean
    @return a couple of lists (valid parses, invalid parses)
    """
    valid_parses   = [ ]
    invalid_parses = [ ]
    valid_score    = -sys.float_info.max
    for parse in parses:
        if validator.is_valid(data_item,(parse.latent_form,parse.result)):
            if hard_updates:
                if parse.score > valid_score:
                    valid_score  = parse.score
                    valid_parses = [parse]
                elif parse.score == valid_score:
                    valid_parses.append(parse)
            else:
                valid_parses.append(parse)
        else:
            invalid_parses.append(parse)
    return valid_parses,invalid_parses


def margin_violating_sets(model,margin,valid_parses,invalid_parses):
    """
    A (valid,invalid) couple violates the margin if score(valid) - score(invalid) < margin.
    A parse is violating if it takes part in at least one violating couple.
    @param model: a JointModel
    @param margin: a float
    @return a couple of lists (violating valid parses, violating invalid parses), input order preserved
    """
    valid_scores   = [model.score(parse) for parse in valid_parses]
    invalid_scores = [model.score(parse) for parse in invalid_parses]

    violating_valid   = set()
    violating_invalid = set()
    for vidx,vscore in enumerate(valid_scores):
        for iidx,iscore in enumerate(invalid_scores):
            if vscore - iscore < margin:
                violating_valid.add(vidx)
                violating_invalid.add(iidx)
    return ([parse for idx,parse in enumerate(valid_parses) if idx in violating_valid],
            [parse for idx,parse in enumerate(invalid_parses) if idx in violating_invalid])


def construct_update(violating_valid,violating_invalid,model):
    """
    Averaged features of the violating valid parses minus averaged features of the violating invalid ones.
    @return a SparseWeightVector
    """
    update = SparseWeightVector()
    for parse in violating_valid:
        parse.features.add_times_into(1.0 / len(violating_valid),update)
    for parse in violating_invalid:
        parse.features.add_times_into(-1.0 / len(violating_invalid),update)
    return update.drop_zeros()


class MarginPerceptron(AbstractLearner):

    DEFAULT_MARGIN     = 1.0
    DEFAULT_ITERATIONS = 4

    def __init__(self,parser,validator,training_data,num_iterations=DEFAULT_ITERATIONS,margin=DEFAULT_MARGIN,hard_updates=False,
                 max_sentence_length=sys.maxsize,training_data_debug=None,parser_output_logger=None):
        """
        @param margin: updates are done when this margin is violated
        @param hard_updates: only use the max scoring valid parses as positive samples
        (other params: see AbstractLearner)
        """
        super().__init__(parser,validator,training_data,num_iterations=num_iterations,max_sentence_length=max_sentence_length,
                         training_data_debug=training_data_debug,parser_output_logger=parser_output_logger)
        self.margin       = margin
        self.hard_updates = hard_updates
        L.info('Init MarginPerceptron: numIterations=%d, margin=%f, hard=%s, trainingData.size()=%d, maxSentenceLength=%d',
               num_iterations, margin, hard_updates, len(training_data), max_sentence_length)

    @staticmethod
    def from_params(params,parser,validator,training_data):
        """
        Creates a learner from a flat dict of string parameters:
           hard               : 'true' to use hard updates (default false)
           margin             : float (default 1.0)
           iter               : number of epochs (default 4)
           maxSentenceLength  : int
        """
        return MarginPerceptron(parser,validator,training_data,
                                num_iterations=int(params.get('iter',MarginPerceptron.DEFAULT_ITERATIONS)),
                                margin=float(params.get('margin',MarginPerceptron.DEFAULT_MARGIN)),
                                hard_updates=params.get('hard') == 'true',
                                max_sentence_length=int(params.get('maxSentenceLength',sys.maxsize)))

    def parameter_update(self,data_item,model,item_counter,epoch_number):
        """
        One training step: parse, split, check the margin and update theta.
        Items yielding no gradient signal are skipped.
        @return True if theta was updated
        """
        output            = self.parse(data_item,model)
        model_parses      = output.get_all_parses()
        best_model_parses = output.get_best_parses()

        if not model_parses:
            L.info('No parses for: %s', data_item)
            L.info('Skipping parameter update')
            self.stats.skipped(LearningStats.NO_PARSES,item_counter,epoch_number)
            return False

        L.info('Created %d model parses for training sample', len(model_parses))
        L.info('Model parsing time: %.4fsec', output.get_inference_time() / 1000.0)

        if len(best_model_parses) == 1 and self.is_gold_debug_correct(data_item,best_model_parses[0].latent_form,best_model_parses[0].result):
            self.stats.gold_is_optimal(item_counter,epoch_number)

        valid_parses,invalid_parses = create_valid_invalid_sets(data_item,model_parses,self.validator,self.hard_updates)
        L.info('%d valid parses, %d invalid parses', len(valid_parses), len(invalid_parses))
        for parse in valid_parses:
            self.log_parse(data_item,parse,True,model)

        if valid_parses:
            self.stats.has_valid_parse(item_counter,epoch_number)

        if not valid_parses or not invalid_parses:
            L.info('No valid/invalid parses -- skipping')
            self.stats.skipped(LearningStats.NO_SPLIT,item_counter,epoch_number)
            return False

        violating_valid,violating_invalid = margin_violating_sets(model,self.margin,valid_parses,invalid_parses)
        L.info('%d violating valid parses, %d violating invalid parses', len(violating_valid), len(violating_invalid))
        if not violating_valid:
            L.info('There are no violating valid/invalid parses -- skipping')
            self.stats.skipped(LearningStats.NO_VIOLATION,item_counter,epoch_number)
            return False
        for parse in violating_valid:
            self.log_parse(data_item,parse,True,model)
        for parse in violating_invalid:
            self.log_parse(data_item,parse,False,model)

        update = construct_update(violating_valid,violating_invalid,model)
        L.info('Update: %s', update)
        model.apply_update(update,1.0)
        self.stats.triggered_update(item_counter,epoch_number)
        return True
