#! /usr/bin/env python

"""
Shared machinery of the online learners: the epoch loop and the learning statistics.
"""
import logging
import sys
from collections import Counter, defaultdict

L = logging.getLogger(__name__)


class LearningStats:
    """
    Per epoch bookkeeping of what happened to each training item.
    """
    NO_PARSES      = 'no-parses'
    NO_SPLIT       = 'no-valid-invalid-split'
    NO_VIOLATION   = 'no-margin-violation'
    NO_VALID       = 'no-valid-parse'
    TOO_LONG       = 'too-long'

    def __init__(self):
        self.parsing_times   = [ ]
        self.gold_optimal    = defaultdict(set)
        self.valid_parse     = defaultdict(set)
        self.updates         = defaultdict(set)
        self.skips           = defaultdict(Counter)

    def record_model_parsing(self,inference_time):
        self.parsing_times.append(inference_time)

    def gold_is_optimal(self,item_counter,epoch_number):
        self.gold_optimal[epoch_number].add(item_counter)

    def has_valid_parse(self,item_counter,epoch_number):
        self.valid_parse[epoch_number].add(item_counter)

    def triggered_update(self,item_counter,epoch_number):
        self.updates[epoch_number].add(item_counter)

    def skipped(self,reason,item_counter,epoch_number):
        self.skips[epoch_number][reason] += 1

    def num_updates(self,epoch_number):
        return len(self.updates[epoch_number])

    def summary(self,epoch_number):
        """
        @return a one line summary of an epoch
        """
        skips = self.skips[epoch_number]
        return 'epoch %d: %d updates, %d with valid parse, %d gold optimal, skipped: %s'%(epoch_number,
                                                                                        len(self.updates[epoch_number]),
                                                                                        len(self.valid_parse[epoch_number]),
                                                                                        len(self.gold_optimal[epoch_number]),
                                                                                        ', '.join(['%s=%d'%(reason,count) for reason,count in sorted(skips.items())]) or 'none')

    def mean_parsing_time(self):
        if not self.parsing_times:
            return 0.0
        return sum(self.parsing_times) / len(self.parsing_times)


class AbstractLearner:
    """
    Online learner over a training collection. Subclasses implement parameter_update(...).

    A training item is expected to expose a sample attribute, the parser input.
    """
    def __init__(self,parser,validator,training_data,num_iterations=4,max_sentence_length=sys.maxsize,
                 training_data_debug=None,parser_output_logger=None):
        """
        @param parser: a joint parser, parse(sample,model) -> joint output
        @param validator: an oracle, is_valid(data_item,(latent_form,result)) -> bool
        @param training_data: a sequence of training items
        @param num_iterations: number of epochs
        @param max_sentence_length: items whose sample is longer are skipped
        @param training_data_debug: an optional dict item -> gold (latent_form,result), for stats only
        @param parser_output_logger: an optional callable (output,model)
        """
        self.parser               = parser
        self.validator            = validator
        self.training_data        = training_data
        self.num_iterations       = num_iterations
        self.max_sentence_length  = max_sentence_length
        self.training_data_debug  = training_data_debug if training_data_debug is not None else { }
        self.parser_output_logger = parser_output_logger
        self.stats                = LearningStats()

    def train(self,model):
        """
        Runs all the epochs. Theta is updated in place.
        @param model: a JointModel
        """
        for epoch_number in range(self.num_iterations):
            L.info('Training epoch %d', epoch_number)
            for item_counter,data_item in enumerate(self.training_data):
                L.info('%d : ================== [%d]', item_counter, epoch_number)
                L.info('Sample: %s', data_item)
                if len(data_item.sample) > self.max_sentence_length:
                    L.info('Sample too long, skipping')
                    self.stats.skipped(LearningStats.TOO_LONG,item_counter,epoch_number)
                    continue
                self.parameter_update(data_item,model,item_counter,epoch_number)
            L.info(self.stats.summary(epoch_number))
        L.info('Mean model parsing time: %.1fms', self.stats.mean_parsing_time())
        return model

    def parameter_update(self,data_item,model,item_counter,epoch_number):
        raise NotImplementedError()

    def validate(self,data_item,hypothesis):
        """
        @param hypothesis: a (latent_form,result) couple
        """
        return self.validator.is_valid(data_item,hypothesis)

    def parse(self,data_item,model):
        """
        Parses with the current model and records timing.
        @return the joint output
        """
        output = self.parser.parse(data_item.sample,model)
        self.stats.record_model_parsing(output.get_inference_time())
        if self.parser_output_logger:
            self.parser_output_logger(output,model)
        return output

    def is_gold_debug_correct(self,data_item,latent_form,result):
        """
        @return True if (latent_form,result) is the gold pair of the item in training_data_debug
        """
        if data_item in self.training_data_debug:
            return self.training_data_debug[data_item] == (latent_form,result)
        return False

    def log_parse(self,data_item,parse,valid,model):
        L.debug('%s[%.4f] %s => %s',
                '* ' if valid else '  ', model.score(parse), parse.latent_form, parse.result)
