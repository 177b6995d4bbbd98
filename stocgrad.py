#! /usr/bin/env python

"""
Validation based stochastic gradient learner (CRF style objective).

The validation filter only looks at execution results, so the latent form is marginalized out:
the gradient is E[phi | valid result] - E[phi], computed from the joint output statistics.
"""
import logging
import sys

from learn import AbstractLearner, LearningStats

L = logging.getLogger(__name__)


class ValidationStocGrad(AbstractLearner):

    DEFAULT_ALPHA0 = 1.0
    DEFAULT_C      = 0.0001

    def __init__(self,parser,validator,training_data,num_iterations=4,alpha0=DEFAULT_ALPHA0,c=DEFAULT_C,
                 max_sentence_length=sys.maxsize,training_data_debug=None,parser_output_logger=None):
        """
        @param alpha0: initial learning rate
        @param c: learning rate decay, the rate at step t is alpha0 / (1 + c * t)
        (other params: see AbstractLearner)
        """
        super().__init__(parser,validator,training_data,num_iterations=num_iterations,max_sentence_length=max_sentence_length,
                         training_data_debug=training_data_debug,parser_output_logger=parser_output_logger)
        self.alpha0       = alpha0
        self.c            = c
        self.step_counter = 0

    @staticmethod
    def from_params(params,parser,validator,training_data):
        return ValidationStocGrad(parser,validator,training_data,
                                  num_iterations=int(params.get('iter',4)),
                                  alpha0=float(params.get('alpha0',ValidationStocGrad.DEFAULT_ALPHA0)),
                                  c=float(params.get('c',ValidationStocGrad.DEFAULT_C)),
                                  max_sentence_length=int(params.get('maxSentenceLength',sys.maxsize)))

    def learning_rate(self):
        return self.alpha0 / (1.0 + self.c * self.step_counter)

    def parameter_update(self,data_item,model,item_counter,epoch_number):
        """
        @return True if theta was updated
        """
        output = self.parse(data_item,model)
        if not output.get_all_parses():
            L.info('No parses for: %s', data_item)
            self.stats.skipped(LearningStats.NO_PARSES,item_counter,epoch_number)
            return False

        def valid_result(result):
            return self.validate(data_item,(None,result))

        norm       = output.norm()
        valid_norm = output.norm(valid_result)
        L.info('Valid probability mass: %.4f', valid_norm / norm if norm > 0 else 0.0)
        if valid_norm == 0.0:
            L.info('No valid parses -- skipping')
            self.stats.skipped(LearningStats.NO_VALID,item_counter,epoch_number)
            return False
        self.stats.has_valid_parse(item_counter,epoch_number)

        gradient = output.expected_features(valid_result)
        gradient *= 1.0 / valid_norm
        output.expected_features().add_times_into(-1.0 / norm,gradient)
        gradient.drop_zeros()

        rate = self.learning_rate()
        L.info('Gradient (rate=%.4f): %s', rate, gradient)
        model.apply_update(gradient,rate)
        self.step_counter += 1
        self.stats.triggered_update(item_counter,epoch_number)
        return True
