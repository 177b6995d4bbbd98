#! /usr/bin/env python

"""
Joint semantic parser for arithmetic questions.

A shift reduce parser (arc standard style) with CRF style scoring builds lambda terms from the
lexical entries of the tokens. Each latent form is then executed (evaluated to a number) and the
execution step gets its own score. The (parse,execution) pairs are aggregated by result in a
JointForestOutput, on which the learners operate.
"""
import argparse
import json
import logging
import sys
import time
from functional_core import TypeSystem, EvaluationError, LambdaApplication, denotation
from joint_forest import Evaluation, ScoredPair, build_joint_output, safe_exp
from joint_model import JointModel
from lexer import Lexicon
from perceptron import MarginPerceptron
from sparse_weights import SparseWeightVector
from stocgrad import ValidationStocGrad

L = logging.getLogger(__name__)


class SRAction:

    APPLY_LEFT  = '>'
    APPLY_RIGHT = '<'
    SHIFT       = 'S'
    DROP        = 'D'

    def __init__(self,act_type,act_macro=None):
        self.act_type  = act_type
        self.act_macro = act_macro

        #label pushed on the stack and used as feature input by the CRF.
        self.stack_label = "%s[%s]"%(act_type,act_macro) if act_macro else act_type

    def is_reduction(self):
        return self.act_type in [SRAction.APPLY_LEFT,SRAction.APPLY_RIGHT]

    def logical_apply(self,lhs,rhs):
        """
        One step of compositional LF construction.
        @param lhs : a lambda term
        @param rhs : a lambda term
        @return    : a lambda term
        """
        if self.act_type == SRAction.APPLY_LEFT:
            return LambdaApplication(lhs,rhs)
        elif self.act_type == SRAction.APPLY_RIGHT:
            return LambdaApplication(rhs,lhs)
        raise ValueError('action %s does not compose terms'%(self.stack_label,))

    def logical_type(self,lhs_type,rhs_type):
        """
        @return the type of the reduced term (TypeSystem.FAILURE if it does not typecheck)
        """
        if self.act_type == SRAction.APPLY_LEFT:
            return TypeSystem.deduce_application_type(lhs_type,rhs_type)
        elif self.act_type == SRAction.APPLY_RIGHT:
            return TypeSystem.deduce_application_type(rhs_type,lhs_type)
        return TypeSystem.FAILURE

    def head(self,lhs,rhs):
        """
        @return the head index of the reduction: the functor
        """
        return lhs if self.act_type == SRAction.APPLY_LEFT else rhs

    def __str__(self):
        return self.stack_label


class StackElement:
    """
    Type of elements pushed on the stack
    """
    __slots__ = ['label','head_idx','logical_type']

    def __init__(self,label,head_idx,logical_type):
        self.label        = label
        self.head_idx     = head_idx
        self.logical_type = logical_type

    def __str__(self):
        return '%s[%d]'%(self.label,self.head_idx)


class BeamCell:

    __slots__ = ['prev','action','config']

    def __init__(self,prev_cell,action,config):
        self.prev   = prev_cell
        self.action = action
        self.config = config

    @staticmethod
    def init_element(config):
        return BeamCell(None,None,config)


class BaseParse:
    """
    All the derivations of the base parser sharing the same latent form.
    """
    def __init__(self,latent_form):
        self.latent_form  = latent_form
        self.inside_score = 0.0
        self.score        = -float('inf')
        self.features     = SparseWeightVector()
        self.nderivations = 0

    def add_derivation(self,logscore,phi):
        self.inside_score += safe_exp(logscore)
        self.nderivations += 1
        if logscore > self.score:
            self.score    = logscore
            self.features = phi

    def __str__(self):
        return '%s [%.4f] (%d derivations)'%(self.latent_form,self.score,self.nderivations)


class BeamParseOutput:
    """
    Base parser output: the derivations found by beam search, grouped by latent form.
    """
    def __init__(self,derivations,exact):
        """
        @param derivations: a list of (latent form, log score, feature vector) triples
        @param exact: False if the beam pruned some derivation
        """
        self.derivations = derivations
        self.exact       = exact
        self.parses      = { }
        for latent_form,logscore,phi in derivations:
            if latent_form not in self.parses:
                self.parses[latent_form] = BaseParse(latent_form)
            self.parses[latent_form].add_derivation(logscore,phi)

    def get_all_parses(self):
        return list(self.parses.values())

    def is_exact(self):
        return self.exact

    def norm(self):
        return sum(parse.inside_score for parse in self.parses.values())

    def expected_features(self,scorer):
        """
        Unnormalized expected features, given the outside score of each latent form.
        @param scorer: a function latent form -> outside score
        @return a SparseWeightVector
        """
        expected = SparseWeightVector()
        for latent_form,logscore,phi in self.derivations:
            outside = scorer(latent_form)
            if outside != 0.0:
                phi.add_times_into(outside * safe_exp(logscore),expected)
        return expected


class JointParser:
    """
    That's a shift reduce parser with CRF style statistical inference, followed by execution
    of the logical forms.
    """
    DEFAULT_BEAM_SIZE = 100

    def __init__(self,lexicon,beam_size=DEFAULT_BEAM_SIZE):
        self.lexicon      = lexicon
        self.beam_size    = beam_size
        self.actions_list = self.make_actions()

    def make_actions(self):
        """
        @return a list of SRAction instances
        """
        actions = [SRAction(SRAction.DROP),SRAction(SRAction.APPLY_LEFT),SRAction(SRAction.APPLY_RIGHT)]
        actions.extend([SRAction(SRAction.SHIFT,act_macro=macro) for macro in self.lexicon.macros()])
        return actions

    #transition system
    def init_configuration(self,input_size):
        return ([],list(range(input_size)),0.0)

    def exec_action(self,configuration,toklist,action,score):
        """
        Executes an action on configuration and returns the output configuration.
        @param score: the log score of the new configuration
        """
        S,B,_ = configuration
        if action.act_type == SRAction.SHIFT:
            token = toklist[B[0]]
            return (S + [StackElement(action.act_macro,B[0],token.logical_type(action.act_macro))],B[1:],score)
        elif action.act_type == SRAction.DROP:
            return (S,B[1:],score)
        stack_elt = StackElement(action.stack_label,action.head(S[-2].head_idx,S[-1].head_idx),action.logical_type(S[-2].logical_type,S[-1].logical_type))
        return (S[:-2]+[stack_elt],B,score)

    def generate_constraints(self,configuration,toklist,prev_action):
        """
        For each action, says if it is allowed from the current configuration.
        @return a list of boolean flags
        """
        S,B,_ = configuration
        flags = [True] * len(self.actions_list)
        for idx,act in enumerate(self.actions_list):
            if act.act_type in [SRAction.SHIFT,SRAction.DROP] and not B:
                flags[idx] = False
            elif act.act_type == SRAction.SHIFT and act.act_macro not in toklist[B[0]].entries:
                flags[idx] = False
            elif act.act_type == SRAction.DROP and prev_action is not None and prev_action.is_reduction():
                flags[idx] = False
            elif act.is_reduction() and (len(S) < 2 or act.logical_type(S[-2].logical_type,S[-1].logical_type) == TypeSystem.FAILURE):
                flags[idx] = False
        return flags

    def valid_final_config(self,config):
        S,B,_ = config
        return not B and len(S) == 1 and S[-1].logical_type == (TypeSystem.NUMERIC,)

    #scoring system
    def extract_xrepresentation(self,configuration,toklist):
        """
        Extracts symbols from a configuration
        @return a list of symbols (x values)
        """
        S,B,_ = configuration
        if len(S) >= 2:
            stack_labels = [('S',S[-2].label,S[-1].label),('S',toklist[S[-2].head_idx].form,toklist[S[-1].head_idx].form)]
        elif len(S) == 1:
            stack_labels = [('S',S[-1].label,'#START#'),('S',toklist[S[-1].head_idx].form,'#START#')]
        else:
            stack_labels = [('S','#START#')]

        if len(B) >= 2:
            buffer_labels = [('B',toklist[B[0]].form,toklist[B[1]].form)]
        elif len(B) == 1:
            buffer_labels = [('B',toklist[B[0]].form,'#END#')]
        else:
            buffer_labels = [('B','#END#')]
        return [('BIAS',)] + stack_labels + buffer_labels

    def predict_actions(self,configuration,toklist,prev_action,model):
        """
        @return a list of (action, local log score) for the allowed actions
        """
        xvec_keys = self.extract_xrepresentation(configuration,toklist)
        cflags    = self.generate_constraints(configuration,toklist,prev_action)
        return [(act,model.score_keys(xvec_keys,act.stack_label)) for act,flag in zip(self.actions_list,cflags) if flag]

    def featurize_derivation(self,derivation,toklist):
        """
        @param derivation : a list of (configuration,SRAction) couples
        @return a SparseWeightVector
        """
        phi = SparseWeightVector()
        for config,action in derivation:
            if action is None:
                break
            phi += SparseWeightVector.code_phi(self.extract_xrepresentation(config,toklist),action.stack_label)
        return phi

    #search & derivation
    def predict_beam(self,K,toklist,model):
        """
        Predicts derivations with beam search.
        @param K: beam width
        @return the list of final beam cells and a boolean, False if some prediction was pruned
        """
        next_beam  = [BeamCell.init_element(self.init_configuration(len(toklist)))]
        final_beam = [ ]
        exact      = True
        while next_beam:
            predictions = [ ]
            for cell in next_beam:
                prefix = cell.config[2]
                predictions.extend([(cell,act,prefix + score) for act,score in self.predict_actions(cell.config,toklist,cell.action,model)])
            predictions.sort(key=lambda pred:pred[2],reverse=True)
            if len(predictions) > K:
                exact = False
                predictions = predictions[:K]
            next_beam = [ ]
            for prev_cell,act,score in predictions:
                config = self.exec_action(prev_cell.config,toklist,act,score)
                if self.valid_final_config(config):
                    final_beam.append(BeamCell(prev_cell,act,config))
                else:
                    next_beam.append(BeamCell(prev_cell,act,config))
        return final_beam,exact

    def make_derivation(self,beam_cell):
        """
        Builds a derivation from a beam cell by backtracking to the origin.
        @return a list of (configuration,SRAction) couples, the last action is None
        """
        deriv = [(beam_cell.config,None)]
        while beam_cell.action is not None:
            deriv.append((beam_cell.prev.config,beam_cell.action))
            beam_cell = beam_cell.prev
        deriv.reverse()
        return deriv

    def make_logical_form(self,derivation,toklist):
        """
        Builds the lambda term of a derivation
        """
        stack = [ ]
        for config,action in derivation:
            if action is None:
                break
            elif action.act_type == SRAction.SHIFT:
                stack.append(toklist[config[1][0]].logical_form(action.act_macro))
            elif action.is_reduction():
                top    = stack.pop()
                subtop = stack.pop()
                stack.append(action.logical_apply(subtop,top))
        return stack[-1]

    def parse_base(self,toklist,model):
        """
        @return a BeamParseOutput
        """
        final_beam,exact = self.predict_beam(self.beam_size,toklist,model)
        derivations = [ ]
        for beam_cell in final_beam:
            deriv = self.make_derivation(beam_cell)
            derivations.append((self.make_logical_form(deriv,toklist),beam_cell.config[2],self.featurize_derivation(deriv,toklist)))
        return BeamParseOutput(derivations,exact)

    #execution
    def execution_features(self,result):
        phi = SparseWeightVector()
        phi[('EXEC','integer' if result.is_integer() else 'fraction')] = 1.0
        if result < 0:
            phi[('EXEC','negative')] = 1.0
        return phi

    def execute(self,latent_form,model):
        """
        Evaluates a latent form.
        @return an Evaluation or None if the evaluation fails
        """
        try:
            result = round(float(denotation(latent_form)),6)
        except EvaluationError as e:
            L.debug('execution failure: %s', e)
            return None
        phi = self.execution_features(result)
        return Evaluation(result,model.score_features(phi),phi)

    def parse(self,toklist,model):
        """
        Joint inference.
        @param toklist: a list of Tokens
        @param model: a JointModel
        @return a JointForestOutput
        """
        start = time.time()
        base_output = self.parse_base(toklist,model)
        pairs = [ ]
        for parse in base_output.get_all_parses():
            evaluation = self.execute(parse.latent_form,model)
            if evaluation is not None:
                pairs.append(ScoredPair(parse,evaluation))
        inference_time = int((time.time() - start) * 1000)
        return build_joint_output(base_output,pairs,inference_time,exact_evaluation=True)


class QuestionAnswer:
    """
    A training item: a question, its tokens (the parser input) and the reference answer.
    """
    def __init__(self,question,sample,answer):
        self.question = question
        self.sample   = sample
        self.answer   = answer

    def __str__(self):
        return '%s => %s'%(self.question,self.answer)


class AnswerValidator:
    """
    A hypothesis is valid if its execution result is the reference answer.
    """
    def __init__(self,precision=6):
        self.precision = precision

    def is_valid(self,data_item,hypothesis):
        latent_form,result = hypothesis
        if result is None:
            return False
        return round(float(result),self.precision) == round(float(data_item.answer),self.precision)


def read_data(filename,lexicon):
    """
    Reads a json lines file, each line like {"question": "two plus three", "answer": 5}
    @return a list of QuestionAnswer
    """
    data = [ ]
    with open(filename) as istream:
        for line in istream:
            if line.strip():
                jline = json.loads(line)
                data.append(QuestionAnswer(jline['question'],lexicon.tokenize(jline['question']),jline['answer']))
    return data


def evaluate(parser,model,data,validator):
    """
    Evaluates the model with the max inside score result of each question.
    @return a couple (accuracy, average probability mass of the valid results)
    """
    correct = 0
    mass    = 0.0
    for data_item in data:
        output = parser.parse(data_item.sample,model)
        best   = output.get_best_parses()
        if len(best) == 1 and validator.is_valid(data_item,(best[0].latent_form,best[0].result)):
            correct += 1
        norm = output.norm()
        if norm > 0:
            mass += output.norm(lambda result:validator.is_valid(data_item,(None,result))) / norm
        L.info('%s : %s', data_item, ', '.join([str(group.result) for group in best]) or 'no parse')
    N = len(data)
    if N == 0:
        return 0.0,0.0
    return correct/N,mass/N


def main(argv=None):
    argparser = argparse.ArgumentParser(description='Trains a joint arithmetic semantic parser')
    argparser.add_argument('data',help='training data (json lines with question and answer fields)')
    argparser.add_argument('--test',help='evaluation data (defaults to the training data)')
    argparser.add_argument('--lexicon',help='lexicon file (phrase<TAB>macro<TAB>lambda term)')
    argparser.add_argument('--learner',choices=['perceptron','stocgrad'],default='perceptron')
    argparser.add_argument('--epochs',type=int,default=MarginPerceptron.DEFAULT_ITERATIONS)
    argparser.add_argument('--margin',type=float,default=MarginPerceptron.DEFAULT_MARGIN)
    argparser.add_argument('--hard',action='store_true',help='hard updates (only max scoring valid parses are positive samples)')
    argparser.add_argument('--alpha0',type=float,default=ValidationStocGrad.DEFAULT_ALPHA0)
    argparser.add_argument('--c',type=float,default=ValidationStocGrad.DEFAULT_C)
    argparser.add_argument('--beam',type=int,default=JointParser.DEFAULT_BEAM_SIZE)
    argparser.add_argument('--log-level',default='INFO')
    args = argparser.parse_args(argv)

    logging.basicConfig(level=getattr(logging,args.log_level.upper()),format='%(asctime)s %(name)s %(levelname)s %(message)s')

    lexicon   = Lexicon.from_file(args.lexicon) if args.lexicon else Lexicon()
    parser    = JointParser(lexicon,beam_size=args.beam)
    validator = AnswerValidator()
    train     = read_data(args.data,lexicon)
    test      = read_data(args.test,lexicon) if args.test else train

    params = {'iter':str(args.epochs),'margin':str(args.margin),'hard':'true' if args.hard else 'false',
              'alpha0':str(args.alpha0),'c':str(args.c)}
    if args.learner == 'perceptron':
        learner = MarginPerceptron.from_params(params,parser,validator,train)
    else:
        learner = ValidationStocGrad.from_params(params,parser,validator,train)

    model = JointModel()
    learner.train(model)
    accuracy,mass = evaluate(parser,model,test,validator)
    L.info('accuracy = %.4f, valid probability mass = %.4f', accuracy, mass)
    return 0


if __name__ == '__main__':
    sys.exit(main())
