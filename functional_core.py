#! /usr/bin/env python

"""
Typed lambda calculus used as meaning representation (latent forms) by the arithmetic parser.

Terms use De Bruijn indexes for bound variables and are normalized in place by value().
Terms compare and hash by their printed form, so that they can be used as dictionary keys:
never normalize a term used as a key, normalize a copy (see denotation()).
"""
import copy
import logging

L = logging.getLogger(__name__)


class TypeSystem:
    """
    Namespace for typing stuff.
    A type is a tuple of atomic types, the last one being the return type:
    ('num',) is a number, ('num','num') a function from numbers to numbers.
    """
    NUMERIC   = 'num'
    FAILURE   = u'⊥' #bottom symbol (least general type)

    @staticmethod
    def strip_brackets(tuple_type):
        if type(tuple_type) == tuple and len(tuple_type) == 1 and type(tuple_type[0]) == tuple:
            return tuple_type[0]
        return tuple_type

    @staticmethod
    def add_brackets(tuple_type):
        if type(tuple_type) != tuple: #an extracted tuple element can become a non tuple
            tuple_type = (tuple_type,)
        return tuple_type

    @staticmethod
    def concat_types(fun_type,arg_type):
        if len(fun_type) == 1:
            return fun_type+arg_type
        return ((fun_type,)+arg_type)

    @staticmethod
    def deduce_application_type(func_type,arg_type):
        """
        Performs a modus ponens inference for an application term
        @param func_type: the type of a functor
        @param arg_type: the type of an argument
        @return the deduced type or TypeSystem.FAILURE
        """
        if arg_type and func_type and func_type != TypeSystem.FAILURE and arg_type != TypeSystem.FAILURE:
            ftype = TypeSystem.add_brackets(func_type[0])
            if ftype == arg_type:
                ret_type = TypeSystem.strip_brackets(func_type[1:]) #the ret_type can be overparenthetized
                if ret_type: #empty if func type was not functional
                    return ret_type
        return TypeSystem.FAILURE

    @staticmethod
    def typecheck(term):
        """
        Statically type checks a lambda term and returns its type
        """
        if isinstance(term,(LambdaVariable,ConstantFunction)):
            return TypeSystem.add_brackets(term.ttype)
        elif isinstance(term,LambdaAbstraction):
            return TypeSystem.concat_types(term.boundvar_type,TypeSystem.typecheck(term.body))
        elif isinstance(term,LambdaApplication):
            func_type = TypeSystem.typecheck(term.termA)
            arg_type  = TypeSystem.typecheck(term.termB)
            return TypeSystem.deduce_application_type(func_type,arg_type)
        L.warning('type checker cannot type %s', term)
        return TypeSystem.FAILURE


class EvaluationError(Exception):

    def __init__(self,term,msg):
        self.term = term
        self.msg  = msg

    def __str__(self):
        return '%s (term = %s)'%(self.msg,str(self.term))


class NamingContext(object):
    """
    Flat execution context storing the bindings of builtins and define(d) functions.
    """
    def __init__(self,debug=False):
        self.name_dic = {}
        self.debug    = debug

    def is_bound_name(self,name):
        return name in self.name_dic

    def __getitem__(self,key):
        return self.name_dic[key]

    def __setitem__(self,key,value):
        if self.debug:
            L.debug('binding name %s', key)
        self.name_dic[key] = value

    def __str__(self):
        return 'Bound names: %s'%(",".join(self.name_dic.keys()))

    @staticmethod
    def make_std_builtins_context(debug=False):
        """
        The preferred way to instanciate a naming context.
        @return a NamingContext with the arithmetic builtins
        """
        context = NamingContext(debug)
        for f in [ExtAddition(),ExtSubstraction(),ExtMultiplication(),ExtDivision()]:
            context[f.fun_name] = f
        return context


class LambdaTerm(object):
    """
    Base class of all terms: equality and hashing on the printed form.
    """
    def __eq__(self,other):
        if not isinstance(other,LambdaTerm):
            return NotImplemented
        return type(self) == type(other) and str(self) == str(other)

    def __hash__(self):
        return hash(str(self))

    def __repr__(self):
        return str(self)


class LambdaVariable(LambdaTerm):

    FREEVAR_IDX = 100000

    def __init__(self,varname,ttype=TypeSystem.FAILURE,db_index=FREEVAR_IDX):
        """
        @param varname: a string
        @param db_index: De Bruijn Index of the variable
        """
        self.varname,self.ttype, self.db_index = varname,ttype,db_index

    def copy(self,db_update=0,depth=0):
        """
        @param db_update: a number with which to update db_indexes if the var is free in this term.
        @param depth : the depth of the variable in this term
        """
        if self.db_index-depth > 0 :#if var is free in this term
            return LambdaVariable(self.varname,ttype=self.ttype, db_index=self.db_index+db_update)
        return LambdaVariable(self.varname,ttype=self.ttype, db_index=self.db_index)

    def bind_var(self,varname,vartype,depth=0):
        """
        Captures the variable and indexes it with its De Bruijn index. Used only at init.
        """
        if varname == self.varname and self.db_index == LambdaVariable.FREEVAR_IDX:
            self.db_index = depth
            self.ttype    = TypeSystem.add_brackets(vartype)

    def is_bound(self,varname,depth):
        return varname == self.varname and self.db_index == depth

    def value(self):
        return self

    def __str__(self):
        return "%s-%d"%(self.varname,self.db_index)


class LambdaAbstraction(LambdaTerm):

    def __init__(self,boundvar_name,boundvar_type,body):
        """
        Creates the abstraction \\boundvar_name:boundvar_type (body)
        """
        self.boundvar_name,self.boundvar_type = boundvar_name,boundvar_type
        self.body = body
        self.bind_var(self.boundvar_name,self.boundvar_type)

    def copy(self,db_update=0,depth=0):
        return LambdaAbstraction(self.boundvar_name,self.boundvar_type,self.body.copy(db_update,depth+1))

    def bind_var(self,varname,vartype,depth=0):
        self.body.bind_var(varname,vartype,depth+1)

    def substitute(self,varname,replacement,depth=0):
        """
        Substitutes the variable varname by replacement (De Bruijn indexing).
        @param depth below a binder, used for recursive calls
        """
        depth += 1
        if isinstance(self.body,LambdaVariable):
            if self.body.is_bound(varname,depth):
                self.body = replacement.copy(db_update=depth-1)
            elif self.body.db_index - depth > 0 : #if var is free...
                self.body.db_index -= 1
        else:
            self.body.substitute(varname,replacement,depth)

    def value(self):
        """
        In-place normalisation of the body of this abstraction.
        """
        self.body = self.body.value()
        return self

    def __str__(self):
        return '(lambda (%s:%s) %s)'%(self.boundvar_name,str(self.boundvar_type),str(self.body))


class LambdaApplication(LambdaTerm):

    def __init__(self,termA,termB):
        """
        The application (A B)
        """
        self.termA,self.termB = termA,termB

    def copy(self,db_update=0,depth=0):
        return LambdaApplication(self.termA.copy(db_update,depth),self.termB.copy(db_update,depth))

    def bind_var(self,varname,vartype,depth=0):
        self.termA.bind_var(varname,vartype,depth)
        self.termB.bind_var(varname,vartype,depth)

    def substitute(self,varname,replacement,depth=0):
        if isinstance(self.termA,LambdaVariable):
            if self.termA.is_bound(varname,depth):
                self.termA = replacement.copy(db_update=depth-1)
            elif self.termA.db_index - depth > 0 : #var is free ?
                self.termA.db_index -= 1
        else:
            self.termA.substitute(varname,replacement,depth)

        if isinstance(self.termB,LambdaVariable):
            if self.termB.is_bound(varname,depth):
                self.termB = replacement.copy(db_update=depth-1)
            elif self.termB.db_index - depth > 0 : #var is free ?
                self.termB.db_index -= 1
        else:
            self.termB.substitute(varname,replacement,depth)

    def value(self):
        """
        Call by value beta reduction. Inplace operation.
        @return a normalized lambda term (a value) if it exists
        """
        self.termA = self.termA.value()

        if isinstance(self.termA,LambdaAbstraction):
            self.termB = self.termB.value()
            self.termA.substitute(self.termA.boundvar_name,self.termB)
            return self.termA.body.value()

        elif isinstance(self.termA,ConstantFunction):
            self.termB = self.termB.value()
            self.termA.substitute(replacement=self.termB)
            return self.termA.value()

        #failed application
        self.termB = self.termB.value()
        return self

    def __str__(self):
        return "(%s %s)"%(str(self.termA),str(self.termB))


class ConstantFunction(LambdaTerm):
    """
    External functions and constants computed in python.

    Subclasses overload ret_value(). The function emulates a lambda abstraction over its arguments
    and its value is available as soon as all its arguments are bound to constants.
    A constant is a constant function without arguments.
    """
    def __init__(self,name=None,const_value=None,argtypes=(),ret_type=TypeSystem.FAILURE):
        """
        @param name: the name of the function
        @param const_value: the value of the constant
        @param argtypes: a sequence of atomic types for the func params
        @param ret_type: the atomic type of the returned value or the type of the constant value
        """
        self.fun_name    = name
        self.ttype       = tuple(argtypes)+(ret_type,)
        self.val         = const_value
        self.nargs       = len(argtypes)
        self.args_values = [LambdaVariable("__x__",ttype=argtypes[idx],db_index=self.nargs-idx) for idx in range(self.nargs)]

    @staticmethod
    def make_constant(const_value,const_type):
        return ConstantFunction(const_value=const_value,ret_type=const_type)

    def copy(self,db_update=0,depth=0):
        cpy = copy.deepcopy(self)
        for idx in range(len(cpy.args_values)):
            cpy.args_values[idx] = cpy.args_values[idx].copy(db_update,depth+self.nargs)
        return cpy

    def bind_var(self,varname,vartype,depth=0):
        pass #an external binder cannot bind an inner variable at init

    def substitute(self,varname=None,replacement=None,depth=0):
        """
        Substitution of a variable by a replacement term.
        With depth < nargs this removes the innermost pseudo binder of the function,
        otherwise it removes an outer lambda binder.
        """
        local = depth < self.nargs
        if local and varname == None:
            varname = '__x__'
        depth += self.nargs
        for idx in range(len(self.args_values)):
            term = self.args_values[idx]
            if isinstance(term,LambdaVariable):
                if term.is_bound(varname,depth):
                    self.args_values[idx] = replacement.copy(db_update=depth-1)
                    if local:
                        self.nargs -= 1
                elif term.db_index - depth > 0: #var is free
                    term.db_index -= 1
            else:
                term.substitute(varname,replacement,depth)

    def ret_value(self):
        """
        Computes the denotation. The only method that needs to be subclassed.
        """
        return self.val

    def value(self):
        for idx in range(len(self.args_values)):
            self.args_values[idx] = self.args_values[idx].value()
        return self

    def is_constant(self):
        """
        If true the denotation can be computed (= call ret_value)
        """
        return all([isinstance(val,ConstantFunction) and val.is_constant() for val in self.args_values])

    def __str__(self):
        if self.is_constant():
            return str(self.ret_value())
        return '%s(%s)'%(self.fun_name,','.join([str(val) for val in self.args_values]))


#Arithmetic functions
class ExtAddition(ConstantFunction):

    def __init__(self):
        super().__init__(name="+",argtypes=(TypeSystem.NUMERIC,TypeSystem.NUMERIC),ret_type=TypeSystem.NUMERIC)

    def ret_value(self):
        return float(self.args_values[0].ret_value()) + float(self.args_values[1].ret_value())

class ExtSubstraction(ConstantFunction):

    def __init__(self):
        super().__init__(name="-",argtypes=(TypeSystem.NUMERIC,TypeSystem.NUMERIC),ret_type=TypeSystem.NUMERIC)

    def ret_value(self):
        return float(self.args_values[0].ret_value()) - float(self.args_values[1].ret_value())

class ExtMultiplication(ConstantFunction):

    def __init__(self):
        super().__init__(name="*",argtypes=(TypeSystem.NUMERIC,TypeSystem.NUMERIC),ret_type=TypeSystem.NUMERIC)

    def ret_value(self):
        return float(self.args_values[0].ret_value()) * float(self.args_values[1].ret_value())

class ExtDivision(ConstantFunction):

    def __init__(self):
        super().__init__(name="/",argtypes=(TypeSystem.NUMERIC,TypeSystem.NUMERIC),ret_type=TypeSystem.NUMERIC)

    def ret_value(self):
        return float(self.args_values[0].ret_value()) / float(self.args_values[1].ret_value())


def denotation(term):
    """
    Evaluates a copy of a closed term of atomic type.
    @param term: a lambda term (left untouched)
    @return the python value of the term
    @raise EvaluationError if the term does not normalize to a constant or if the computation fails
    """
    normal_form = term.copy().value()
    if not (isinstance(normal_form,ConstantFunction) and normal_form.is_constant()):
        raise EvaluationError(term,'term does not evaluate to a constant')
    try:
        return normal_form.ret_value()
    except ArithmeticError as e:
        raise EvaluationError(term,str(e)) from e
