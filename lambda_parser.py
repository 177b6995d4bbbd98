#! /usr/bin/env python

"""
Reader for the textual notation of lambda terms, e.g.

   (lambda (x:num) (* 2 x))
   (define TWICE (lambda (x:num) (* 2 x)))

Names bound in the naming context (builtins or defined macros) are replaced by a copy of their term.
"""
import ply.lex as lex
import ply.yacc as yacc

from functional_core import *


class LambdaSyntaxError(Exception):

    def __init__(self,token,msg='syntax error'):
        self.token = token
        self.msg   = msg

    def __str__(self):
        if self.token is None:
            return '%s: unexpected end of input'%(self.msg,)
        return '%s at %r (position %d)'%(self.msg,self.token.value,self.token.lexpos)


class Lexer(object):

    reserved = {'lambda':'LAMBDA','define':'DEFINE'}
    tokens   = ['IDENTIFIER','ARROW','DOTS','NUMBER','LPAREN','RPAREN']+list(reserved.values())

    # Simple tokens
    t_LPAREN  = r'\('
    t_RPAREN  = r'\)'
    t_LAMBDA  = r'lambda'
    t_DEFINE  = r'define'
    t_ARROW   = r'=>'
    t_DOTS    = r':'

    def __init__(self):
        self.lexer = lex.lex(module=self)

    def t_NUMBER(self,t):
        r'[0-9]+(\.[0-9]+)?'
        t.value = float(t.value)
        return t

    def t_IDENTIFIER(self,t):
        r'([A-Za-z][A-Za-z0-9]*)|(\+|-|\*|/)'
        t.type = self.reserved.get(t.value,'IDENTIFIER')
        return t

    def t_newline(self,t):
        r'\n+'
        t.lexer.lineno += len(t.value)

    t_ignore  = ' \t'

    def t_error(self,t):
        raise LambdaSyntaxError(t,'illegal character')

    def tokenize(self,code):
        """
        @return the list of tokens of a code string
        """
        self.lexer.input(code)
        return list(iter(self.lexer.token,None))


class FuncParser(object):

    def __init__(self,naming_context=None):
        self.lexer  = Lexer()
        self.tokens = Lexer.tokens
        self.naming_context = NamingContext.make_std_builtins_context() if naming_context is None else naming_context
        self.parser = yacc.yacc(module=self,debug=False,write_tables=False)
        self.last_defined_macro = None
        self.last_defined_term  = None

    def p_parse_program(self,p):
        """
        program : define program
                | term
                | define
        """
        if len(p) == 3:
            p[0] = p[2]
        else:
            p[0] = p[1]

    def p_parse_define(self,p):
        'define : LPAREN DEFINE IDENTIFIER term RPAREN'
        self.last_defined_macro = p[3]
        self.last_defined_term  = p[4]
        self.naming_context[p[3]] = p[4]

    def p_parse_term(self,p):
        """term : lambda_term
                | IDENTIFIER
                | literal
                | LPAREN term_list RPAREN """
        if isinstance(p[1],str) and len(p) == 2:#identifier
            name = p[1]
            if self.naming_context.is_bound_name(name):
                p[0] = self.naming_context[name].copy()
            else:
                p[0] = LambdaVariable(name)
        elif p[1] == '(':
            p[0] = p[2]
        else:
            p[0] = p[1]

    def p_parse_termlist(self,p):
        """term_list : term_list term
                     | term"""
        if len(p) == 3:
            p[0] = LambdaApplication(p[1],p[2])
        else:
            p[0] = p[1]

    def p_parse_number(self,p):
        'literal : NUMBER'
        p[0] = ConstantFunction.make_constant(p[1],TypeSystem.NUMERIC)

    def p_parse_lambda(self,p):
        'lambda_term : LPAREN LAMBDA LPAREN param_list RPAREN term RPAREN'
        paramList = p[4]
        varname,vartype = paramList.pop()
        T = LambdaAbstraction(varname,vartype,p[6])
        while paramList:
            varname,vartype = paramList.pop()
            T = LambdaAbstraction(varname,vartype,T)
        p[0] = T

    def p_parse_params(self,p):
        """param_list : param param_list
                      | param"""
        if len(p) == 2:
            p[0] = [p[1]]
        else:
            p[0] = [p[1]]+p[2]

    def p_parse_param(self,p):
        'param : IDENTIFIER DOTS param_tree'
        p[0] = (p[1],p[3])

    precedence = [ ('right', 'ARROW') ]

    def p_parse_param_type(self,p):
        """param_tree : param_tree ARROW param_tree
                      | LPAREN param_tree RPAREN
                      | IDENTIFIER"""
        if len(p) == 2: #ID clause
            p[0] = (p[1],)
        elif p[1] == '(': #( CLAUSE )
            p[0] = TypeSystem.strip_brackets((p[2],))
        else:             # ARROW CLAUSE
            p[0] = TypeSystem.concat_types(p[1],p[3])

    def p_error(self,p):
        raise LambdaSyntaxError(p)

    def parse_code(self,codestring):
        """
        Parses a code string.
        @return the lambda term (None if the code is only made of defines)
        @raise LambdaSyntaxError
        """
        return self.parser.parse(codestring,lexer=self.lexer.lexer)
