#! /usr/bin/env python

"""
Lexicon lookup for arithmetic questions.

A lexicon maps (possibly multiword) phrases to lexical entries: a macro name and a lambda term.
Phrases are matched greedily, the longest phrase of the lexicon wins (prefix trie lookup).
Numerals and numbers are read as numeric constants.
"""
import logging
import re

from pytrie import SortedStringTrie as Trie

from functional_core import ConstantFunction, TypeSystem
from lambda_parser import FuncParser

L = logging.getLogger(__name__)

NUMERALS = ['zero','one','two','three','four','five','six','seven','eight','nine','ten',
            'eleven','twelve','thirteen','fourteen','fifteen','sixteen','seventeen','eighteen','nineteen','twenty']

#(phrase, macro, lambda term)
DEFAULT_ENTRIES = [
    ('plus',          'PLUS',   '+'),
    ('added to',      'PLUS',   '+'),
    ('and',           'PLUS',   '+'),
    ('and',           'TIMES',  '*'),
    ('minus',         'MINUS',  '-'),
    ('less',          'MINUS',  '-'),
    ('times',         'TIMES',  '*'),
    ('multiplied by', 'TIMES',  '*'),
    ('divided by',    'DIV',    '/'),
    ('over',          'DIV',    '/'),
    ('twice',         'TWICE',  '(lambda (x:num) (* 2 x))'),
    ('double',        'TWICE',  '(lambda (x:num) (* 2 x))'),
    ('half',          'HALF',   '(lambda (x:num) (/ x 2))'),
    ('squared',       'SQUARE', '(lambda (x:num) (* x x))'),
]


class Token:

    def __init__(self,wform,entries=None):
        """
        @param wform: the raw string
        @param entries: a dict macro -> lambda term, the candidate meanings of the token
        """
        self.form    = wform
        self.entries = entries if entries is not None else { }

    def logical_form(self,macro):
        """
        @return a fresh copy of the lambda term for the macro
        """
        return self.entries[macro].copy()

    def logical_type(self,macro):
        return TypeSystem.typecheck(self.entries[macro])

    def has_meaning(self):
        return bool(self.entries)

    def __str__(self):
        return "%s/%s"%(self.form,'|'.join(self.entries.keys()) or '_')

    __repr__ = __str__


class Lexicon:

    NUM_MACRO = 'NUM'

    def __init__(self,entries=DEFAULT_ENTRIES,naming_context=None):
        """
        @param entries: a list of (phrase,macro,code) triples
        @param naming_context: the naming context of the lambda terms reader
        """
        self.lambda_parser = FuncParser(naming_context)
        self.phrases       = { }
        for phrase,macro,code in entries:
            self.add_entry(phrase,macro,code)
        self.trie = Trie(self.phrases)

        self.wsp_regex    = re.compile(r"\s+")
        self.ponct_regex  = re.compile(r"([\?!,;])")
        self.number_regex = re.compile(r"^[0-9]+(\.[0-9]+)?$")

    def add_entry(self,phrase,macro,code):
        self.phrases.setdefault(phrase.lower(),{ })[macro] = self.lambda_parser.parse_code(code)

    @staticmethod
    def from_file(filename,naming_context=None):
        """
        Reads a lexicon file. Each line is phrase<TAB>macro<TAB>lambda term, '#' starts a comment.
        @return a Lexicon
        """
        entries = [ ]
        with open(filename) as istream:
            for line in istream:
                line = line.split('#')[0].strip()
                if line:
                    phrase,macro,code = line.split('\t')
                    entries.append((phrase.strip(),macro.strip(),code.strip()))
        return Lexicon(entries,naming_context)

    def macros(self):
        """
        @return the sorted list of macros (NUM included)
        """
        names = set([Lexicon.NUM_MACRO])
        for entries in self.phrases.values():
            names.update(entries.keys())
        return sorted(names)

    def normalize_string(self,bfr):
        bfr = self.ponct_regex.sub(r" \1 ",bfr.lower())
        return self.wsp_regex.sub(" ",bfr).strip()

    def number_entry(self,wordform):
        if wordform in NUMERALS:
            value = float(NUMERALS.index(wordform))
        elif self.number_regex.match(wordform):
            value = float(wordform)
        else:
            return None
        return {Lexicon.NUM_MACRO:ConstantFunction.make_constant(value,TypeSystem.NUMERIC)}

    def longest_phrase(self,bfr):
        """
        @return the longest lexicon phrase that is a prefix of bfr ending on a word boundary, or None
        """
        candidates = [phrase for phrase in self.trie.iter_prefixes(bfr) if len(phrase) == len(bfr) or bfr[len(phrase)] == ' ']
        return max(candidates,key=len) if candidates else None

    def tokenize(self,line):
        """
        @param line: a question string
        @return a list of Token
        """
        bfr    = self.normalize_string(line)
        tokens = [ ]
        idx    = 0
        while idx < len(bfr):
            phrase = self.longest_phrase(bfr[idx:])
            if phrase:
                tokens.append(Token(phrase,dict(self.phrases[phrase])))
                idx += len(phrase)
            else:
                end = bfr.find(' ',idx)
                end = len(bfr) if end < 0 else end
                wordform = bfr[idx:end]
                tokens.append(Token(wordform,self.number_entry(wordform)))
                idx = end
            idx += 1 #skips the separating space
        L.debug('tokens: %s', ' '.join([str(tok) for tok in tokens]))
        return tokens
