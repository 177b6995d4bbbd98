"""
Unit tests for lexicon lookup.
"""
from pathlib import Path

import pytest

from functional_core import denotation
from lexer import Lexicon

DATA_PATH = Path(__file__).resolve().parent.parent / "data"


@pytest.fixture(scope="module")
def lexicon():
    return Lexicon()


class TestTokenize:

    def test_single_words(self, lexicon):
        tokens = lexicon.tokenize("two plus three")
        assert [tok.form for tok in tokens] == ['two', 'plus', 'three']
        assert list(tokens[1].entries) == ['PLUS']
        assert list(tokens[0].entries) == [Lexicon.NUM_MACRO]

    def test_multiword_phrases_win(self, lexicon):
        tokens = lexicon.tokenize("Six divided by two")
        assert [tok.form for tok in tokens] == ['six', 'divided by', 'two']
        assert 'DIV' in tokens[1].entries

    def test_phrases_match_on_word_boundaries(self, lexicon):
        tokens = lexicon.tokenize("overall andrew")
        assert [tok.has_meaning() for tok in tokens] == [False, False]

    def test_punctuation_is_split(self, lexicon):
        tokens = lexicon.tokenize("what is two minus one?")
        assert [tok.form for tok in tokens] == ['what', 'is', 'two', 'minus', 'one', '?']
        assert not tokens[0].has_meaning()
        assert not tokens[-1].has_meaning()

    def test_numbers_and_numerals(self, lexicon):
        tokens = lexicon.tokenize("twelve 3.5")
        assert denotation(tokens[0].logical_form(Lexicon.NUM_MACRO)) == 12.0
        assert denotation(tokens[1].logical_form(Lexicon.NUM_MACRO)) == 3.5

    def test_ambiguous_entries(self, lexicon):
        token = lexicon.tokenize("and")[0]
        assert set(token.entries) == {'PLUS', 'TIMES'}

    def test_logical_forms_are_fresh_copies(self, lexicon):
        token = lexicon.tokenize("twice")[0]
        assert token.logical_form('TWICE') is not token.logical_form('TWICE')
        assert token.logical_type('TWICE') == ('num', 'num')

    def test_empty_line(self, lexicon):
        assert lexicon.tokenize("   ") == []


class TestLexicon:

    def test_macros_include_numbers(self, lexicon):
        macros = lexicon.macros()
        assert Lexicon.NUM_MACRO in macros
        assert macros == sorted(macros)
        assert 'SQUARE' in macros

    def test_from_file(self):
        lexicon = Lexicon.from_file((DATA_PATH / "arithmetic.lex").as_posix())
        assert lexicon.macros() == ['DIV', 'MINUS', 'NUM', 'PLUS', 'TIMES', 'TWICE']
        tokens = lexicon.tokenize("two divided by one")
        assert [tok.form for tok in tokens] == ['two', 'divided by', 'one']
