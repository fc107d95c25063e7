import numpy as np
import pytest

from ChatHTM import DEFAULT_ALPHABET, WordRowEncoder


def rows_of(enc, sdr):
    return sdr.reshape((enc.rows, enc.cols))


def test_defaults():
    enc = WordRowEncoder()
    assert enc.total_bits() == 540
    assert enc.params() == {'rows': 5, 'cols': 108, 'letter_bits': 4, 'alphabet': DEFAULT_ALPHABET}


def test_each_letter_sets_one_block():
    enc = WordRowEncoder()
    grid = rows_of(enc, enc.encode('cat'))
    assert np.flatnonzero(grid[0]).tolist() == [8, 9, 10, 11]
    assert np.flatnonzero(grid[1]).tolist() == [0, 1, 2, 3]
    assert np.flatnonzero(grid[2]).tolist() == [76, 77, 78, 79]


def test_rows_past_the_word_are_empty():
    enc = WordRowEncoder()
    grid = rows_of(enc, enc.encode('cat'))
    assert grid[3:].sum() == 0
    assert int(np.sum(enc.encode(''))) == 0


def test_long_words_are_truncated():
    enc = WordRowEncoder()
    sdr = enc.encode('elephants')
    assert int(np.sum(sdr)) == 5*4
    assert np.array_equal(sdr, enc.encode('eleph'))


def test_unknown_characters_share_the_last_block():
    enc = WordRowEncoder()
    assert enc.bucket_for_char('7') == 26
    assert enc.bucket_for_char("'") == 26
    grid = rows_of(enc, enc.encode('7'))
    assert np.flatnonzero(grid[0]).tolist() == [104, 105, 106, 107]


def test_case_is_ignored():
    enc = WordRowEncoder()
    assert np.array_equal(enc.encode('Cat'), enc.encode('cat'))


def test_custom_alphabet():
    enc = WordRowEncoder(rows=2, cols=8, letter_bits=2, alphabet='abc')
    assert np.flatnonzero(enc.encode('cz')).tolist() == [4, 5, 14, 15]


@pytest.mark.parametrize('kwargs, name', [
    (dict(rows=0), 'rows'),
    (dict(cols=0), 'cols'),
    (dict(letter_bits=0), 'letter_bits'),
    (dict(alphabet=''), 'alphabet'),
    (dict(cols=100), 'cols'),
])
def test_invalid_parameters(kwargs, name):
    with pytest.raises(ValueError, match=name):
        WordRowEncoder(**kwargs)
