# -*- coding: utf-8 -*-
"""
This library feeds text to an HTM network one symbol at a time. The following
objects are defined:
    -ScalarEncoders, which encode a bounded integer (e.g. a byte value) as an SDR
        using one contiguous window of bits that slides with the value.

    -WordRowEncoders, which encode a word as an SDR made of fixed-width rows,
        one row per letter position, each row holding one letter-specific block.

    -TextChunkers, which hold the bytes of a text and hand them out one at a time,
        wrapping around at the end and counting epochs.

    -WordChunkers, which do the same thing for the lowercased words of a text.

    -HTMEngines, the abstract interface a learning engine must provide to be
        driven by a runtime. HTMRegion.HTMRegion is the bundled implementation.

    -TextRuntimes, which tie a chunker, the matching encoder and an engine together,
        step the engine and keep track of how well it predicts the next symbol.
        CharacterRuntime and WordRowRuntime are the two concrete modes.

"""
import abc
import logging
import re

import numpy as np

logger = logging.getLogger(__name__)

DEFAULT_ALPHABET = 'abcdefghijklmnopqrstuvwxyz'
MEMORY_PATH = '<memory>'

#Number of symbols shown on each side of the current one in trace lines.
CHAR_CONTEXT = 10
WORD_CONTEXT = 4


class EmptyCorpusError(ValueError):
    #Raised when a chunker ends up with zero symbols to hand out.
    pass


class CorpusNotFoundError(OSError):
    #Raised when a chunker cannot open or read its source file.
    pass


class ScalarEncoder():
    #This is a simple 1D scalar value encoder.
    #The active window starts at position 0 for minval and at n - w for maxval,
    #so nearby values share most of their bits and distant values share few or none.
    #
    #Example (n=20, w=5, range 0-9):
    #   encode(0) -> 11111 00000 00000 00000
    #   encode(1) -> 01111 10000 00000 00000
    #   encode(9) -> 00000 00000 00000 11111

    def __init__(self, n = 400, w = 21, minval = 0, maxval = 127, ID = 'SE1'):
        #Constructor method.
        #n -> Total length of the bit array.
        #w -> Number of on-bits, I.E. encoding width.
        #minval, maxval -> Inclusive range of accepted values. Anything outside is clamped.
        #ID -> Identifier for this object. Should be unique for each instance.

        if n <= 0:
            raise ValueError('ScalarEncoder: n must be > 0 (got n={})'.format(n))
        if w <= 0:
            raise ValueError('ScalarEncoder: w must be > 0 (got w={})'.format(w))
        if w > n:
            raise ValueError('ScalarEncoder: w must be <= n (got w={}, n={})'.format(w, n))
        if maxval < minval:
            raise ValueError('ScalarEncoder: maxval must be >= minval (got minval={}, maxval={})'.format(minval, maxval))

        self.n = n
        self.w = w
        self.minval = minval
        self.maxval = maxval
        self.ID = ID
        self.output_dim = (n,)

        #The active window can start at positions 0 .. (n - w).
        self.num_buckets = n - w
        self.range = maxval - minval

    def encode(self, val):
        #Encodes a single numeric value. Values outside [minval, maxval] are clamped.

        #Cut off the input val at minval or maxval.
        x = max(self.minval, min(self.maxval, val))

        #Find the start of the active window, rounding to the nearest bucket.
        start = 0
        if self.range > 0:
            start = int((x - self.minval)/self.range*self.num_buckets + 0.5)
        start = max(0, min(self.num_buckets, start))

        arr = np.zeros((self.n,), dtype=int)
        arr[start:start + self.w] = 1
        return arr

    def overlap(self, val_a, val_b):
        #Returns the number of active bits shared by the encodings of two values.
        return overlap(self.encode(val_a), self.encode(val_b))

    def total_bits(self):
        return self.n

    def active_bits(self):
        return self.w

    def params(self):
        return {'n': self.n, 'w': self.w, 'minval': self.minval, 'maxval': self.maxval}


class WordRowEncoder():
    #Encodes a word as a grid of rows, one row per letter position.
    #Each row is split into (alphabet size + 1) blocks of letter_bits bits; the
    #letter in that position turns on its own block. The last block is shared by
    #every character that is not in the alphabet. Rows past the end of the word stay empty.

    def __init__(self, rows = 5, cols = 108, letter_bits = 4, alphabet = DEFAULT_ALPHABET, ID = 'WRE1'):
        #Constructor method.
        #rows -> Number of letter positions encoded. Longer words are cut off.
        #cols -> Width of each row. Must equal letter_bits*(len(alphabet) + 1).
        #letter_bits -> Number of on-bits per letter.
        #alphabet -> Ordered string of known letters.
        #ID -> Identifier for this object. Should be unique for each instance.

        if rows <= 0:
            raise ValueError('WordRowEncoder: rows must be > 0 (got rows={})'.format(rows))
        if cols <= 0:
            raise ValueError('WordRowEncoder: cols must be > 0 (got cols={})'.format(cols))
        if letter_bits <= 0:
            raise ValueError('WordRowEncoder: letter_bits must be > 0 (got letter_bits={})'.format(letter_bits))
        if not alphabet:
            raise ValueError('WordRowEncoder: alphabet must not be empty (got alphabet={!r})'.format(alphabet))
        required_cols = letter_bits*(len(alphabet) + 1)
        if cols != required_cols:
            raise ValueError('WordRowEncoder: cols must equal letter_bits * (alphabet_size + 1) = {} (got cols={})'.format(required_cols, cols))

        self.rows = rows
        self.cols = cols
        self.letter_bits = letter_bits
        self.alphabet = alphabet
        self.ID = ID
        self.n = rows*cols
        self.output_dim = (self.n,)

    def bucket_for_char(self, c):
        #Returns the block index of a character. Unknown characters share the last block.
        i = self.alphabet.find(c.lower())
        if i < 0:
            return len(self.alphabet)
        return i

    def encode(self, word):
        #Encodes a word. Only the first self.rows letters are used.
        arr = np.zeros((self.n,), dtype=int)
        for r, c in enumerate(word[:self.rows]):
            start = r*self.cols + self.bucket_for_char(c)*self.letter_bits
            arr[start:start + self.letter_bits] = 1
        return arr

    def total_bits(self):
        return self.n

    def params(self):
        return {'rows': self.rows, 'cols': self.cols, 'letter_bits': self.letter_bits, 'alphabet': self.alphabet}


def _read_file(path, owner):
    #Reads a whole file as bytes, naming the path if that fails.
    try:
        with open(path, 'rb') as f:
            return f.read()
    except OSError as err:
        raise CorpusNotFoundError('{}: cannot open file: {}'.format(owner, path)) from err


def _as_bytes(text):
    if isinstance(text, str):
        return text.encode('utf-8')
    return bytes(text)


class _Chunker():
    #Shared cursor logic for the text and word chunkers.
    #Subclasses fill in self.symbols with an indexable, non-empty corpus.

    def __init__(self, symbols, path):
        self.symbols = symbols
        self.path_ = path
        self.pos = 0
        self.epoch_ = 0
        self.total_steps_ = 0

    def next(self):
        #Returns the current symbol and advances, wrapping around at the end.
        value = self.symbols[self.pos]
        self.pos += 1
        self.total_steps_ += 1
        if self.pos >= len(self.symbols):
            self.pos = 0
            self.epoch_ += 1
        return value

    def peek(self):
        return self.symbols[self.pos]

    def peek_at(self, offset):
        #Symbol at an offset from the current position. Wraps in both directions.
        return self.symbols[(self.pos + offset) % len(self.symbols)]

    def reset(self):
        #Go back to the beginning. The corpus is not reloaded.
        self.pos = 0
        self.epoch_ = 0
        self.total_steps_ = 0

    def size(self):
        return len(self.symbols)

    def position(self):
        return self.pos

    def epoch(self):
        #Number of complete passes made through the corpus.
        return self.epoch_

    def total_steps(self):
        #Number of symbols handed out since construction or the last reset.
        return self.total_steps_

    def path(self):
        return self.path_


class TextChunker(_Chunker):
    #Reads a text file and yields one byte value (0-255) at a time.
    #The whole file is loaded up front so that multi-epoch training is fast.

    def __init__(self, path, text = None):
        #path -> File to read, or just a label when text is given.
        #text -> Already loaded bytes. The file is not opened if this is set.
        if text is None:
            text = _read_file(path, 'TextChunker')
        else:
            text = _as_bytes(text)
        if not text:
            raise EmptyCorpusError('TextChunker: file is empty: {}'.format(path))
        super().__init__(text, path)

    @classmethod
    def from_string(cls, text):
        #Builds a chunker from an in-memory string or bytes object.
        data = _as_bytes(text)
        if not data:
            raise EmptyCorpusError('TextChunker.from_string: text must not be empty')
        return cls(MEMORY_PATH, data)

    def text(self):
        return self.symbols


def tokenize(text):
    #Splits text into lowercase words. A word is a maximal run of ASCII letters;
    #everything else separates words and is dropped.
    return [word.decode('ascii').lower() for word in re.findall(rb'[A-Za-z]+', _as_bytes(text))]


class WordChunker(_Chunker):
    #Reads a text file and yields one lowercased word at a time.

    def __init__(self, path, words = None):
        #path -> File to read, or just a label when words is given.
        #words -> Already tokenized words. The file is not opened if this is set.
        if words is None:
            words = tokenize(_read_file(path, 'WordChunker'))
        if not words:
            raise EmptyCorpusError('WordChunker: no words found in file: {}'.format(path))
        super().__init__(list(words), path)

    @classmethod
    def from_string(cls, text):
        words = tokenize(text)
        if not words:
            raise EmptyCorpusError('WordChunker.from_string: text must contain words')
        return cls(MEMORY_PATH, words)

    def words(self):
        return self.symbols


class CellMask():
    #Cell states of one column after a step. Bit i of active is set when cell i fired;
    #bit i of predictive is set when cell i had been predicted for that step.
    def __init__(self, active = 0, predictive = 0):
        self.active = active
        self.predictive = predictive


class Snapshot():
    #Read-only view of one engine layer after its most recent step.
    #The default-constructed Snapshot is the empty view returned before any data exists.
    def __init__(self, timestep = 0, num_column_rows = 0, num_column_cols = 0, cells_per_column = 0, input = None, active_column_indices = None, column_cell_masks = None):
        self.timestep = timestep
        self.num_column_rows = num_column_rows
        self.num_column_cols = num_column_cols
        self.cells_per_column = cells_per_column
        self.input = input if input is not None else np.zeros((0,), dtype=int)
        self.active_column_indices = active_column_indices if active_column_indices is not None else []
        self.column_cell_masks = column_cell_masks if column_cell_masks is not None else []

    def is_empty(self):
        return len(self.column_cell_masks) == 0


class ProximalSynapseQuery():
    #Proximal synapses of one column.
    #synapses -> list of (input_x, input_y, permanence, connected)
    def __init__(self, column_x = -1, column_y = -1, input_rows = 0, input_cols = 0, synapses = None):
        self.column_x = column_x
        self.column_y = column_y
        self.input_rows = input_rows
        self.input_cols = input_cols
        self.synapses = synapses if synapses is not None else []


class DistalSynapseQuery():
    #Distal synapses of one segment of one cell.
    #synapses -> list of (column_x, column_y, cell, permanence, connected)
    def __init__(self, column_x = -1, column_y = -1, cell = -1, segment = -1, synapses = None):
        self.column_x = column_x
        self.column_y = column_y
        self.cell = cell
        self.segment = segment
        self.synapses = synapses if synapses is not None else []


class HTMEngine(abc.ABC):
    #The interface a runtime needs from a learning engine.
    #Only the first five methods are required. input_size() and the
    #introspection methods have empty defaults; an engine that reports no
    #input size is not checked against the encoder.

    @abc.abstractmethod
    def set_input(self, sdr):
        #Replaces the current input vector. len(sdr) must equal input_size().
        pass

    @abc.abstractmethod
    def step(self, count = 1):
        #Advances the engine by count timesteps.
        pass

    @abc.abstractmethod
    def timestep(self):
        pass

    @abc.abstractmethod
    def snapshot(self, layer):
        #Read-only view of a layer as of the most recent step. Must provide
        #active_column_indices and column_cell_masks. A mask's .predictive must
        #describe the prediction made for the input just processed, not the next one.
        pass

    @abc.abstractmethod
    def num_layers(self):
        pass

    def input_size(self):
        #Number of input bits expected by set_input, or None if unknown.
        return None

    def query_proximal(self, layer, column_x, column_y):
        return None

    def num_segments(self, layer, column_x, column_y, cell):
        return 0

    def query_distal(self, layer, column_x, column_y, cell, segment):
        return None

    def activation_threshold(self, layer):
        return 0


def printable(c):
    #Makes a byte value safe for a one-line trace.
    if c in (10, 13, 9):
        return ' '
    if c < 32 or c > 126:
        return '.'
    return chr(c)


class TextRuntime(abc.ABC):
    #Drives an HTMEngine with symbols from a chunker.
    #Each step first checks whether the engine's last prediction held up, then
    #feeds the next symbol and advances the engine by one timestep.
    #The mode (characters or word rows) is fixed by the concrete subclass.

    MODE = None
    CHUNKER_TYPE = None
    ENCODER_TYPE = None

    def __init__(self, engine, chunker, encoder, name = 'chat_htm'):
        #Constructor method.
        #engine -> An HTMEngine. Its input size must match the encoder's output size.
        #chunker -> The symbol source. The runtime takes ownership of it.
        #encoder -> The encoder matching the chunker's symbols.
        #name -> Friendly name for display.

        if chunker is None:
            raise ValueError('{}: chunker must not be None'.format(type(self).__name__))
        if not isinstance(chunker, self.CHUNKER_TYPE):
            raise TypeError('{}: expected a {} (got {})'.format(type(self).__name__, self.CHUNKER_TYPE.__name__, type(chunker).__name__))
        if not isinstance(encoder, self.ENCODER_TYPE):
            raise TypeError('{}: expected a {} (got {})'.format(type(self).__name__, self.ENCODER_TYPE.__name__, type(encoder).__name__))
        expected = engine.input_size() if engine is not None else None
        if expected is not None and expected != encoder.total_bits():
            raise ValueError('{}: encoder produces {} bits but the engine expects {}'.format(type(self).__name__, encoder.total_bits(), expected))

        self.engine_ = engine
        self.chunker_ = chunker
        self.encoder_ = encoder
        self.name_ = name
        self.active_layer_idx = 0
        self.log_text_ = False

        #Prediction counters. These belong to this runtime only.
        self.correct_predictions = 0
        self.total_predictions = 0

        logger.debug('%s %r: %d symbols from %s, %d input bits', type(self).__name__, name, chunker.size(), chunker.path(), encoder.total_bits())

    @classmethod
    def from_config(cls, config, chunker, encoder, name = 'chat_htm'):
        #Builds an HTMRegion from an HTMRegionConfig and wraps it in the runtime
        #matching the chunker.
        from HTMRegion import HTMRegion
        region = HTMRegion(config, name)
        if cls is TextRuntime:
            return make_runtime(region, chunker, encoder, name)
        return cls(region, chunker, encoder, name)

    def step(self, n = 1):
        #Processes n symbols. Does nothing without an engine or for n <= 0.
        if self.engine_ is None or n <= 0:
            return

        for i in range(n):
            #Score the engine's previous prediction before the next input arrives.
            #There is nothing to score before the first timestep.
            if self.engine_.timestep() > 0:
                self.score_prediction()

            #Read the next symbol, encode it and feed it to the engine.
            symbol = self.chunker_.next()
            self.remember(symbol)
            self.engine_.set_input(self.encoder_.encode(symbol))
            self.engine_.step(1)

            if self.log_text_:
                print('[text] step={}  epoch={}  accuracy={:.1f}%  | {}'.format(
                    self.engine_.timestep(), self.chunker_.epoch(),
                    self.prediction_accuracy()*100.0, self.input_context()))

    def score_prediction(self):
        #Counts the bottom layer's active columns that also hold predictive cells.
        #The prediction is correct when a strict majority of them do.
        snap = self.engine_.snapshot(0)
        masks = snap.column_cell_masks
        total_active = 0
        predicted_and_active = 0
        for idx in snap.active_column_indices:
            if 0 <= idx < len(masks):
                total_active += 1
                if masks[idx].predictive:
                    predicted_and_active += 1

        if total_active > 0:
            if predicted_and_active > total_active/2:
                self.correct_predictions += 1
            self.total_predictions += 1

    def prediction_accuracy(self):
        #Fraction of scored steps where the engine's prediction held up.
        if self.total_predictions == 0:
            return 0.0
        return self.correct_predictions/self.total_predictions

    @abc.abstractmethod
    def remember(self, symbol):
        pass

    @abc.abstractmethod
    def input_context(self):
        #Human-readable window around the symbol that was just consumed.
        pass

    def current_index(self):
        #The chunker has already moved past the symbol we just fed.
        pos = self.chunker_.position()
        if pos == 0:
            return self.chunker_.size() - 1
        return pos - 1

    def set_log_text(self, enabled):
        self.log_text_ = bool(enabled)

    def log_text(self):
        return self.log_text_

    #Layer selection

    def num_layers(self):
        if self.engine_ is None:
            return 0
        return self.engine_.num_layers()

    def active_layer(self):
        return self.active_layer_idx

    def set_active_layer(self, idx):
        #Ignored unless idx names an existing layer.
        if 0 <= idx < self.num_layers():
            self.active_layer_idx = idx

    def layer_options(self):
        return [(i, 'Layer {}'.format(i)) for i in range(self.num_layers())]

    def has_active_layer(self):
        return self.engine_ is not None and 0 <= self.active_layer_idx < self.num_layers()

    #Introspection pass-throughs to the active layer

    def snapshot(self):
        if not self.has_active_layer():
            return Snapshot()
        return self.engine_.snapshot(self.active_layer_idx)

    def query_proximal(self, column_x, column_y):
        if not self.has_active_layer():
            return ProximalSynapseQuery()
        result = self.engine_.query_proximal(self.active_layer_idx, column_x, column_y)
        return result if result is not None else ProximalSynapseQuery()

    def num_segments(self, column_x, column_y, cell):
        if not self.has_active_layer():
            return 0
        return self.engine_.num_segments(self.active_layer_idx, column_x, column_y, cell)

    def query_distal(self, column_x, column_y, cell, segment):
        if not self.has_active_layer():
            return DistalSynapseQuery()
        result = self.engine_.query_distal(self.active_layer_idx, column_x, column_y, cell, segment)
        return result if result is not None else DistalSynapseQuery()

    def activation_threshold(self):
        if not self.has_active_layer():
            return 0
        return self.engine_.activation_threshold(self.active_layer_idx)

    #Accessors

    def name(self):
        return '{} (Layer {}/{})'.format(self.name_, self.active_layer_idx, self.num_layers())

    def input_mode(self):
        return self.MODE

    def input_sequences(self):
        return [(0, 'Text: {}'.format(self.chunker_.path()))]

    def chunker(self):
        return self.chunker_

    def encoder(self):
        return self.encoder_

    def engine(self):
        return self.engine_

    def input_size(self):
        #Number of symbols in the corpus.
        return self.chunker_.size()

    def input_epoch(self):
        return self.chunker_.epoch()

    def input_total_steps(self):
        return self.chunker_.total_steps()


class CharacterRuntime(TextRuntime):
    #Feeds the bytes of a text through a ScalarEncoder.

    MODE = 'character'
    CHUNKER_TYPE = TextChunker
    ENCODER_TYPE = ScalarEncoder

    def __init__(self, engine, chunker, encoder, name = 'chat_htm'):
        super().__init__(engine, chunker, encoder, name)
        self.last_char_ = '\0'

    def remember(self, symbol):
        self.last_char_ = chr(symbol)

    def last_char(self):
        return self.last_char_

    def input_context(self):
        #Shows CHAR_CONTEXT characters on each side, with the current one in brackets.
        text = self.chunker_.text()
        cur = self.current_index()
        parts = []
        for j in range(-CHAR_CONTEXT, CHAR_CONTEXT + 1):
            c = printable(text[(cur + j) % len(text)])
            parts.append('[' + c + ']' if j == 0 else c)
        return ''.join(parts)


class WordRowRuntime(TextRuntime):
    #Feeds the words of a text through a WordRowEncoder.

    MODE = 'word_rows'
    CHUNKER_TYPE = WordChunker
    ENCODER_TYPE = WordRowEncoder

    def __init__(self, engine, chunker, encoder, name = 'chat_htm'):
        super().__init__(engine, chunker, encoder, name)
        self.last_word_ = ''

    def remember(self, symbol):
        self.last_word_ = symbol

    def last_word(self):
        return self.last_word_

    def input_context(self):
        #Shows WORD_CONTEXT words on each side, with the current one in brackets.
        words = self.chunker_.words()
        cur = self.current_index()
        parts = []
        for j in range(-WORD_CONTEXT, WORD_CONTEXT + 1):
            word = words[(cur + j) % len(words)]
            parts.append('[' + word + ']' if j == 0 else word)
        return ' '.join(parts)


def make_runtime(engine, chunker, encoder, name = 'chat_htm'):
    #Picks the runtime class matching the chunker's type.
    if isinstance(chunker, WordChunker):
        return WordRowRuntime(engine, chunker, encoder, name)
    if isinstance(chunker, TextChunker):
        return CharacterRuntime(engine, chunker, encoder, name)
    raise TypeError('make_runtime: unsupported chunker type {}'.format(type(chunker).__name__))


def overlap(sdr1, sdr2):
    #Returns the overlap score of two SDRs with matching shapes.
    return int(np.sum(np.asarray(sdr1)*np.asarray(sdr2)))
