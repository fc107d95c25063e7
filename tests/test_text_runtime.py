import numpy as np
import pytest

from ChatHTM import (CellMask, CharacterRuntime, DistalSynapseQuery, HTMEngine,
                     ProximalSynapseQuery, ScalarEncoder, Snapshot, TextChunker,
                     TextRuntime, WordChunker, WordRowEncoder, WordRowRuntime,
                     make_runtime, printable)


class StubEngine(HTMEngine):
    #Records its inputs and reports a fixed snapshot.

    def __init__(self, input_size = 30, layers = 1):
        self.size = input_size
        self.layers = layers
        self.inputs = []
        self.steps = 0
        self.snap = Snapshot()

    def set_input(self, sdr):
        self.inputs.append(np.array(sdr))

    def step(self, count = 1):
        self.steps += count

    def timestep(self):
        return self.steps

    def snapshot(self, layer):
        return self.snap

    def num_layers(self):
        return self.layers

    def input_size(self):
        return self.size


def snapshot_with(active, predicted, columns = 8):
    #active columns, of which the ones in predicted hold a predictive cell.
    masks = [CellMask(active=1 if i in active else 0, predictive=1 if i in predicted else 0) for i in range(columns)]
    return Snapshot(1, 1, columns, 1, active_column_indices=list(active), column_cell_masks=masks)


def char_runtime(text = 'abc', engine = None):
    engine = engine if engine is not None else StubEngine()
    return CharacterRuntime(engine, TextChunker.from_string(text), ScalarEncoder(n=30, w=3))


def test_feeds_one_encoded_symbol_per_step():
    rt = char_runtime()
    rt.step(9)
    engine = rt.engine()
    assert engine.timestep() == 9
    assert len(engine.inputs) == 9
    assert all(sdr.shape == (30,) and sdr.sum() == 3 for sdr in engine.inputs)
    assert np.array_equal(engine.inputs[0], engine.inputs[3])
    assert rt.input_epoch() == 3
    assert rt.input_total_steps() == 9
    assert rt.last_char() == 'c'


def test_step_without_engine_or_count_does_nothing():
    rt = char_runtime()
    rt.step(0)
    rt.step(-3)
    assert rt.engine().timestep() == 0
    assert rt.input_total_steps() == 0

    headless = CharacterRuntime(None, TextChunker.from_string('abc'), ScalarEncoder(n=30, w=3))
    headless.step(5)
    assert headless.input_total_steps() == 0


def test_accuracy_starts_at_zero():
    rt = char_runtime()
    assert rt.prediction_accuracy() == 0.0
    rt.step(1)
    #There is nothing to score on the very first step.
    assert rt.total_predictions == 0
    assert rt.prediction_accuracy() == 0.0


def test_empty_snapshots_are_not_scored():
    rt = char_runtime()
    rt.step(5)
    assert rt.total_predictions == 0


def test_majority_of_active_columns_must_be_predicted():
    engine = StubEngine()
    rt = char_runtime(engine=engine)
    engine.snap = snapshot_with(active=[0, 1, 2, 3], predicted=[0, 1, 2])
    rt.step(3)
    assert (rt.correct_predictions, rt.total_predictions) == (2, 2)

    #Exactly half is not a majority.
    engine.snap = snapshot_with(active=[0, 1, 2, 3], predicted=[0, 1])
    rt.step(2)
    assert (rt.correct_predictions, rt.total_predictions) == (2, 4)
    assert rt.prediction_accuracy() == 0.5


def test_predictive_columns_that_are_not_active_do_not_count():
    engine = StubEngine()
    rt = char_runtime(engine=engine)
    engine.snap = snapshot_with(active=[0, 1], predicted=[5, 6, 7])
    rt.step(2)
    assert (rt.correct_predictions, rt.total_predictions) == (0, 1)


def test_out_of_range_column_indices_are_ignored():
    engine = StubEngine()
    rt = char_runtime(engine=engine)
    engine.snap = snapshot_with(active=[0, 50, 60], predicted=[0])
    rt.step(2)
    assert (rt.correct_predictions, rt.total_predictions) == (1, 1)


def test_runtimes_keep_their_own_counters():
    a, b = StubEngine(), StubEngine()
    rt_a = char_runtime(engine=a)
    rt_b = char_runtime(engine=b)
    a.snap = snapshot_with(active=[0], predicted=[0])
    rt_a.step(4)
    assert rt_a.total_predictions == 3
    assert rt_b.total_predictions == 0


def test_trace_lines(capsys):
    rt = char_runtime('hello')
    rt.step(1)
    assert capsys.readouterr().out == ''
    rt.set_log_text(True)
    assert rt.log_text()
    rt.step(1)
    out = capsys.readouterr().out
    assert out.startswith('[text] step=2  epoch=0  accuracy=0.0%  | ')
    assert '[e]' in out


def test_character_context():
    rt = char_runtime('ab\ncd')
    rt.step(3)
    context = rt.input_context()
    assert '[ ]' in context
    assert len(context) == 2*10 + 3


def test_printable():
    assert printable(ord('x')) == 'x'
    assert printable(10) == ' '
    assert printable(9) == ' '
    assert printable(0) == '.'
    assert printable(200) == '.'


def test_word_runtime():
    engine = StubEngine(input_size=540)
    rt = WordRowRuntime(engine, WordChunker.from_string('the cat sat on the mat'), WordRowEncoder())
    rt.step(1)
    assert rt.last_word() == 'the'
    assert rt.input_mode() == 'word_rows'
    assert rt.input_context() == 'sat on the mat [the] cat sat on the'
    assert engine.inputs[0].shape == (540,)


def test_make_runtime_picks_the_mode():
    text = make_runtime(StubEngine(), TextChunker.from_string('abc'), ScalarEncoder(n=30, w=3))
    words = make_runtime(StubEngine(540), WordChunker.from_string('abc'), WordRowEncoder())
    assert isinstance(text, CharacterRuntime) and text.input_mode() == 'character'
    assert isinstance(words, WordRowRuntime)


def test_construction_errors():
    with pytest.raises(ValueError):
        CharacterRuntime(StubEngine(), None, ScalarEncoder(n=30, w=3))
    with pytest.raises(TypeError):
        CharacterRuntime(StubEngine(), WordChunker.from_string('abc'), ScalarEncoder(n=30, w=3))
    with pytest.raises(TypeError):
        CharacterRuntime(StubEngine(), TextChunker.from_string('abc'), WordRowEncoder())
    with pytest.raises(ValueError, match='30'):
        CharacterRuntime(StubEngine(input_size=31), TextChunker.from_string('abc'), ScalarEncoder(n=30, w=3))
    with pytest.raises(TypeError):
        TextRuntime(StubEngine(), TextChunker.from_string('abc'), ScalarEncoder(n=30, w=3))


def test_layer_selection():
    rt = char_runtime(engine=StubEngine(layers=3))
    assert rt.num_layers() == 3
    assert rt.layer_options() == [(0, 'Layer 0'), (1, 'Layer 1'), (2, 'Layer 2')]
    rt.set_active_layer(2)
    assert rt.active_layer() == 2
    rt.set_active_layer(3)
    rt.set_active_layer(-1)
    assert rt.active_layer() == 2
    assert rt.name() == 'chat_htm (Layer 2/3)'


def test_introspection_without_engine():
    rt = CharacterRuntime(None, TextChunker.from_string('abc'), ScalarEncoder(n=30, w=3), name='demo')
    assert rt.num_layers() == 0
    assert not rt.has_active_layer()
    assert rt.snapshot().is_empty()
    assert isinstance(rt.query_proximal(0, 0), ProximalSynapseQuery)
    assert rt.query_proximal(0, 0).synapses == []
    assert rt.num_segments(0, 0, 0) == 0
    assert rt.query_distal(0, 0, 0, 0).synapses == []
    assert rt.activation_threshold() == 0
    assert rt.name() == 'demo (Layer 0/0)'


def test_engine_without_introspection_gives_empty_queries():
    rt = char_runtime()
    assert isinstance(rt.query_distal(0, 0, 0, 0), DistalSynapseQuery)
    assert rt.query_proximal(1, 1).column_x == -1
    assert rt.num_segments(0, 0, 0) == 0


def test_accessors():
    rt = char_runtime()
    assert rt.input_size() == 3
    assert rt.input_sequences() == [(0, 'Text: <memory>')]
    assert rt.encoder().total_bits() == 30
    assert rt.chunker().text() == b'abc'


class MinimalEngine(HTMEngine):
    #Only the methods every engine must have.

    def __init__(self):
        self.steps = 0
        self.last_input = None

    def set_input(self, sdr):
        self.last_input = sdr

    def step(self, count = 1):
        self.steps += count

    def timestep(self):
        return self.steps

    def snapshot(self, layer):
        return snapshot_with(active=[0, 1], predicted=[0, 1])

    def num_layers(self):
        return 1


def test_engine_without_input_size():
    engine = MinimalEngine()
    assert engine.input_size() is None
    rt = char_runtime(engine=engine)
    rt.step(4)
    assert engine.timestep() == 4
    assert engine.last_input.shape == (30,)
    assert (rt.correct_predictions, rt.total_predictions) == (3, 3)
    assert rt.query_distal(0, 0, 0, 0).synapses == []
