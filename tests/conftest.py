import matplotlib
matplotlib.use('Agg')

import pytest

from HTMRegion import HTMLayerConfig, HTMRegionConfig


def small_layer(**overrides):
    #A layer small enough to step a few hundred times in a test.
    params = dict(num_input_rows=10, num_input_cols=20,
                  num_column_rows=8, num_column_cols=8,
                  max_active_cols=4, cells_per_column=2,
                  max_segments_per_cell=4, max_synapses_per_segment=8, max_new_synapses=4,
                  activation_threshold=2, learning_threshold=1)
    params.update(overrides)
    return HTMLayerConfig(**params)


@pytest.fixture
def layer_config():
    return small_layer()


@pytest.fixture
def region_config():
    return HTMRegionConfig([small_layer()])


@pytest.fixture
def two_layer_config():
    return HTMRegionConfig([small_layer(), small_layer(num_column_rows=4, num_column_cols=4, max_active_cols=3)])


SMALL_YAML = """\
text:
  mode: character
encoder:
  active_bits: 9
  min_value: 0
  max_value: 127
layers:
  - num_input_rows: 10
    num_input_cols: 20
    num_column_rows: 8
    num_column_cols: 8
    max_active_cols: 4
    cells_per_column: 2
    max_new_synapses: 4
    activation_threshold: 2
    learning_threshold: 1
"""

WORD_YAML = """\
text:
  mode: word_rows
encoder:
  letter_bits: 4
layers:
  - num_input_rows: 5
    num_input_cols: 108
    num_column_rows: 8
    num_column_cols: 8
    max_active_cols: 4
    cells_per_column: 2
    max_new_synapses: 4
    activation_threshold: 2
    learning_threshold: 1
"""


@pytest.fixture
def small_yaml(tmp_path):
    path = tmp_path / 'small.yaml'
    path.write_text(SMALL_YAML)
    return path


@pytest.fixture
def word_yaml(tmp_path):
    path = tmp_path / 'words.yaml'
    path.write_text(WORD_YAML)
    return path


@pytest.fixture
def hello_txt(tmp_path):
    path = tmp_path / 'hello.txt'
    path.write_text('hello world\nhello there\n')
    return path
