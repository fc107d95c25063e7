# -*- coding: utf-8 -*-
"""
This module implements a small multi-layer HTM region that can be driven by a
ChatHTM runtime. The following objects are defined:
    -HTMLayerConfigs, which hold the numeric parameters of one layer.

    -HTMRegionConfigs, which hold the list of layer configs. They are usually
        loaded from a YAML file with load_region_config().

    -SpatialPoolers, which keep permanence arrays between every minicolumn and the
        input space, pick the winning minicolumns for an input SDR and train them.

    -TemporalMemories, which keep distal segments for every cell, decide which cells
        become active and predictive and grow/train segments.

    -HTMLayers, which chain one SpatialPooler into one TemporalMemory and can report
        a Snapshot of their state along with proximal and distal synapse queries.

    -HTMRegions, which stack HTMLayers bottom-up (each layer reads the active cells
        of the one below it) and implement the ChatHTM.HTMEngine interface.

The pooler and memory are vectorized with numpy: permanences for all minicolumns
live in one array, and all distal segments of a layer live in one growable array
of fixed-width synapse slots.
"""
import copy
import logging
import os
import warnings

import matplotlib.pyplot as plt
import numpy as np
import yaml
from matplotlib.colors import ListedColormap
from scipy import sparse

from ChatHTM import CellMask, DistalSynapseQuery, HTMEngine, ProximalSynapseQuery, Snapshot

logger = logging.getLogger(__name__)

#Default value of every layer parameter. Anything not listed here is rejected.
LAYER_DEFAULTS = {
    #Input space and minicolumn grid
    'num_input_rows': 20,
    'num_input_cols': 20,
    'num_column_rows': 16,
    'num_column_cols': 32,
    #Spatial pooler
    'potential_percent': 0.85,
    'connected_perm': 0.1,
    'min_overlap': 1,
    'max_active_cols': 20,
    'spatial_permanence_inc': 0.04,
    'spatial_permanence_dec': 0.005,
    'boost_str': 3.0,
    'duty_cycle_period': 100,
    #Temporal memory
    'cells_per_column': 4,
    'max_segments_per_cell': 16,
    'max_synapses_per_segment': 32,
    'max_new_synapses': 20,
    'activation_threshold': 8,
    'learning_threshold': 4,
    'initial_perm': 0.55,
    'sequence_connected_perm': 0.5,
    'sequence_permanence_inc': 0.1,
    'sequence_permanence_dec': 0.1,
    'predicted_decrement': 0.0,
    #Switches
    'sp_learning': True,
    'tm_learning': True,
    'seed': 42,
}

_POSITIVE_INTS = ('num_input_rows', 'num_input_cols', 'num_column_rows', 'num_column_cols', 'min_overlap', 'max_active_cols',
                  'duty_cycle_period', 'cells_per_column', 'max_segments_per_cell', 'max_synapses_per_segment',
                  'max_new_synapses', 'activation_threshold', 'learning_threshold')
_UNIT_FLOATS = ('potential_percent', 'connected_perm', 'spatial_permanence_inc', 'spatial_permanence_dec',
                'initial_perm', 'sequence_connected_perm', 'sequence_permanence_inc', 'sequence_permanence_dec',
                'predicted_decrement')


def _is_number(value):
    return isinstance(value, (int, float, np.number)) and not isinstance(value, bool)


class HTMLayerConfig():
    #Plain parameter holder for one layer. See LAYER_DEFAULTS for the accepted keywords.

    def __init__(self, **kwargs):
        unknown = set(kwargs) - set(LAYER_DEFAULTS)
        if unknown:
            raise ValueError('HTMLayerConfig: unknown parameter(s) {}'.format(', '.join(sorted(unknown))))
        for key, value in LAYER_DEFAULTS.items():
            setattr(self, key, kwargs.get(key, value))

    @classmethod
    def from_dict(cls, d, where = 'layer'):
        #Builds a config from a YAML mapping. Unknown keys are dropped with a warning.
        known = {}
        for key, value in d.items():
            if key in LAYER_DEFAULTS:
                known[key] = value
            else:
                warnings.warn('{}: ignoring unknown key {!r}'.format(where, key))
        return cls(**known)

    def validate(self):
        #Raises ValueError naming the first bad parameter.
        for key in _POSITIVE_INTS:
            value = getattr(self, key)
            if not isinstance(value, (int, np.integer)) or isinstance(value, bool) or value <= 0:
                raise ValueError('HTMLayerConfig: {} must be a positive integer (got {!r})'.format(key, value))
        for key in _UNIT_FLOATS:
            value = getattr(self, key)
            if not _is_number(value) or not 0.0 <= value <= 1.0:
                raise ValueError('HTMLayerConfig: {} must be within [0, 1] (got {!r})'.format(key, value))
        if not _is_number(self.boost_str) or self.boost_str < 0:
            raise ValueError('HTMLayerConfig: boost_str must be >= 0 (got {!r})'.format(self.boost_str))
        if self.max_active_cols > self.column_num():
            raise ValueError('HTMLayerConfig: max_active_cols must be <= the number of columns {} (got {!r})'.format(self.column_num(), self.max_active_cols))

    def input_size(self):
        return self.num_input_rows*self.num_input_cols

    def column_num(self):
        return self.num_column_rows*self.num_column_cols

    def to_dict(self):
        return {key: getattr(self, key) for key in LAYER_DEFAULTS}


class HTMRegionConfig():
    #An ordered list of layer configs, bottom layer first.

    def __init__(self, layers = None):
        self.layers = list(layers) if layers is not None else []

    @classmethod
    def from_dict(cls, d):
        #Reads the 'layers' section of a parsed YAML document.
        if not isinstance(d, dict) or not isinstance(d.get('layers'), list) or not d['layers']:
            raise ValueError('HTMRegionConfig: config needs a non-empty "layers" list')
        layers = []
        for i, layer in enumerate(d['layers']):
            if not isinstance(layer, dict):
                raise ValueError('HTMRegionConfig: layer {} must be a mapping (got {!r})'.format(i, layer))
            layers.append(HTMLayerConfig.from_dict(layer, where='layers[{}]'.format(i)))
        return cls(layers)


def read_yaml(path):
    #Parses a YAML file. An empty file gives an empty dict.
    with open(path, 'r') as f:
        data = yaml.safe_load(f)
    return data if data is not None else {}


def load_region_config(path):
    #Loads an HTMRegionConfig from the 'layers' section of a YAML file.
    try:
        return HTMRegionConfig.from_dict(read_yaml(path))
    except ValueError as err:
        raise ValueError('{}: {}'.format(path, err)) from err


def list_config_files(directory = 'configs'):
    #Returns the sorted YAML file names found in directory, or [] if it does not exist.
    if not os.path.isdir(directory):
        return []
    return sorted(name for name in os.listdir(directory) if name.endswith(('.yaml', '.yml')))


class SpatialPooler():
    #Curates the proximal connections of every minicolumn to the input space.
    #Row i of each array belongs to minicolumn i.

    def __init__(self, input_size, column_num = 512, potential_percent = 0.85, max_active_cols = 20, min_overlap = 1, perm_increment = 0.04, perm_decrement = 0.005, perm_thresh = 0.1, boost_str = 3.0, duty_cycle_period = 100, rng = None, ID = 'SP1'):
        #Constructor method.
        #input_size -> Length of the input SDRs.
        #column_num -> Number of minicolumns.
        #potential_percent -> The fraction of bits in the input space to which
        #each minicolumn *may* grow connections.
        #max_active_cols -> Number of allowed minicolumn activations per input processed.
        #min_overlap -> Minicolumns with fewer connected active inputs than this never activate.
        #perm_increment -> Amount by which the permanence to an active bit will increase.
        #perm_decrement -> Amount by which the permanence to an inactive bit will decrease.
        #perm_thresh -> Threshold over which a connected synapse will form.
        #boost_str -> Strength of the boosting effect used to enhance low-duty-cycle minicolumns.
        #duty_cycle_period -> Number of recent inputs used to compute the duty cycle.
        #rng -> numpy RandomState used for the initial connections.
        #ID -> Identifier for this object.

        self.input_size = input_size
        self.column_num = column_num
        self.max_active_cols = max_active_cols
        self.min_overlap = min_overlap
        self.perm_increment = perm_increment
        self.perm_decrement = perm_decrement
        self.perm_thresh = perm_thresh
        self.boost_str = boost_str
        self.duty_cycle_period = duty_cycle_period
        self.ID = ID
        self.output_dim = (column_num,)
        rng = rng if rng is not None else np.random.RandomState()

        #Potential connections are fixed. Permanences start normally distributed around the threshold.
        self.potential = rng.random_sample((column_num, input_size)) < potential_percent
        self.perms = np.clip(rng.normal(loc=perm_thresh, scale=perm_increment, size=(column_num, input_size)), 0.0, 1.0)*self.potential
        self.connected = self.potential & (self.perms >= perm_thresh)

        self.active_cols = np.zeros((column_num,), dtype=int)
        self.overlaps = np.zeros((column_num,), dtype=int)
        self.duty_cycles = np.zeros((column_num,))
        self.boost_factors = np.ones((column_num,))
        self.input_cycles = 0

    def compute_overlap(self, arr):
        #Number of connected synapses to active input bits, per minicolumn.
        return np.count_nonzero(self.connected[:, arr > 0], axis=1)

    def get_active_columns(self, overlaps, scores):
        #Picks the max_active_cols best-scoring minicolumns among those whose raw
        #overlap reaches min_overlap.
        eligible = overlaps >= self.min_overlap
        active = np.zeros((self.column_num,), dtype=int)
        k = min(self.max_active_cols, int(np.sum(eligible)))
        if k > 0:
            masked = np.where(eligible, scores, -np.inf)
            active[np.argpartition(masked, -k)[-k:]] = 1
        return active

    def permanence_update(self, arr):
        #Moves the permanences of active minicolumns towards the current input.
        rows = np.flatnonzero(self.active_cols)
        if len(rows) == 0:
            return
        delta = np.where(arr > 0, self.perm_increment, -self.perm_decrement)
        perms = np.clip(self.perms[rows] + delta*self.potential[rows], 0.0, 1.0)
        self.perms[rows] = perms
        self.connected[rows] = self.potential[rows] & (perms >= self.perm_thresh)

    def duty_cycle_update(self):
        #Running average of each minicolumn's activity, then new boost factors.
        period = min(self.input_cycles, self.duty_cycle_period)
        self.duty_cycles = (self.duty_cycles*(period - 1) + self.active_cols)/period
        target = self.max_active_cols/self.column_num
        self.boost_factors = np.exp(-self.boost_str*(self.duty_cycles - target))

    def process_input(self, arr, sp_learning = True, boosting = True):
        #Takes an input SDR, determines the active minicolumns and performs the
        #learning updates. Returns an SDR of active minicolumns.
        arr = np.asarray(arr).reshape(-1)
        self.input_cycles += 1
        self.overlaps = self.compute_overlap(arr)
        scores = self.overlaps*self.boost_factors if boosting else self.overlaps.astype(float)
        self.active_cols = self.get_active_columns(self.overlaps, scores)
        if sp_learning:
            self.permanence_update(arr)
            self.duty_cycle_update()
        return self.active_cols


class TemporalMemory():
    #Curates the distal segments of every cell in a layer.
    #Segment s owns row s of self.segment_presyn and self.segment_perms: one slot per
    #possible synapse, holding the presynaptic cell index (-1 for an empty slot) and
    #its permanence. Cell c belongs to minicolumn c // cells_per_column.

    def __init__(self, column_num, cells_per_column = 4, activation_threshold = 8, learning_threshold = 4, initial_perm = 0.55, perm_thresh = 0.5, perm_increment = 0.1, perm_decrement = 0.1, predicted_decrement = 0.0, max_segments_per_cell = 16, max_synapses_per_segment = 32, max_new_synapses = 20, rng = None, ID = 'TM1'):
        #Constructor method.
        #column_num -> Number of minicolumns feeding this memory.
        #cells_per_column -> The number of cells per minicolumn.
        #activation_threshold -> Connected overlap at which a segment makes its cell predictive.
        #learning_threshold -> Potential overlap at which a segment is eligible for learning.
        #initial_perm -> Permanence of newly grown synapses.
        #perm_thresh -> The permanence threshold over which a synapse becomes a true connection.
        #perm_increment -> Amount by which the permanence to an active cell increases in learning.
        #perm_decrement -> Amount by which the permanence to an inactive cell decreases in learning.
        #predicted_decrement -> Amount by which segments that made an incorrect prediction are decreased.
        #max_segments_per_cell -> The maximum number of segments each cell can have.
        #max_synapses_per_segment -> The maximum number of synapses on one segment.
        #max_new_synapses -> The maximum number of synapses a segment can grow in one step.
        #rng -> numpy RandomState used for bursting and synapse growth.
        #ID -> Identifier for this object.

        self.column_num = column_num
        self.cells_per_column = cells_per_column
        self.num_cells = column_num*cells_per_column
        self.activation_threshold = activation_threshold
        self.learning_threshold = learning_threshold
        self.initial_perm = initial_perm
        self.perm_thresh = perm_thresh
        self.perm_increment = perm_increment
        self.perm_decrement = perm_decrement
        self.predicted_decrement = predicted_decrement
        self.max_segments_per_cell = max_segments_per_cell
        self.max_synapses_per_segment = max_synapses_per_segment
        self.max_new_synapses = max_new_synapses
        self.rng = rng if rng is not None else np.random.RandomState()
        self.ID = ID
        self.output_dim = (self.num_cells,)

        #Segment storage grows by doubling.
        self.segment_presyn = np.full((0, max_synapses_per_segment), -1, dtype=int)
        self.segment_perms = np.zeros((0, max_synapses_per_segment))
        self.segment_owner = np.zeros((0,), dtype=int)
        self.num_segments_total = 0
        self.cell_segments = [[] for i in range(self.num_cells)]
        self.too_many_segments_count = 0

        self.reset()

    def reset(self):
        #Resets all cell and segment activity. Learned segments are kept.
        self.active_cells = np.zeros((self.num_cells,), dtype=bool)
        self.winner_cells = np.zeros((self.num_cells,), dtype=bool)
        self.predictive_cells = np.zeros((self.num_cells,), dtype=bool)
        self.predicted_cells = np.zeros((self.num_cells,), dtype=bool)
        self.active_segments = np.zeros((self.num_segments_total,), dtype=bool)
        self.matching_segments = np.zeros((self.num_segments_total,), dtype=bool)
        self.potential_overlaps = np.zeros((self.num_segments_total,), dtype=int)

    def column_cells(self, col):
        return range(col*self.cells_per_column, (col + 1)*self.cells_per_column)

    def synapses(self, seg):
        #Returns (presynaptic cells, permanences) of the live synapses on seg.
        live = self.segment_presyn[seg] >= 0
        return self.segment_presyn[seg][live], self.segment_perms[seg][live]

    def grow_synapses(self, seg, candidates, count):
        #Connects seg to up to count randomly chosen candidate cells it is not yet connected to.
        presyn = self.segment_presyn[seg]
        free = np.flatnonzero(presyn < 0)
        pool = np.setdiff1d(np.flatnonzero(candidates), presyn[presyn >= 0])
        pool = pool[pool != self.segment_owner[seg]]
        count = min(count, len(free), len(pool))
        if count <= 0:
            return
        slots = free[:count]
        presyn[slots] = self.rng.choice(pool, size=count, replace=False)
        self.segment_perms[seg][slots] = self.initial_perm

    def add_segment(self, cell, previous_winner_cells):
        #Grows a new segment on cell connected to last step's winner cells.
        #Returns the segment index, or -1 if the cell is full.
        if len(self.cell_segments[cell]) >= self.max_segments_per_cell:
            self.too_many_segments_count += 1
            logger.debug('%s: cell %d already has %d segments', self.ID, cell, self.max_segments_per_cell)
            return -1

        if self.num_segments_total == self.segment_owner.shape[0]:
            n = self.num_segments_total
            capacity = max(16, 2*n)
            presyn = np.full((capacity, self.max_synapses_per_segment), -1, dtype=int)
            presyn[:n] = self.segment_presyn[:n]
            perms = np.zeros((capacity, self.max_synapses_per_segment))
            perms[:n] = self.segment_perms[:n]
            owner = np.zeros((capacity,), dtype=int)
            owner[:n] = self.segment_owner[:n]
            self.segment_presyn = presyn
            self.segment_perms = perms
            self.segment_owner = owner

        seg = self.num_segments_total
        self.num_segments_total += 1
        self.segment_owner[seg] = cell
        self.cell_segments[cell].append(seg)
        self.grow_synapses(seg, previous_winner_cells, self.max_new_synapses)
        return seg

    def adapt_segment(self, seg, previous_active_cells, increment, decrement):
        #Adds increment to synapses from previously active cells and subtracts
        #decrement from the rest. Synapses that reach 0 are removed.
        #Returns the number of synapses from previously active cells.
        presyn = self.segment_presyn[seg]
        perms = self.segment_perms[seg]
        live = presyn >= 0
        hit = live & previous_active_cells[np.where(live, presyn, 0)]
        perms[hit] += increment
        perms[live & ~hit] -= decrement
        np.clip(perms, 0.0, 1.0, out=perms)
        dead = live & (perms <= 0)
        presyn[dead] = -1
        perms[dead] = 0.0
        return int(np.sum(hit))

    def reinforce_segment(self, seg, previous_active_cells, previous_winner_cells):
        #Strengthens synapses to last step's active cells, weakens the others,
        #and tops the segment up with synapses to last step's winners.
        hits = self.adapt_segment(seg, previous_active_cells, self.perm_increment, self.perm_decrement)
        self.grow_synapses(seg, previous_winner_cells, self.max_new_synapses - hits)

    def punish_segment(self, seg, previous_active_cells):
        presyn = self.segment_presyn[seg]
        perms = self.segment_perms[seg]
        live = presyn >= 0
        hit = live & previous_active_cells[np.where(live, presyn, 0)]
        perms[hit] -= self.predicted_decrement
        np.clip(perms, 0.0, 1.0, out=perms)
        dead = live & (perms <= 0)
        presyn[dead] = -1
        perms[dead] = 0.0

    def least_used_cell(self, col):
        #One of the column's cells with the fewest segments, chosen at random.
        cells = list(self.column_cells(col))
        counts = [len(self.cell_segments[c]) for c in cells]
        fewest = [c for c, n in zip(cells, counts) if n == min(counts)]
        return fewest[self.rng.randint(len(fewest))]

    def find_active_cells(self, active_cols, tm_learning = True):
        #Activates the predicted cells of each active column, or bursts the column
        #if none of its cells were predicted. Picks one winner cell per bursting column.
        previous_active = self.active_cells
        previous_winner = self.winner_cells
        n_prev = len(self.active_segments)
        #The predictions this step is checked against.
        self.predicted_cells = self.predictive_cells

        active = np.zeros((self.num_cells,), dtype=bool)
        winner = np.zeros((self.num_cells,), dtype=bool)
        active_col_set = set(np.flatnonzero(active_cols).tolist())

        for col in sorted(active_col_set):
            cells = self.column_cells(col)
            predicted = [c for c in cells if self.predictive_cells[c]]
            if predicted:
                #Every predicted cell becomes active and a winner.
                for c in predicted:
                    active[c] = True
                    winner[c] = True
                    if tm_learning:
                        for seg in self.cell_segments[c]:
                            if seg < n_prev and self.active_segments[seg]:
                                self.reinforce_segment(seg, previous_active, previous_winner)
                continue

            #Burst the column.
            active[cells.start:cells.stop] = True
            matching = [seg for c in cells for seg in self.cell_segments[c] if seg < n_prev and self.matching_segments[seg]]
            if matching:
                best = max(matching, key=lambda s: self.potential_overlaps[s])
                winner[self.segment_owner[best]] = True
                if tm_learning:
                    self.reinforce_segment(best, previous_active, previous_winner)
            else:
                cell = self.least_used_cell(col)
                winner[cell] = True
                #No learning without a previous input to connect to.
                if tm_learning and np.any(previous_winner):
                    self.add_segment(cell, previous_winner)

        #Segments that predicted a column which did not become active.
        if tm_learning and self.predicted_decrement > 0:
            for seg in np.flatnonzero(self.matching_segments):
                if self.segment_owner[seg]//self.cells_per_column not in active_col_set:
                    self.punish_segment(seg, previous_active)

        self.active_cells = active
        self.winner_cells = winner
        return self.active_cells

    def find_predictive_cells(self):
        #Computes segment activity against the current active cells. Cells owning
        #at least one active segment become predictive.
        n = self.num_segments_total
        presyn = self.segment_presyn[:n]
        live = presyn >= 0
        hit = live & self.active_cells[np.where(live, presyn, 0)]
        connected_overlaps = np.sum(hit & (self.segment_perms[:n] >= self.perm_thresh), axis=1)
        self.potential_overlaps = np.sum(hit, axis=1)
        self.active_segments = connected_overlaps >= self.activation_threshold
        self.matching_segments = self.potential_overlaps >= self.learning_threshold

        self.predictive_cells = np.zeros((self.num_cells,), dtype=bool)
        self.predictive_cells[self.segment_owner[:n][self.active_segments]] = True
        return self.predictive_cells

    def process_input(self, active_cols, tm_learning = True, sparse_output = False):
        #Takes the active minicolumns for this step, updates cell activity and
        #learning, then computes the predictions for the next step.
        #Returns the active and predictive cells as a tuple.
        self.find_active_cells(active_cols, tm_learning)
        self.find_predictive_cells()
        if sparse_output:
            return sparse.csr_matrix(self.active_cells), sparse.csr_matrix(self.predictive_cells)
        return self.active_cells, self.predictive_cells


class HTMLayer():
    #One SpatialPooler feeding one TemporalMemory.

    def __init__(self, config, ID = 'L0'):
        config.validate()
        self.config = config
        self.ID = ID
        rng = np.random.RandomState(config.seed)
        self.input = np.zeros((config.input_size(),), dtype=int)
        self.spatial_pooler = SpatialPooler(
            config.input_size(), column_num=config.column_num(),
            potential_percent=config.potential_percent,
            max_active_cols=config.max_active_cols,
            min_overlap=config.min_overlap,
            perm_increment=config.spatial_permanence_inc,
            perm_decrement=config.spatial_permanence_dec,
            perm_thresh=config.connected_perm,
            boost_str=config.boost_str,
            duty_cycle_period=config.duty_cycle_period,
            rng=rng, ID=ID + '.SP')
        self.temporal_memory = TemporalMemory(
            config.column_num(), cells_per_column=config.cells_per_column,
            activation_threshold=config.activation_threshold,
            learning_threshold=config.learning_threshold,
            initial_perm=config.initial_perm,
            perm_thresh=config.sequence_connected_perm,
            perm_increment=config.sequence_permanence_inc,
            perm_decrement=config.sequence_permanence_dec,
            predicted_decrement=config.predicted_decrement,
            max_segments_per_cell=config.max_segments_per_cell,
            max_synapses_per_segment=config.max_synapses_per_segment,
            max_new_synapses=config.max_new_synapses,
            rng=rng, ID=ID + '.TM')

    def compute(self, arr):
        #Processes one input and returns this layer's active cells as a 0/1 array.
        self.input = np.asarray(arr).reshape(-1).astype(int)
        active_cols = self.spatial_pooler.process_input(self.input, sp_learning=self.config.sp_learning)
        active_cells, predictive_cells = self.temporal_memory.process_input(active_cols, tm_learning=self.config.tm_learning)
        return active_cells.astype(int)

    def column_index(self, column_x, column_y):
        #Flat minicolumn index, or -1 when (x, y) is outside the grid.
        if 0 <= column_x < self.config.num_column_cols and 0 <= column_y < self.config.num_column_rows:
            return column_y*self.config.num_column_cols + column_x
        return -1

    def snapshot(self, timestep = 0):
        tm = self.temporal_memory
        k = tm.cells_per_column
        weights = 1 << np.arange(k)
        active_masks = tm.active_cells.reshape(-1, k).astype(np.int64).dot(weights)
        #Cells that were predicted for the input just processed.
        predictive_masks = tm.predicted_cells.reshape(-1, k).astype(np.int64).dot(weights)
        return Snapshot(
            timestep=timestep,
            num_column_rows=self.config.num_column_rows,
            num_column_cols=self.config.num_column_cols,
            cells_per_column=k,
            input=self.input.copy(),
            active_column_indices=np.flatnonzero(self.spatial_pooler.active_cols).tolist(),
            column_cell_masks=[CellMask(int(a), int(p)) for a, p in zip(active_masks, predictive_masks)])

    def query_proximal(self, column_x, column_y):
        col = self.column_index(column_x, column_y)
        if col < 0:
            return ProximalSynapseQuery()
        sp = self.spatial_pooler
        cols = self.config.num_input_cols
        synapses = [(int(i % cols), int(i//cols), float(sp.perms[col, i]), bool(sp.connected[col, i]))
                    for i in np.flatnonzero(sp.potential[col])]
        return ProximalSynapseQuery(column_x, column_y, self.config.num_input_rows, cols, synapses)

    def cell_index(self, column_x, column_y, cell):
        col = self.column_index(column_x, column_y)
        if col < 0 or not 0 <= cell < self.config.cells_per_column:
            return -1
        return col*self.config.cells_per_column + cell

    def num_segments(self, column_x, column_y, cell):
        idx = self.cell_index(column_x, column_y, cell)
        if idx < 0:
            return 0
        return len(self.temporal_memory.cell_segments[idx])

    def query_distal(self, column_x, column_y, cell, segment):
        tm = self.temporal_memory
        idx = self.cell_index(column_x, column_y, cell)
        if idx < 0 or not 0 <= segment < len(tm.cell_segments[idx]):
            return DistalSynapseQuery()
        presyn, perms = tm.synapses(tm.cell_segments[idx][segment])
        k = self.config.cells_per_column
        ncols = self.config.num_column_cols
        synapses = []
        for pre, perm in zip(presyn, perms):
            col, pre_cell = divmod(int(pre), k)
            synapses.append((col % ncols, col//ncols, pre_cell, float(perm), bool(perm >= tm.perm_thresh)))
        return DistalSynapseQuery(column_x, column_y, cell, segment, synapses)

    def activation_threshold(self):
        return self.config.activation_threshold


class HTMRegion(HTMEngine):
    #A stack of HTMLayers. Layer 0 reads the region input; layer k reads the
    #active cells of layer k - 1.

    def __init__(self, config, name = 'htm_region'):
        if not config.layers:
            raise ValueError('HTMRegion: config must contain at least one layer')
        self.name = name
        self.layers = []
        below = None
        for i, layer_config in enumerate(config.layers):
            layer_config = copy.copy(layer_config)
            if below is not None:
                #Upper layers see the cell grid of the layer below.
                layer_config.num_input_rows = below.num_column_rows
                layer_config.num_input_cols = below.num_column_cols*below.cells_per_column
            self.layers.append(HTMLayer(layer_config, ID='{}.L{}'.format(name, i)))
            below = layer_config
        self.input = np.zeros((self.input_size(),), dtype=int)
        self.timestep_ = 0
        logger.info('HTMRegion %r: %d layer(s), %d input bits', name, len(self.layers), self.input_size())

    def set_input(self, sdr):
        arr = np.asarray(sdr).reshape(-1)
        if arr.shape[0] != self.input_size():
            raise ValueError('HTMRegion: input has {} bits but layer 0 expects {}'.format(arr.shape[0], self.input_size()))
        self.input = arr.astype(int)

    def step(self, count = 1):
        for i in range(count):
            arr = self.input
            for layer in self.layers:
                arr = layer.compute(arr)
            self.timestep_ += 1

    def timestep(self):
        return self.timestep_

    def layer(self, idx):
        return self.layers[idx]

    def num_layers(self):
        return len(self.layers)

    def input_size(self):
        return self.layers[0].config.input_size()

    def snapshot(self, layer):
        return self.layers[layer].snapshot(self.timestep_)

    def query_proximal(self, layer, column_x, column_y):
        return self.layers[layer].query_proximal(column_x, column_y)

    def num_segments(self, layer, column_x, column_y, cell):
        return self.layers[layer].num_segments(column_x, column_y, cell)

    def query_distal(self, layer, column_x, column_y, cell, segment):
        return self.layers[layer].query_distal(column_x, column_y, cell, segment)

    def activation_threshold(self, layer):
        return self.layers[layer].activation_threshold()


#Colors for inactive, predicted only, active only, and active + predicted minicolumns.
SNAPSHOT_COLORS = ListedColormap(['white', 'gold', 'steelblue', 'seagreen'])


def snapshot_grid(snapshot):
    #Turns a snapshot into a (rows, cols) array of minicolumn states:
    #0 inactive, 1 predicted only, 2 active only, 3 active and predicted.
    grid = np.zeros((snapshot.num_column_rows*snapshot.num_column_cols,), dtype=int)
    for i, mask in enumerate(snapshot.column_cell_masks):
        if mask.predictive:
            grid[i] += 1
    for i in snapshot.active_column_indices:
        if 0 <= i < len(grid):
            grid[i] += 2
    return grid.reshape((snapshot.num_column_rows, snapshot.num_column_cols))


def plot_snapshot(snapshot, axesObject = None):
    #Convenience function used to visualize a layer snapshot as a minicolumn grid.
    grid = snapshot_grid(snapshot)
    if axesObject:
        image = axesObject.imshow(grid, cmap=SNAPSHOT_COLORS, vmin=0, vmax=3)
        axesObject.set_title('t={}'.format(snapshot.timestep))
    else:
        plt.close()
        plt.figure()
        image = plt.imshow(grid, cmap=SNAPSHOT_COLORS, vmin=0, vmax=3)
        plt.title('t={}'.format(snapshot.timestep))
    return image
