# -*- coding: utf-8 -*-
"""
Command line front end: feeds a text file to an HTM region and reports how well
the region predicts each next character (or word).

The YAML config holds the region's 'layers' plus two optional sections read here:
    text:
      mode: character | word_rows
    encoder:
      active_bits, min_value, max_value    (character mode)
      letter_bits, alphabet                (word_rows mode)

Examples:
    python run_chat_htm.py --input data/hello.txt --config configs/small_text.yaml
    python run_chat_htm.py --input data/hello.txt --config configs/small_text.yaml --epochs 10 --log
    python run_chat_htm.py --input data/story.txt --config configs/word_rows.yaml --plot
"""
import argparse
import logging
import os
import sys
import warnings

import matplotlib.pyplot as plt
import yaml

from ChatHTM import DEFAULT_ALPHABET, ScalarEncoder, TextChunker, WordChunker, WordRowEncoder, make_runtime
from HTMRegion import HTMRegion, HTMRegionConfig, list_config_files, plot_snapshot, read_yaml

logger = logging.getLogger(__name__)

CHARACTER = 'character'
WORD_ROWS = 'word_rows'


def section(config, name):
    #Returns a top-level mapping of the config, or {} with a warning if it is malformed.
    value = config.get(name)
    if value is None:
        return {}
    if not isinstance(value, dict):
        warnings.warn('could not parse {} section: expected a mapping, got {!r}'.format(name, value))
        return {}
    return value


def _typed(sec, key, kind, default, where):
    #Reads sec[key] as kind, falling back to default with a warning.
    if key not in sec:
        return default
    value = sec[key]
    if not isinstance(value, kind) or isinstance(value, bool):
        warnings.warn('could not parse {}.{}: {!r}, using {!r}'.format(where, key, value, default))
        return default
    return value


def parse_text_mode(config):
    mode = _typed(section(config, 'text'), 'mode', str, CHARACTER, 'text')
    if mode not in (CHARACTER, WORD_ROWS):
        warnings.warn('unknown text mode {!r}, using {!r}'.format(mode, CHARACTER))
        return CHARACTER
    return mode


def parse_scalar_encoder_params(config, input_bits):
    #The encoder width always matches layer 0's input size.
    enc = section(config, 'encoder')
    return {
        'n': input_bits,
        'w': _typed(enc, 'active_bits', int, 21, 'encoder'),
        'minval': _typed(enc, 'min_value', int, 0, 'encoder'),
        'maxval': _typed(enc, 'max_value', int, 127, 'encoder'),
    }


def parse_word_row_encoder_params(config, input_rows, input_cols):
    #Rows and columns always match layer 0's input grid.
    enc = section(config, 'encoder')
    return {
        'rows': input_rows,
        'cols': input_cols,
        'letter_bits': _typed(enc, 'letter_bits', int, 4, 'encoder'),
        'alphabet': _typed(enc, 'alphabet', str, DEFAULT_ALPHABET, 'encoder'),
    }


def build_parser():
    parser = argparse.ArgumentParser(description='Feed a text file to an HTM network one symbol at a time.')
    parser.add_argument('--input', metavar='FILE', help='path to a text file to feed to the HTM network')
    parser.add_argument('--config', metavar='FILE', help='path to a YAML config file (see configs/)')
    parser.add_argument('--steps', type=int, default=-1, help='number of input steps to process (default: whole text times --epochs)')
    parser.add_argument('--epochs', type=int, default=1, help='number of passes through the text (default: 1)')
    parser.add_argument('--log', action='store_true', help='print per-step logging (context, epoch, accuracy)')
    parser.add_argument('--plot', action='store_true', help='plot the final state of layer 0 with matplotlib')
    parser.add_argument('--verbose', action='store_true', help='enable debug logging')
    parser.add_argument('--list-configs', nargs='?', const='configs', metavar='DIR', help='list available YAML configs and exit')
    return parser


def build_runtime(config, region_config, input_path, name):
    #Creates the encoder, chunker, region and runtime for the configured text mode.
    layer0 = region_config.layers[0]
    mode = parse_text_mode(config)
    if mode == WORD_ROWS:
        params = parse_word_row_encoder_params(config, layer0.num_input_rows, layer0.num_input_cols)
        encoder = WordRowEncoder(**params)
        chunker = WordChunker(input_path)
    else:
        params = parse_scalar_encoder_params(config, layer0.num_input_rows*layer0.num_input_cols)
        encoder = ScalarEncoder(**params)
        chunker = TextChunker(input_path)
    region = HTMRegion(region_config, name)
    return make_runtime(region, chunker, encoder, name), mode, params


def main(argv = None):
    args = build_parser().parse_args(argv)

    if args.verbose:
        logging.basicConfig(level=logging.DEBUG, format='%(asctime)s %(name)s %(levelname)s: %(message)s')

    if args.list_configs is not None:
        print('Available YAML configs in {}/:'.format(args.list_configs))
        files = list_config_files(args.list_configs)
        if not files:
            print('  (none found)')
        for f in files:
            print('  ' + f)
        return 0

    if not args.input or not args.config:
        print('Error: --input and --config are required.\n', file=sys.stderr)
        build_parser().print_usage(sys.stderr)
        return 2

    #Load configuration
    try:
        config = read_yaml(args.config)
        region_config = HTMRegionConfig.from_dict(config)
    except (OSError, ValueError, yaml.YAMLError) as err:
        print('Error loading config: {}'.format(err), file=sys.stderr)
        return 1

    n_layers = len(region_config.layers)
    print('Config:  {} ({} layer{})'.format(args.config, n_layers, 's' if n_layers > 1 else ''))
    print('Input:   {}'.format(args.input))

    name = os.path.splitext(os.path.basename(args.config))[0]
    try:
        runtime, mode, params = build_runtime(config, region_config, args.input, name)
    except (OSError, ValueError, TypeError) as err:
        print('Error creating runtime: {}'.format(err), file=sys.stderr)
        return 1

    print('Mode:    {}'.format(mode))
    if mode == WORD_ROWS:
        print('Encoder: rows={rows} cols={cols} letter_bits={letter_bits} alphabet_size={size}'.format(size=len(params['alphabet']), **params))
        print('Text:    {} words\n'.format(runtime.input_size()))
    else:
        print('Encoder: n={n} w={w} range=[{minval},{maxval}]'.format(**params))
        print('Text:    {} characters\n'.format(runtime.input_size()))

    total_steps = args.steps
    if total_steps < 0:
        total_steps = runtime.input_size()*args.epochs

    if args.log:
        runtime.set_log_text(True)

    logger.debug('running %d steps over %d symbols', total_steps, runtime.input_size())

    #About 20 progress lines over the whole run.
    log_interval = max(1, total_steps//20)
    for i in range(total_steps):
        runtime.step(1)
        if args.log and (i % log_interval == 0 or i == total_steps - 1):
            print('Step {}/{}  epoch={}  accuracy={:.1f}%  | {}'.format(
                i + 1, total_steps, runtime.input_epoch(),
                runtime.prediction_accuracy()*100.0, runtime.input_context()))

    print('\nDone. {} steps processed.'.format(total_steps))
    print('Final prediction accuracy: {:.1f}%'.format(runtime.prediction_accuracy()*100.0))

    if args.plot:
        plot_snapshot(runtime.snapshot())
        plt.show()

    return 0


if __name__ == '__main__':
    sys.exit(main())
