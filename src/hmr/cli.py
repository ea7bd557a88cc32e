"""
Module that contains the command line app.

Why does this file exist, and why not put this in __main__?

  You might be tempted to import things from __main__ later, but that will cause
  problems: the code will get executed twice:

  - When you run `python -mhmr` python will execute
    ``__main__.py`` as a script. That means there won't be any
    ``hmr.__main__`` in ``sys.modules``.
  - When you import __main__ it will get executed again (as a module) because
    there's no ``hmr.__main__`` in ``sys.modules``.

  Also see (1) from http://click.pocoo.org/5/setuptools/#setuptools-integration
"""
import argparse
import cleanlog

import hmr.call
import hmr.util

logger = cleanlog.ColoredLogger('hmr')

# Create the top-level parser.
parser = argparse.ArgumentParser(description='Find hypo-methylated regions from CpG methylation levels.')
subparsers = parser.add_subparsers(description='Commands', dest='subcommand')

def subcommand(args=[], parent=subparsers):
    def decorator(func):
        parser = parent.add_parser(func.__name__, description=func.__doc__)
        for arg in args:
            parser.add_argument(*arg[0], **arg[1])
        parser.set_defaults(func=func, parser=parser)
    return decorator

def argument(*name_or_flags, **kwargs):
    return ([*name_or_flags], kwargs)

def argument_string(short, long, default=None, required=False, **kwargs):
    return argument(short, long, default=default, required=required, **kwargs)

def argument_int(short, long, default=None, required=False, **kwargs):
    return argument(short, long, type=int, default=default, required=required, **kwargs)

def argument_bool(short, long, default=None, required=False, **kwargs):
    return argument(short, long, action='store_true', default=default, required=required, **kwargs)

def argument_float(short, long, default=None, required=False, **kwargs):
    return argument(short, long, type=float, default=default, required=required, **kwargs)

@subcommand([
    argument_string('-i', '--input', help='Input CpG BED file. Score column holds methylation level, and name column holds read depth after ":".'),
    argument_string('-o', '--output', help='Output BED file of hypo-methylated regions. (Default: standard output)'),
    argument_string('-s', '--scores', help='Output bedgraph file of posterior foreground probabilities of each CpG.'),
    argument_string('-t', '--trans', help='Output bedgraph file of transition posterior probabilities of each CpG.'),
    argument_int('-d', '--desert', default=2000, help='Desert size. CpGs farther apart than this are analyzed independently. (Default: 2000)'),
    argument_int('-m', '--max-iterations', default=10, help='Maximum number of Baum-Welch iterations. (Default: 10)'),
    argument_float('-F', '--fdr', default=0.05, help='False discovery rate used to filter domains. (Default: 0.05)'),
    argument_bool('-V', '--viterbi', default=False, help='Use Viterbi decoding instead of posterior decoding.'),
    argument_bool('-B', '--browser', default=False, help='Write a UCSC genome browser track line.'),
    argument_string('-N', '--name', default='HMR', help='Data set name used in the track line.'),
    argument_float('-e', '--tolerance', default=1e-10, help='Relative log-likelihood improvement to stop training.'),
    argument_float('-p', '--min-prob', default=1e-10, help='Minimum probability for start and transition probabilities.'),
    argument_int('-S', '--seed', default=None, help='Random seed for shuffling. It is recommended to set random seed for reproducibility.'),
    argument_bool('-v', '--verbose', default=False, help='Increase verbosity.'),
])
def call(args):
    """Call hypo-methylated regions and filter them by a false discovery rate
    estimated from shuffled data.
    """
    if args.input is None:
        args.parser.print_help()
        return 0

    hmr.call.run(
        input_fp=args.input,
        output_fp=args.output,
        scores_fp=args.scores,
        trans_fp=args.trans,
        desert_size=args.desert,
        max_iterations=args.max_iterations,
        fdr=args.fdr,
        viterbi=args.viterbi,
        browser=args.browser,
        name=args.name,
        tolerance=args.tolerance,
        min_prob=args.min_prob,
        seed=args.seed,
        verbose=args.verbose,
    )
    return 0

def main(args=None):
    args = parser.parse_args(args=args)
    if args.subcommand is None:
        parser.print_help()
        return 0

    try:
        return args.func(args)
    except hmr.util.InvalidInputError as e:
        logger.error(str(e))
        return 1
    except MemoryError:
        logger.error('Could not allocate memory.')
        return 1
