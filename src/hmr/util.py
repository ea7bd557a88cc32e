import os
import sys
import cleanlog

import numpy as np
import pybedtools as pb

from collections import namedtuple
from contextlib import contextmanager

logger = cleanlog.ColoredLogger('util')


class InvalidInputError(ValueError):
    """Raised when the CpG input file cannot be used for HMR calling."""


class UnsortedInputError(InvalidInputError):
    """Raised when the CpGs are not sorted by chromosome and position."""


class Region(namedtuple('Region', ['chrom', 'start', 'end'])):
    def __new__(cls, chrom, start, end):
        if start >= end:
            raise ValueError('Invalid genomic region %s:%d-%d.' % (chrom, start, end))
        return super(Region, cls).__new__(cls, chrom, start, end)

    def __str__(self):
        return '%s:%d-%d' % (self.chrom, self.start, self.end)

    def same_chrom(self, other):
        return self.chrom == other.chrom


def is_sorted(regions):
    """Returns True if the regions are sorted by chromosome, start and end."""
    return all(regions[i - 1] <= regions[i] for i in range(1, len(regions)))


def parse_depth(name):
    """Extract the read depth encoded after the first ':' of a BED name field.

    :param str name: Name field, e.g. 'CpG:12'.

    :returns: Read depth as an integer.
    """
    if ':' not in name:
        raise ValueError('No depth field in name "%s".' % name)

    depth = int(name.split(':', 1)[1])
    if depth < 0:
        raise ValueError('Negative depth in name "%s".' % name)
    return depth


def methylation_counts(fraction, depth):
    """Convert a methylation fraction and read depth into (methylated, unmethylated) counts."""
    if not 0 <= fraction <= 1:
        raise ValueError('Methylation level %s is not within [0, 1].' % fraction)

    methylated = int(round(fraction * depth))
    return methylated, depth - methylated


def load_cpgs(fp):
    """Read CpG sites and their methylation levels from a BED file.
    The score column holds the methylation level and the name column holds the read depth
    after the first colon.

    :param str fp: Path to the CpG BED file.

    :returns: List of CpG regions and (n, 2) array of methylated and unmethylated counts.
    """
    logger.debug('Reading CpGs and methylation levels from %s.' % fp)
    if not os.path.exists(fp):
        raise InvalidInputError('CpG file "%s" does not exist.' % fp)

    cpgs, meth = [], []
    try:
        for interval in pb.BedTool(fp):
            cpgs.append(Region(interval.chrom, interval.start, interval.end))
            meth.append(methylation_counts(float(interval.score), parse_depth(interval.name)))
    except (ValueError, UnicodeDecodeError, pb.cbedtools.MalformedBedLineError) as e:
        raise InvalidInputError('Malformed CpG record in file "%s": %s' % (fp, e))

    if not is_sorted(cpgs):
        raise UnsortedInputError('CpGs not sorted in file "%s".' % fp)

    observations = np.array(meth, dtype=np.float64).reshape(len(meth), 2)
    logger.debug('Total %d CpGs.' % len(cpgs))
    if len(cpgs) > 0:
        logger.debug('Mean coverage: %.3f.' % observations.sum(axis=1).mean())

    return cpgs, observations


@contextmanager
def open_output(fp=None):
    """Yields a writable handle for `fp`, or standard output when no path is given.
    Files are closed on exit; standard output is only flushed.
    """
    if fp is None:
        yield sys.stdout
        sys.stdout.flush()
    else:
        with open(fp, 'w') as outFile:
            yield outFile


def browser_track_line(name):
    """UCSC browser track header for the domain BED output."""
    return 'track name="%s" description="%s hypo-methylated regions" visibility=2 itemRgb="On"' % (name, name)


def write_scores_bedgraph(fp, cpgs, scores):
    """Write one score per CpG in bedgraph format.

    :param str fp: Output file path.
    :param list cpgs: CpG regions.
    :param list scores: Scores parallel to `cpgs`.
    """
    with open(fp, 'w') as outFile:
        for cpg, score in zip(cpgs, scores):
            print('%s\t%d\t%d\t%g' % (cpg.chrom, cpg.start, cpg.end, score), file=outFile)
