import cleanlog
import numpy as np

logger = cleanlog.ColoredLogger('segment')

DEFAULT_DESERT_SIZE = 2000


def remove_zero_coverage(cpgs, observations):
    """Drop CpGs that are not covered by any read.

    :param list cpgs: CpG regions.
    :param np.ndarray observations: (n, 2) array of methylated and unmethylated counts.

    :returns: Retained CpG regions and their observations.
    """
    covered = observations.sum(axis=1) > 0
    return [cpg for cpg, keep in zip(cpgs, covered) if keep], observations[covered]


def separate_regions(cpgs, desert_size=DEFAULT_DESERT_SIZE):
    """Partition CpGs into independent segments separated by chromosome boundaries
    and CpG deserts, i.e. gaps longer than `desert_size` between consecutive CpGs.

    :param list cpgs: Sorted CpG regions.
    :param int desert_size: Maximum gap allowed between two CpGs of the same segment.

    :returns: List of half-open (start, end) index ranges, one per segment.
    """
    if not cpgs:
        return []

    starts = [0]
    prev_start = cpgs[0].start
    for i in range(1, len(cpgs)):
        if cpgs[i].same_chrom(cpgs[i - 1]):
            gap = cpgs[i].start - prev_start
        else:
            gap = np.inf

        if gap > desert_size:
            starts.append(i)
        prev_start = cpgs[i].start

    segments = list(zip(starts, starts[1:] + [len(cpgs)]))
    logger.debug('CpGs retained: %d.' % len(cpgs))
    logger.debug('Separated into %d segments by chromosome and desert.' % len(segments))
    return segments


def shuffle_within_segments(observations, segments, random_state):
    """Returns a copy of the observations permuted independently within each segment.
    Observations never move across segment boundaries.

    :param np.ndarray observations: (n, 2) array of methylated and unmethylated counts.
    :param list segments: Half-open (start, end) index ranges.
    :param np.random.RandomState random_state: Source of randomness.

    :returns: Shuffled copy of the observations.
    """
    shuffled = observations.copy()
    for start, end in segments:
        shuffled[start:end] = observations[start:end][random_state.permutation(end - start)]
    return shuffled
