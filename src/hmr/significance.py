import cleanlog
import numpy as np

import hmr.domain as domain
import hmr.segment as segment

logger = cleanlog.ColoredLogger('significance')

# Cutoffs that no domain / every domain passes.
MAX_SCORE = np.finfo(np.float64).max
MIN_SCORE = -MAX_SCORE


def get_posterior_cutoff(domains, fdr):
    """Returns the domain score cutoff so that at most a `fdr` fraction of the null domains
    scores at or above it. Among tied scores, the more stringent cutoff is chosen.

    :param list domains: Domains called from shuffled data.
    :param float fdr: Target false discovery rate.

    :returns: Score cutoff.
    """
    # NaN fails every comparison, so it is treated like a non-positive fdr.
    if not fdr > 0:
        return MAX_SCORE
    elif fdr > 1:
        return MIN_SCORE

    if len(domains) == 0:
        logger.warning('No domains were called from the shuffled data. No domain will pass the cutoff.')
        return MAX_SCORE

    scores = sorted(d.score for d in domains)
    index = min(int(len(scores) * (1 - fdr)), len(scores) - 1)

    # Choose the more stringent cutoff.
    for i in range(index, len(scores)):
        if scores[i] > scores[index]:
            index = i
            break

    return scores[index]


def null_domains(hmm, cpgs, observations, segments, params, viterbi, random_state):
    """Call domains from observations shuffled within each segment, using already trained parameters.

    :param TwoStateHMM hmm: Sequence model.
    :param list cpgs: CpG regions.
    :param np.ndarray observations: (n, 2) array of methylated and unmethylated counts.
    :param list segments: Half-open (start, end) index ranges.
    :param HMMParameters params: Trained parameters.
    :param bool viterbi: Use Viterbi decoding instead of posterior decoding.
    :param np.random.RandomState random_state: Source of randomness for shuffling.

    :returns: Domains called from the shuffled data.
    """
    shuffled = segment.shuffle_within_segments(observations, segments, random_state)

    if viterbi:
        classes = hmm.viterbi_decoding(shuffled, segments, params)
        scores = hmm.posterior_scores(shuffled, segments, params)
    else:
        classes, scores = hmm.posterior_decoding(shuffled, segments, params)

    return domain.build_domains(cpgs, scores, segments, classes)


def estimate_cutoff(hmm, cpgs, observations, segments, params, fdr, viterbi=False, random_state=None):
    """Estimate the domain score cutoff from a single within-segment shuffle of the data.
    Results vary between runs unless `random_state` is seeded.

    :returns: Score cutoff.
    """
    if random_state is None:
        random_state = np.random.RandomState()

    domains = null_domains(hmm, cpgs, observations, segments, params, viterbi, random_state)
    logger.debug('%d domains were called from the shuffled data.' % len(domains))
    return get_posterior_cutoff(domains, fdr)
