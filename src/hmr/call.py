import cleanlog
import numpy as np

import hmr.domain as domain
import hmr.hmm as hmm
import hmr.segment as segment
import hmr.significance as significance
import hmr.util as util

logger = cleanlog.ColoredLogger('call')


def filter_domains(domains, cutoff):
    """Keep the domains scoring at or above the cutoff, in their original order."""
    return [d for d in domains if d.score >= cutoff]


def decode(model, observations, segments, params, viterbi):
    """Returns the foreground classes and posterior foreground probabilities of every CpG."""
    if viterbi:
        classes = model.viterbi_decoding(observations, segments, params)
        logger.debug('Collecting posterior scores.')
        return classes, model.posterior_scores(observations, segments, params)

    return model.posterior_decoding(observations, segments, params)


def write_transitions(fp, model, cpgs, observations, segments, params):
    fg_to_bg = model.transition_posteriors(observations, segments, params, hmm.FG_TO_BG)
    bg_to_fg = model.transition_posteriors(observations, segments, params, hmm.BG_TO_FG)
    util.write_scores_bedgraph(fp, cpgs, np.maximum(fg_to_bg, bg_to_fg))


def write_domains(domains, output_fp=None, browser=False, name='HMR'):
    logger.debug('Writing %d domains.' % len(domains))
    with util.open_output(output_fp) as outFile:
        if browser:
            print(util.browser_track_line(name), file=outFile)
        for d in domains:
            print(d, file=outFile)


def run(
    input_fp,
    output_fp=None,
    scores_fp=None,
    trans_fp=None,
    desert_size=segment.DEFAULT_DESERT_SIZE,
    max_iterations=10,
    fdr=0.05,
    viterbi=False,
    browser=False,
    name='HMR',
    tolerance=1e-10,
    min_prob=1e-10,
    seed=None,
    verbose=False,
):
    if verbose:
        for module_logger in [logger, util.logger, segment.logger, hmm.logger, significance.logger]:
            module_logger.setLevel(cleanlog.DEBUG)

    cpgs, observations = util.load_cpgs(input_fp)
    cpgs, observations = segment.remove_zero_coverage(cpgs, observations)
    segments = segment.separate_regions(cpgs, desert_size)

    if len(cpgs) == 0:
        logger.warning('No CpG with read coverage in %s. No domain will be called.' % input_fp)
        write_domains([], output_fp, browser, name)
        return []

    model = hmm.TwoStateHMM(min_prob=min_prob, tolerance=tolerance, max_iter=max_iterations, verbose=verbose)
    params, n_iter = model.train(observations, segments, model.initial_parameters(observations))
    logger.debug('Trained parameters after %d iterations: %s' % (n_iter, params))

    classes, scores = decode(model, observations, segments, params, viterbi)
    domains = domain.build_domains(cpgs, scores, segments, classes)
    logger.debug('%d domains were called.' % len(domains))

    logger.debug('Computing cutoff by randomly shuffling original data.')
    cutoff = significance.estimate_cutoff(
        model, cpgs, observations, segments, params, fdr,
        viterbi=viterbi,
        random_state=np.random.RandomState(seed),
    )

    logger.debug('Filtering domains: FDR = %g, posterior score >= %g.' % (fdr, cutoff))
    filtered_domains = filter_domains(domains, cutoff)

    if scores_fp is not None:
        util.write_scores_bedgraph(scores_fp, cpgs, scores)
    if trans_fp is not None:
        write_transitions(trans_fp, model, cpgs, observations, segments, params)

    write_domains(filtered_domains, output_fp, browser, name)
    return filtered_domains
