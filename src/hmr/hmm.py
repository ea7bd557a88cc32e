import cleanlog
import numpy as np

from collections import namedtuple
from scipy.special import gammaln as logG
from scipy.special import digamma
from scipy.special import logsumexp
from scipy.special import polygamma

logger = cleanlog.ColoredLogger('hmm')

# State indices.
FG, BG = 0, 1

# Kinds of transition for `TwoStateHMM.transition_posteriors`.
FG_TO_BG, BG_TO_FG = 'fg_to_bg', 'bg_to_fg'

START_PROBABILITIES = [0.5, 0.5]
SELF_TRANSITION_PROBABILITY = 0.75
# Initial mean methylation levels of foreground (hypo) and background states.
FG_METHYLATION, BG_METHYLATION = 0.33, 0.67
# Upper bound of alpha + beta, beyond which beta-binomial is practically binomial.
MAX_PRECISION = 1e6

def trigamma(x):
    return polygamma(1, x)

def bebin_loglikelihood(n, k, a, b):
    """Log-likelihood of observing `k` methylated reads out of `n` under beta-binomial(a, b)."""
    return logG(n + 1) + logG(k + a) + logG(n - k + b) + logG(a + b) - \
        (logG(k + 1) + logG(n - k + 1) + logG(a) + logG(b) + logG(n + a + b))


class HMMParameters(namedtuple('HMMParameters', ['start', 'trans', 'fg_alpha', 'fg_beta', 'bg_alpha', 'bg_beta'])):
    """Parameters of the two-state HMM. State 0 is foreground (hypo-methylated), state 1 is background.

    start: Initial state distribution, shape (2,).
    trans: Transition matrix, trans[i][j] is the probability of moving from state i to state j.
    fg_alpha, fg_beta, bg_alpha, bg_beta: Beta-binomial shape parameters of each state.
    """
    @property
    def alphas(self):
        return np.array([self.fg_alpha, self.bg_alpha])

    @property
    def betas(self):
        return np.array([self.fg_beta, self.bg_beta])

    def __str__(self):
        return 'start=(%.4f, %.4f) fg->fg=%.4f bg->bg=%.4f fg=(%.4f, %.4f) bg=(%.4f, %.4f)' % (
            self.start[FG], self.start[BG], self.trans[FG][FG], self.trans[BG][BG],
            self.fg_alpha, self.fg_beta, self.bg_alpha, self.bg_beta,
        )


class TwoStateHMM:
    """Two-state HMM with beta-binomial emissions over (methylated, unmethylated) read counts.

    The model object only holds numerical settings. Parameters are passed in and returned explicitly,
    so training and decoding never depend on the state of previous calls.
    Every segment is treated as an independent sequence.
    """
    def __init__(self, min_prob=1e-10, tolerance=1e-10, max_iter=10, verbose=False):
        self.min_prob = min_prob  # Floor for start and transition probabilities.
        self.tolerance = tolerance  # Relative log-likelihood improvement to stop training.
        self.max_iter = max_iter
        self.verbose = verbose

    def initial_parameters(self, observations):
        """Returns starting parameters scaled by the mean read depth of the observations.

        :param np.ndarray observations: (n, 2) array of methylated and unmethylated counts.

        :returns: HMMParameters.
        """
        mean_depth = observations.sum(axis=1).mean()
        trans = np.full((2, 2), 1 - SELF_TRANSITION_PROBABILITY)
        np.fill_diagonal(trans, SELF_TRANSITION_PROBABILITY)

        return HMMParameters(
            start=np.array(START_PROBABILITIES),
            trans=trans,
            fg_alpha=FG_METHYLATION * mean_depth,
            fg_beta=(1 - FG_METHYLATION) * mean_depth,
            bg_alpha=BG_METHYLATION * mean_depth,
            bg_beta=(1 - BG_METHYLATION) * mean_depth,
        )

    def _log_floor(self, p):
        return np.log(np.maximum(p, self.min_prob))

    def _normalize(self, p):
        p = np.maximum(p, self.min_prob)
        return p / p.sum(axis=-1, keepdims=True)

    def _log_emissions(self, observations, params):
        n, k = observations.sum(axis=1), observations[:, 0]
        return np.stack([
            bebin_loglikelihood(n, k, params.fg_alpha, params.fg_beta),
            bebin_loglikelihood(n, k, params.bg_alpha, params.bg_beta),
        ], axis=1)

    def _forward_backward(self, log_e, log_start, log_trans):
        """Forward and backward log-probabilities for a single segment."""
        n_sites = len(log_e)
        log_f = np.empty((n_sites, 2))
        log_b = np.zeros((n_sites, 2))

        log_f[0] = log_start + log_e[0]
        for t in range(1, n_sites):
            log_f[t] = logsumexp(log_f[t - 1][:, None] + log_trans, axis=0) + log_e[t]

        for t in range(n_sites - 2, -1, -1):
            log_b[t] = logsumexp(log_trans + log_e[t + 1] + log_b[t + 1], axis=1)

        return log_f, log_b, logsumexp(log_f[-1])

    def _posteriors(self, observations, segments, params):
        """Posterior state probabilities and transition probabilities for every site.

        :returns: gamma of shape (n, 2), xi of shape (n, 2, 2) and the total log-likelihood.
            xi[i][a][b] is the posterior probability that site i - 1 is in state a and site i is in state b.
            It is zero for the first site of each segment.
        """
        log_e = self._log_emissions(observations, params)
        log_start, log_trans = self._log_floor(params.start), self._log_floor(params.trans)

        gamma = np.zeros((len(observations), 2))
        xi = np.zeros((len(observations), 2, 2))
        log_likelihood = 0.0
        for start, end in segments:
            log_f, log_b, ll = self._forward_backward(log_e[start:end], log_start, log_trans)
            gamma[start:end] = np.exp(log_f + log_b - ll)
            if end - start > 1:
                xi[start + 1:end] = np.exp(
                    log_f[:-1, :, None] + log_trans[None, :, :] + (log_e[start + 1:end] + log_b[1:])[:, None, :] - ll
                )
            log_likelihood += ll

        return gamma, xi, log_likelihood

    def _bebin_mle(self, ns, ks, ws, a, b, n_iter=4):
        """Weighted maximum likelihood estimates of beta-binomial alpha and beta given depths(ns)
        and methylated counts(ks). Falls back to the current (a, b) when the estimate is not usable.
        """
        N = ws.sum()
        if N <= 0:
            return a, b

        a_, b_ = 1, 1
        with np.errstate(all='ignore'):
            p1_bar = np.exp(1 / N * np.sum(ws * (digamma(a_ + ks) - digamma(a_ + b_ + ns))))
            p2_bar = np.exp(1 / N * np.sum(ws * (digamma(b_ + (ns - ks)) - digamma(a_ + b_ + ns))))

            # Find good initial esimates.
            a_ = 1 / 2 * (1 - p2_bar) / (1 - p1_bar - p2_bar)
            b_ = 1 / 2 * (1 - p1_bar) / (1 - p1_bar - p2_bar)

            for _ in range(n_iter):
                n_log_p1 = np.sum(ws * (digamma(a_ + ks) - digamma(a_ + b_ + ns)))
                n_log_p2 = np.sum(ws * (digamma(b_ + (ns - ks)) - digamma(a_ + b_ + ns)))

                q_1 = -N * trigamma(a_)
                q_2 = -N * trigamma(b_)
                g_1 = N * digamma(a_ + b_) - N * digamma(a_) + n_log_p1
                g_2 = N * digamma(a_ + b_) - N * digamma(b_) + n_log_p2
                z = N * trigamma(a_ + b_)
                c = (g_1 / q_1 + g_2 / q_2) / (1 / z + 1 / q_1 + 1 / q_2)

                a_ = a_ - (g_1 - c) / q_1
                b_ = b_ - (g_2 - c) / q_2

        if not (np.isfinite(a_) and np.isfinite(b_) and a_ > 0 and b_ > 0):
            return a, b

        # Underdispersed data drive alpha and beta to infinity. Keep the mean and cap the precision.
        if a_ + b_ > MAX_PRECISION:
            scale = MAX_PRECISION / (a_ + b_)
            a_, b_ = a_ * scale, b_ * scale
        return float(a_), float(b_)

    def _maximize(self, observations, segments, params, gamma, xi):
        ns, ks = observations.sum(axis=1), observations[:, 0]

        start = self._normalize(gamma[[s for s, _ in segments]].sum(axis=0))
        trans = self._normalize(xi.sum(axis=0))
        fg_alpha, fg_beta = self._bebin_mle(ns, ks, gamma[:, FG], params.fg_alpha, params.fg_beta)
        bg_alpha, bg_beta = self._bebin_mle(ns, ks, gamma[:, BG], params.bg_alpha, params.bg_beta)

        return HMMParameters(start, trans, fg_alpha, fg_beta, bg_alpha, bg_beta)

    def train(self, observations, segments, params):
        """Baum-Welch training.

        :param np.ndarray observations: (n, 2) array of methylated and unmethylated counts.
        :param list segments: Half-open (start, end) index ranges of independent sequences.
        :param HMMParameters params: Initial parameters.

        :returns: The parameters with the best log-likelihood seen, and the number of iterations used.
        """
        best_params, best_log_likelihood, prev_log_likelihood = params, -np.inf, None
        converged, n_iter = False, 0

        for iteration in range(1, self.max_iter + 1):
            n_iter = iteration
            gamma, xi, log_likelihood = self._posteriors(observations, segments, params)
            if self.verbose:
                logger.debug('Iteration %d: log-likelihood %.6f, %s' % (iteration, log_likelihood, params))

            if log_likelihood > best_log_likelihood:
                best_params, best_log_likelihood = params, log_likelihood

            # Check for convergence.
            if prev_log_likelihood is not None and \
                    abs(log_likelihood - prev_log_likelihood) <= self.tolerance * abs(prev_log_likelihood):
                if self.verbose:
                    logger.debug('Met convergence criterion at iteration %d. Terminating.' % iteration)
                converged = True
                break
            prev_log_likelihood = log_likelihood

            if iteration < self.max_iter:
                params = self._maximize(observations, segments, params, gamma, xi)

        if not converged:
            if self.verbose:
                logger.warning('Baum-Welch training did not converge in %d iterations. Using the best parameters so far.' % self.max_iter)

        return best_params, n_iter

    def _viterbi_path(self, log_e, log_start, log_trans):
        n_sites = len(log_e)
        backpointer = np.zeros((n_sites, 2), dtype=np.int8)

        v = log_start + log_e[0]
        for t in range(1, n_sites):
            scores = v[:, None] + log_trans
            backpointer[t] = scores.argmax(axis=0)
            v = scores.max(axis=0) + log_e[t]

        path = np.empty(n_sites, dtype=np.int8)
        path[-1] = v.argmax()
        for t in range(n_sites - 1, 0, -1):
            path[t - 1] = backpointer[t, path[t]]
        return path

    def viterbi_decoding(self, observations, segments, params):
        """Most likely state path of each segment.

        :returns: Boolean array, True for foreground sites.
        """
        log_e = self._log_emissions(observations, params)
        log_start, log_trans = self._log_floor(params.start), self._log_floor(params.trans)

        classes = np.zeros(len(observations), dtype=bool)
        for start, end in segments:
            classes[start:end] = self._viterbi_path(log_e[start:end], log_start, log_trans) == FG
        return classes

    def posterior_decoding(self, observations, segments, params):
        """Assign each site to the state with the larger posterior probability.

        :returns: Boolean array, True for foreground sites, and the foreground posterior probabilities.
        """
        scores = self.posterior_scores(observations, segments, params)
        return scores > 0.5, scores

    def posterior_scores(self, observations, segments, params, log_odds=False):
        """Posterior probability of the foreground state at each site, or its log-odds
        against the background state if `log_odds` is True.
        """
        gamma, _, _ = self._posteriors(observations, segments, params)
        if log_odds:
            return self._log_floor(gamma[:, FG]) - self._log_floor(gamma[:, BG])
        return gamma[:, FG]

    def transition_posteriors(self, observations, segments, params, kind):
        """Posterior probability that the transition of `kind` happens right before each site."""
        _, xi, _ = self._posteriors(observations, segments, params)
        if kind == FG_TO_BG:
            return xi[:, FG, BG]
        elif kind == BG_TO_FG:
            return xi[:, BG, FG]
        raise ValueError('Unknown transition kind: %s' % kind)
