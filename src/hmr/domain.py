from collections import namedtuple

DOMAIN_PREFIX = 'HYPO'


class Domain(namedtuple('Domain', ['chrom', 'start', 'end', 'name', 'score'])):
    """A run of consecutive foreground CpGs within a single segment."""
    def __str__(self):
        return '%s\t%d\t%d\t%s\t%g\t+' % (self.chrom, self.start, self.end, self.name, self.score)


def build_domains(cpgs, scores, segments, classes):
    """Assemble maximal runs of foreground CpGs into domains.
    A run never spans two segments. A run still open at the end of a segment,
    including the last segment, is closed at the last CpG of that segment.

    :param list cpgs: CpG regions.
    :param list scores: Posterior scores of the CpGs.
    :param list segments: Half-open (start, end) index ranges of independent segments.
    :param list classes: True for foreground CpGs.

    :returns: Domains in genomic order, named HYPO0, HYPO1, ...
    """
    domains = []
    for seg_start, seg_end in segments:
        in_domain, domain_start, score = False, None, 0.0

        for i in range(seg_start, seg_end):
            if classes[i]:
                if not in_domain:
                    in_domain, domain_start, score = True, i, 0.0
                score += scores[i]
            elif in_domain:
                domains.append(_close_domain(cpgs, domain_start, i - 1, len(domains), score))
                in_domain = False

        if in_domain:
            domains.append(_close_domain(cpgs, domain_start, seg_end - 1, len(domains), score))

    return domains


def _close_domain(cpgs, first, last, index, score):
    return Domain(cpgs[first].chrom, cpgs[first].start, cpgs[last].end, DOMAIN_PREFIX + str(index), float(score))
