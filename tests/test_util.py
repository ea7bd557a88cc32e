import pytest
import numpy as np
import hmr.util as util


def write_bed(path, records):
    path.write_text(''.join('%s\t%d\t%d\tCpG:%s\t%s\t+\n' % r for r in records))
    return str(path)

def test_region_fail_because_of_invalid_region():
    with pytest.raises(ValueError):
        util.Region('chr1', 20, 10)

    with pytest.raises(ValueError):
        util.Region('chr1', 10, 10)

def test_region_string():
    r = util.Region('chr1', 10, 20)
    assert str(r) == 'chr1:10-20'

def test_region_same_chrom():
    assert util.Region('chr1', 10, 11).same_chrom(util.Region('chr1', 500, 501))
    assert not util.Region('chr1', 10, 11).same_chrom(util.Region('chr2', 10, 11))

def test_is_sorted():
    assert util.is_sorted([util.Region('chr1', 10, 11), util.Region('chr1', 20, 21), util.Region('chr2', 5, 6)])
    assert not util.is_sorted([util.Region('chr1', 20, 21), util.Region('chr1', 10, 11)])
    assert not util.is_sorted([util.Region('chr2', 5, 6), util.Region('chr1', 10, 11)])
    assert util.is_sorted([])

def test_parse_depth():
    assert util.parse_depth('CpG:12') == 12

    with pytest.raises(ValueError):
        util.parse_depth('CpG')

    with pytest.raises(ValueError):
        util.parse_depth('CpG:abc')

    with pytest.raises(ValueError):
        util.parse_depth('CpG:-1')

def test_methylation_counts():
    assert util.methylation_counts(0.8, 10) == (8, 2)
    assert util.methylation_counts(0.29, 100) == (29, 71)
    assert util.methylation_counts(0.0, 0) == (0, 0)

    with pytest.raises(ValueError):
        util.methylation_counts(1.5, 10)

def test_load_cpgs(tmp_path):
    fp = write_bed(tmp_path / 'cpgs.bed', [
        ('chr1', 0, 1, 10, 0.8),
        ('chr1', 100, 101, 10, 0.9),
        ('chr1', 200, 201, 0, 0.0),
    ])
    cpgs, observations = util.load_cpgs(fp)

    assert cpgs == [util.Region('chr1', 0, 1), util.Region('chr1', 100, 101), util.Region('chr1', 200, 201)]
    assert np.array_equal(observations, np.array([[8, 2], [9, 1], [0, 0]]))

def test_load_cpgs_fail_because_of_unsorted_input(tmp_path):
    fp = write_bed(tmp_path / 'cpgs.bed', [
        ('chr1', 100, 101, 10, 0.8),
        ('chr1', 0, 1, 10, 0.9),
    ])
    with pytest.raises(util.UnsortedInputError) as e:
        util.load_cpgs(fp)
    assert 'cpgs.bed' in str(e.value)

def test_load_cpgs_fail_because_of_malformed_depth(tmp_path):
    fp = tmp_path / 'cpgs.bed'
    fp.write_text('chr1\t0\t1\tCpG\t0.5\t+\n')
    with pytest.raises(util.InvalidInputError):
        util.load_cpgs(str(fp))

def test_load_cpgs_fail_because_of_missing_file(tmp_path):
    with pytest.raises(util.InvalidInputError):
        util.load_cpgs(str(tmp_path / 'missing.bed'))

def test_open_output_to_file(tmp_path):
    fp = str(tmp_path / 'out.txt')
    with util.open_output(fp) as outFile:
        print('hello', file=outFile)
    assert open(fp).read() == 'hello\n'

def test_open_output_to_stdout(capsys):
    with util.open_output() as outFile:
        print('hello', file=outFile)
    assert capsys.readouterr().out == 'hello\n'

def test_write_scores_bedgraph(tmp_path):
    fp = str(tmp_path / 'scores.bedgraph')
    util.write_scores_bedgraph(fp, [util.Region('chr1', 0, 1), util.Region('chr1', 100, 101)], [0.25, 1.0])
    assert open(fp).read() == 'chr1\t0\t1\t0.25\nchr1\t100\t101\t1\n'

def test_browser_track_line():
    assert util.browser_track_line('sample').startswith('track name="sample"')

def test_load_cpgs_fail_because_of_unparsable_coordinate(tmp_path):
    fp = tmp_path / 'cpgs.bed'
    fp.write_text('chr1\tabc\t1\tCpG:10\t0.5\t+\n')
    with pytest.raises(util.InvalidInputError) as e:
        util.load_cpgs(str(fp))
    assert 'cpgs.bed' in str(e.value)
