import pytest
from SnaqPy.QuartetData import QuartetCF, QuartetTable, QuartetDataError, \
                               read_table_cf, read_gene_trees, \
                               table_from_gene_trees
from SnaqPy.GraphUtils import split_index, quartet_split


##########################
#### TEST DATA FILES #####
##########################

TABLE_CF = """t1,t2,t3,t4,CF12_34,CF13_24,CF14_23,ngenes,extra
A,B,C,D,0.6,0.3,0.1,100,x
A,B,C,E,2,1,1,,y
"""

GENE_TREES = """((A,B),(C,D));
((A,B),(C,D));
(A,B,(C,D));
((A,C),(B,D));
(A,B,C,D);
((A,B),C);
"""

def _write(tmp_path, name : str, text : str) -> str:
    path = tmp_path / name
    path.write_text(text)
    return str(path)


####################
#### TEST CASES ####
####################

def test_quartet_cf_normalizes():
    row = QuartetCF(("A", "B", "C", "D"), (2, 1, 1))
    assert row.cfs == pytest.approx([0.5, 0.25, 0.25])
    assert row.weight == 1.0
    assert row.key() == frozenset("ABCD")

    weighted = QuartetCF(("A", "B", "C", "D"), (2, 1, 1), 40)
    assert weighted.weight == 40.0

@pytest.mark.parametrize("taxa, cfs", [
    (("A", "B", "C"), (0.5, 0.3, 0.2)),
    (("A", "B", "C", "A"), (0.5, 0.3, 0.2)),
    (("A", "B", "C", "D"), (0.5, -0.3, 0.2)),
    (("A", "B", "C", "D"), (0.0, 0.0, 0.0)),
    (("A", "B", "C", "D"), (0.5, 0.5)),
    (("A", "B", "C", "D"), (0.5, float("nan"), 0.5)),
])
def test_quartet_cf_rejects_bad_rows(taxa, cfs):
    with pytest.raises(QuartetDataError):
        QuartetCF(taxa, cfs)

def test_table_rejects_duplicates():
    table = QuartetTable.from_rows([("A", "B", "C", "D", 0.6, 0.3, 0.1)])
    with pytest.raises(QuartetDataError):
        table.add(QuartetCF(("D", "C", "B", "A"), (0.2, 0.3, 0.5)))
    with pytest.raises(QuartetDataError):
        QuartetTable.from_rows([("A", "B", "C", "D", 0.6, 0.3)])

def test_table_taxa_and_relabel():
    table = QuartetTable.from_rows([
        ("A", "B", "C", "D", 0.6, 0.3, 0.1),
        ("A", "B", "C", "E", 0.6, 0.3, 0.1, 12),
    ])
    assert table.taxa() == {"A", "B", "C", "D", "E"}
    renamed = table.relabeled({"A" : "Z"})
    assert renamed.taxa() == {"Z", "B", "C", "D", "E"}
    assert [r.ngenes for r in renamed] == [None, 12.0]
    assert len(renamed) == 2

def test_read_table_cf(tmp_path):
    table = read_table_cf(_write(tmp_path, "table.csv", TABLE_CF))
    rows = list(table)
    assert len(rows) == 2
    assert rows[0].taxa == ("A", "B", "C", "D")
    assert rows[0].cfs == pytest.approx([0.6, 0.3, 0.1])
    assert rows[0].ngenes == 100.0
    assert rows[1].cfs == pytest.approx([0.5, 0.25, 0.25])
    assert rows[1].ngenes is None

def test_read_table_cf_missing_column(tmp_path):
    path = _write(tmp_path, "bad.csv", "t1,t2,t3,t4,CF12_34,CF13_24\n"
                                       "A,B,C,D,0.5,0.5\n")
    with pytest.raises(QuartetDataError):
        read_table_cf(path)

def test_read_table_cf_bad_number(tmp_path):
    path = _write(tmp_path, "bad.csv", "t1,t2,t3,t4,CF12_34,CF13_24,CF14_23\n"
                                       "A,B,C,D,0.5,abc,0.5\n")
    with pytest.raises(QuartetDataError):
        read_table_cf(path)

def test_split_index():
    taxa = ("A", "B", "C", "D")
    assert split_index(taxa, ("A", "B")) == 0
    assert split_index(taxa, ("C", "D")) == 0
    assert split_index(taxa, ("B", "D")) == 1
    assert split_index(taxa, ("A", "D")) == 2
    assert split_index(taxa, ("C", "B")) == 2

def test_quartet_split():
    quartet = ("A", "B", "C", "D")
    clusters = [frozenset("ABCDE"), frozenset("ACE"), frozenset("AE")]
    assert quartet_split(clusters, quartet) == 1
    assert quartet_split([frozenset("ABCD"), frozenset("ABC")], quartet) \
           is None

def test_cfs_from_gene_trees(tmp_path):
    trees = read_gene_trees(_write(tmp_path, "genes.tre", GENE_TREES))
    assert len(trees) == 6

    table = table_from_gene_trees(trees)
    rows = list(table)
    assert len(rows) == 1
    row = rows[0]
    assert row.taxa == ("A", "B", "C", "D")
    # one unresolved tree and one tree missing D are skipped
    assert row.ngenes == 4
    assert row.cfs == pytest.approx([0.75, 0.25, 0.0])

def test_gene_trees_need_four_taxa(tmp_path):
    trees = read_gene_trees(_write(tmp_path, "small.tre", "((A,B),C);\n"))
    with pytest.raises(QuartetDataError):
        table_from_gene_trees(trees)
    assert len(trees) == 1
