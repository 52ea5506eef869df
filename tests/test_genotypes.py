import numpy as np
import pandas as pd
import pytest

from rogue_chinook import genotypes
from rogue_chinook.classification import SNP1, SNP2


def test_marker_info_assigns_index_in_file_order(marker_info):
    assert marker_info["marker_index"].tolist() == [0, 1, 2, 3]
    assert marker_info["marker"].tolist()[:2] == [SNP1.marker, SNP2.marker]
    assert marker_info["allele_1_reads"].dtype.kind == "i"


def test_marker_info_rejects_duplicates(tmp_path):
    path = tmp_path / "marker_info.tsv"
    path.write_text(
        "marker\tallele_1\tallele_2\tallele_1_reads\tallele_2_reads\n"
        "m1\tA\tG\t10\t10\n"
        "m1\tA\tG\t12\t8\n"
    )
    with pytest.raises(ValueError, match="Duplicated markers"):
        genotypes.load_marker_info(path)


def test_missing_call_tokens_become_missing(input_files):
    calls = genotypes.load_genotype_calls(input_files["genotypes"])
    r005 = calls[(calls["sample_id"] == "R005") & (calls["marker"] == SNP2.marker)]
    assert r005["genotype"].isna().all()


def test_duplicate_calls_abort(tmp_path):
    path = tmp_path / "calls.tsv"
    path.write_text("sample_id\tmarker\tgenotype\nR001\tm1\tAA\nR001\tm1\tAG\n")
    with pytest.raises(ValueError, match="R001/m1"):
        genotypes.load_genotype_calls(path)


def test_pivot_gives_one_row_per_sample(input_files):
    wide = genotypes.pivot_genotypes(genotypes.load_genotype_calls(input_files["genotypes"]))

    assert len(wide) == 8
    assert wide["sample_id"].is_unique
    assert wide.set_index("sample_id").loc["R003", SNP1.marker] == "AA"


def test_join_drops_only_samples_outside_cohort(input_files, cohort):
    wide = genotypes.pivot_genotypes(genotypes.load_genotype_calls(input_files["genotypes"]))

    joined = genotypes.join_sample_metadata(wide, cohort)

    assert sorted(joined["sample_id"]) == sorted(cohort["sample_id"])
    assert len(joined) == len(cohort)
    assert "R999" not in set(joined["sample_id"])
    assert "R007" not in set(joined["sample_id"])
    assert joined["capture_method"].notna().all()


def test_join_rejects_duplicated_sample_ids(cohort):
    wide = pd.DataFrame({"sample_id": ["R001", "R001"], "m1": ["AA", "AG"]})
    with pytest.raises(pd.errors.MergeError):
        genotypes.join_sample_metadata(wide, cohort)


def test_genotype_array_encoding(cohort_genotypes, marker_info):
    ordered = cohort_genotypes.sort_values("sample_id").reset_index(drop=True)

    gt = genotypes.to_genotype_array(ordered, marker_info)

    assert gt.shape == (4, 6, 2)
    # SNP1 (T=0, A=1): TT, TA, AA, TT, TA, AA
    assert gt.to_n_alt(fill=-1)[0].tolist() == [0, 1, 2, 0, 1, 2]
    # SNP2 missing for R005
    assert gt.is_missing()[1].tolist() == [False, False, False, False, True, False]


def test_genotype_array_rejects_unknown_alleles(marker_info):
    frame = pd.DataFrame(
        {
            "sample_id": ["x"],
            SNP1.marker: ["TG"],
            SNP2.marker: ["CC"],
            "Ots28_11080000": ["GG"],
            "Ots01_100": ["AA"],
        }
    )
    with pytest.raises(ValueError, match="alleles outside T/A"):
        genotypes.to_genotype_array(frame, marker_info)


def test_genotype_array_requires_every_marker(marker_info):
    frame = pd.DataFrame({"sample_id": ["x"], SNP1.marker: ["TT"]})
    with pytest.raises(ValueError, match="Markers without genotype calls"):
        genotypes.to_genotype_array(frame, marker_info)


def test_missingness_and_individual_filter(cohort_genotypes):
    markers = [SNP1.marker, SNP2.marker, "Ots28_11080000", "Ots01_100"]

    missing = genotypes.sample_missingness(cohort_genotypes, markers).set_index("sample_id")
    assert missing.loc["R005", "missing_fraction"] == pytest.approx(0.25)
    assert missing.loc["R001", "missing_fraction"] == 0

    kept = genotypes.filter_individuals(cohort_genotypes, markers, max_missing=0.2)
    assert "R005" not in set(kept["sample_id"])
    assert len(kept) == 5
    with pytest.raises(ValueError, match="No samples pass"):
        genotypes.filter_individuals(cohort_genotypes.iloc[[4]], markers, max_missing=0.1)


def test_marker_depth_summary(marker_info):
    depth = genotypes.marker_depth_summary(marker_info, [SNP1.marker]).iloc[0]

    assert depth["total_reads"] == 9300
    assert depth["allele_1_balance"] == pytest.approx(5200 / 9300)
    assert np.isfinite(depth["allele_1_balance"])
